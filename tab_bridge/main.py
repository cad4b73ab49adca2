"""Entry point for the bridge service process (``python -m tab_bridge.main``)."""

from __future__ import annotations

import asyncio
import logging

from .config import BridgeConfig
from .service import BridgeService

logger = logging.getLogger("tab_bridge")


def main() -> None:
    config = BridgeConfig.from_env()
    logging.basicConfig(level=config.log_level, format="%(asctime)s %(levelname)s %(message)s")
    logger.info(
        "Starting tab bridge: driver=%s agents=%s cdp=%s:%s",
        config.driver_url,
        config.agent_socket or f"{config.agent_host}:{config.agent_port}",
        config.cdp_host,
        config.cdp_port,
    )
    service = BridgeService(config)
    try:
        asyncio.run(service.serve_forever())
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down")


if __name__ == "__main__":
    main()
