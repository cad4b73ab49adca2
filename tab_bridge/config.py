from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.environ.get(name) or default)
    except Exception:
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name) or default)
    except Exception:
        return default


@dataclass
class BridgeConfig:
    driver_url: str = "ws://localhost:8765"
    reconnect_delay: float = 5.0
    heartbeat_interval: float = 0.0
    agent_host: str = "127.0.0.1"
    agent_port: int = 8766
    agent_socket: str | None = None
    agent_timeout: float = 10.0
    agent_backoff: float = 1.0
    agent_max_attempts: int = 5
    cdp_host: str = "127.0.0.1"
    cdp_port: int = 9222
    navigation_timeout: float = 30.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> BridgeConfig:
        socket_raw = (os.environ.get("TAB_BRIDGE_AGENT_SOCKET") or "").strip()
        return cls(
            driver_url=(os.environ.get("TAB_BRIDGE_DRIVER_URL") or "ws://localhost:8765").strip(),
            reconnect_delay=max(0.05, _env_float("TAB_BRIDGE_RECONNECT_DELAY", 5.0)),
            heartbeat_interval=max(0.0, _env_float("TAB_BRIDGE_HEARTBEAT", 0.0)),
            agent_host=(os.environ.get("TAB_BRIDGE_AGENT_HOST") or "127.0.0.1").strip() or "127.0.0.1",
            agent_port=_env_int("TAB_BRIDGE_AGENT_PORT", 8766),
            agent_socket=str(Path(socket_raw).expanduser()) if socket_raw else None,
            agent_timeout=max(0.1, _env_float("TAB_BRIDGE_AGENT_TIMEOUT", 10.0)),
            agent_backoff=max(0.01, _env_float("TAB_BRIDGE_AGENT_BACKOFF", 1.0)),
            agent_max_attempts=max(1, _env_int("TAB_BRIDGE_AGENT_MAX_ATTEMPTS", 5)),
            cdp_host=(os.environ.get("TAB_BRIDGE_CDP_HOST") or "127.0.0.1").strip() or "127.0.0.1",
            cdp_port=_env_int("TAB_BRIDGE_CDP_PORT", 9222),
            navigation_timeout=max(0.1, _env_float("TAB_BRIDGE_NAVIGATION_TIMEOUT", 30.0)),
            log_level=(os.environ.get("TAB_BRIDGE_LOG_LEVEL") or "INFO").strip().upper() or "INFO",
        )
