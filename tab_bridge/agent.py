"""
Page agent: the page-side peer of the Agent Bridge.

Connects to the bridge over local IPC, announces its tab, and executes DOM
commands against a ``Page``. Requests arrive either as ``command`` frames
(DOM manipulation) or with a ``type`` discriminator (snapshot requests);
both are answered with ``response``/``error`` envelopes carrying the id.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import TYPE_CHECKING, Any

from .channel import AgentChannel
from .config import BridgeConfig
from .envelope import RESPONSE_TYPES, TYPE_PING, TYPE_PONG, error, response
from .errors import ChannelClosedError
from .tools.page_ops import PAGE_COMMANDS, PageState, SurfacePage, run_page_command

if TYPE_CHECKING:
    from .tools.page_ops import Page

logger = logging.getLogger("tab_bridge.agent")


class PageAgent:
    def __init__(
        self,
        tab_id: str,
        page: Page,
        *,
        host: str = "127.0.0.1",
        port: int = 8766,
        socket_path: str | None = None,
        backoff: float = 1.0,
        max_attempts: int = 5,
        sleep: Any = asyncio.sleep,
    ) -> None:
        self.tab_id = str(tab_id)
        self.page = page
        self.state = PageState()
        self.channel = AgentChannel(
            self.tab_id,
            host=host,
            port=port,
            socket_path=socket_path,
            backoff=backoff,
            max_attempts=max_attempts,
            on_message=self._on_message,
            on_close=self._on_close,
            sleep=sleep,
        )
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def from_config(cls, tab_id: str, page: Page, config: BridgeConfig) -> PageAgent:
        return cls(
            tab_id,
            page,
            host=config.agent_host,
            port=config.agent_port,
            socket_path=config.agent_socket,
            backoff=config.agent_backoff,
            max_attempts=config.agent_max_attempts,
        )

    @property
    def connected(self) -> bool:
        return self.channel.is_open

    async def start(self) -> bool:
        return await self.channel.open()

    async def stop(self) -> None:
        self.state.close()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.channel.close()

    async def _on_close(self) -> None:
        self.state.stop_observation()

    async def _on_message(self, frame: dict[str, Any]) -> None:
        ftype = frame.get("type")
        if ftype == TYPE_PING:
            await self._send({"type": TYPE_PONG})
            return
        if ftype in RESPONSE_TYPES or ftype == TYPE_PONG:
            logger.debug("Ignoring %s frame", ftype)
            return
        command = frame.get("command")
        if not command and ftype in PAGE_COMMANDS:
            command = ftype
        task = asyncio.create_task(self._run(frame.get("id"), command, frame.get("params")))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, req_id: Any, command: Any, params: Any) -> None:
        if not command:
            await self._send(error(req_id, "Command not specified"))
            return
        try:
            result = await run_page_command(
                self.page, self.state, str(command), params if isinstance(params, dict) else {}, push=self._send
            )
        except Exception as exc:  # noqa: BLE001
            logger.debug("Command %s failed: %s", command, exc)
            await self._send(error(req_id, str(exc) or exc.__class__.__name__))
            return
        await self._send(response(req_id, result))

    async def _send(self, frame: dict[str, Any]) -> None:
        try:
            await self.channel.send(frame)
        except ChannelClosedError as exc:
            logger.warning("Agent for tab %s could not send %s: %s", self.tab_id, frame.get("type"), exc)


async def run_agent(tab_id: str, config: BridgeConfig | None = None) -> None:
    """Run a page agent for one DevTools tab until the channel gives up."""
    from .cdp import CdpBrowser

    config = config or BridgeConfig.from_env()
    browser = CdpBrowser.from_config(config)
    agent = PageAgent.from_config(tab_id, SurfacePage(browser, tab_id), config)
    await agent.start()
    try:
        while not agent.channel.gave_up:
            await asyncio.sleep(1.0)
    finally:
        await agent.stop()
        browser.close()


def main() -> None:
    config = BridgeConfig.from_env()
    logging.basicConfig(level=config.log_level, format="%(asctime)s %(levelname)s %(message)s")
    if len(sys.argv) < 2:
        sys.stderr.write("usage: python -m tab_bridge.agent <tab-id>\n")
        raise SystemExit(2)
    try:
        asyncio.run(run_agent(sys.argv[1], config))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
