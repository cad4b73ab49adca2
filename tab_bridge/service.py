"""
Bridge service: the agent-hosting process.

Owns one driver channel (WebSocket client), the command dispatcher and the
Agent Bridge listener. Every inbound driver frame is dispatched in its own
task so a long wait never blocks other requests on the same channel.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import Any

from . import BRIDGE_PROTOCOL_VERSION
from .agent_bridge import AgentBridge
from .channel import DriverChannel
from .config import BridgeConfig
from .envelope import TYPE_PING, event
from .server import CommandContext, CommandDispatcher, create_default_registry
from .surface import BrowserControlSurface

logger = logging.getLogger("tab_bridge.service")


class BridgeService:
    def __init__(self, config: BridgeConfig | None = None, *, surface: BrowserControlSurface | None = None) -> None:
        self.config = config or BridgeConfig()
        self._owns_surface = surface is None
        if surface is None:
            from .cdp import CdpBrowser

            surface = CdpBrowser.from_config(self.config)
        self.surface = surface
        self.agents = AgentBridge.from_config(surface, self.config, on_push=self._push_event)
        self.ctx = CommandContext(
            surface=surface,
            config=self.config,
            agents=self.agents,
            status=self.status,
            reconnect=self.reconnect,
        )
        self.dispatcher = CommandDispatcher(create_default_registry(), self.ctx)
        self.channel = DriverChannel(
            self.config.driver_url,
            reconnect_delay=self.config.reconnect_delay,
            version=BRIDGE_PROTOCOL_VERSION,
            on_message=self._on_driver_message,
        )
        self._tasks: set[asyncio.Task] = set()
        self._heartbeat_task: asyncio.Task | None = None
        self._started_at: float | None = None

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    async def start(self) -> None:
        await self.agents.start()
        self._started_at = time.time()
        if not await self.channel.open():
            logger.warning("Driver at %s unreachable; retrying every %ss", self.config.driver_url, self.config.reconnect_delay)
        if self.config.heartbeat_interval > 0 and self._heartbeat_task is None:
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(), name="driver-heartbeat")

    async def stop(self) -> None:
        hb, self._heartbeat_task = self._heartbeat_task, None
        if hb is not None:
            hb.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await hb
        await self.channel.close()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        await self.agents.stop()
        if self._owns_surface:
            close = getattr(self.surface, "close", None)
            if callable(close):
                close()

    async def serve_forever(self) -> None:
        await self.start()
        try:
            await asyncio.Event().wait()
        finally:
            await self.stop()

    async def reconnect(self, force: bool = False) -> None:
        """Reconnect the driver leg; an open channel is only dropped when ``force`` is set."""
        if self.channel.is_open and not force:
            return
        # Runs detached: the reply to bridge.reconnect goes out before the socket drops.
        self._spawn(self.channel.reconnect(), name="driver-reconnect")

    def status(self) -> dict[str, Any]:
        return {
            "driver": {
                "url": self.config.driver_url,
                "state": self.channel.state.value,
                "connects": self.channel.connect_count,
            },
            "uptime": round(time.time() - self._started_at, 3) if self._started_at else 0.0,
            "inFlight": self.dispatcher.in_flight,
            "handled": self.dispatcher.handled,
            "failed": self.dispatcher.failed,
        }

    # ─────────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────────

    def _spawn(self, coro: Any, *, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _on_driver_message(self, raw: Any) -> None:
        self._spawn(self._dispatch(raw, self.channel.connect_count), name="driver-command")

    async def _dispatch(self, raw: Any, generation: int) -> None:
        reply = await self.dispatcher.handle_raw(raw, scope=generation)
        if reply is None:
            return
        # Replies belong to the connection the request arrived on.
        if self.channel.connect_count != generation:
            logger.info("Dropped reply for id %r; driver connection was replaced", reply.get("id"))
            return
        await self.channel.send(reply)

    async def _push_event(self, tab_id: str, name: str, data: dict[str, Any]) -> None:
        if not await self.channel.send(event(name, tab_id, data)):
            logger.info("Dropped %s event for tab %s; driver not connected", name, tab_id)

    async def _heartbeat_loop(self) -> None:
        interval = self.config.heartbeat_interval
        while True:
            await asyncio.sleep(interval)
            if self.channel.is_open:
                await self.channel.send({"type": TYPE_PING, "ts": int(time.time() * 1000)})


__all__ = ["BridgeService"]
