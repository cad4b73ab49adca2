"""
Agent Bridge: the second hop between the dispatcher and page agents.

Page agents connect over local IPC (TCP loopback or a Unix socket) using
length-prefixed JSON frames and announce their tab with ``hello``. One agent
is registered per tab; a new agent for the same tab replaces the old one.

Forwarded requests get ids from a namespace of their own (``agent-<n>``), so
they can never collide with driver-facing request ids. When no agent is
connected for a tab the command runs through a one-shot script injection
instead, producing the same result shape.
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import logging
import os
import time
from dataclasses import dataclass, field
from functools import partial
from typing import TYPE_CHECKING, Any

from . import BRIDGE_PROTOCOL_VERSION
from .correlator import RequestCorrelator
from .envelope import RESPONSE_TYPES, TYPE_PING, TYPE_PONG
from .errors import AgentTimeoutError, ChannelClosedError, RequestTimeout
from .framing import read_frame, write_frame
from .tools.page_ops import TYPED_COMMANDS, PageState, SurfacePage, run_page_command

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from .config import BridgeConfig
    from .surface import BrowserControlSurface

    PushCallback = Callable[[str, str, dict[str, Any]], Awaitable[None]]

logger = logging.getLogger("tab_bridge.agents")

HELLO_TIMEOUT = 2.5


@dataclass(slots=True)
class AgentPeer:
    tab_id: str
    writer: asyncio.StreamWriter
    correlator: RequestCorrelator
    write_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    connected_at: float = field(default_factory=time.time)
    forwarded: int = 0

    async def send(self, frame: dict[str, Any]) -> None:
        async with self.write_lock:
            await write_frame(self.writer, frame)

    def close(self) -> None:
        with contextlib.suppress(Exception):
            self.writer.close()


class AgentBridge:
    def __init__(
        self,
        surface: BrowserControlSurface,
        *,
        host: str = "127.0.0.1",
        port: int = 8766,
        socket_path: str | None = None,
        timeout: float = 10.0,
        hello_timeout: float = HELLO_TIMEOUT,
        on_push: PushCallback | None = None,
    ) -> None:
        self.surface = surface
        self.host = host
        self.port = int(port)
        self.socket_path = socket_path
        self.timeout = float(timeout)
        self.hello_timeout = float(hello_timeout)
        self.on_push = on_push
        self._ids = itertools.count(1)
        self._peers: dict[str, AgentPeer] = {}
        self._fallback_states: dict[str, PageState] = {}
        self._server: asyncio.Server | None = None
        self._conn_tasks: set[asyncio.Task] = set()

    @classmethod
    def from_config(
        cls, surface: BrowserControlSurface, config: BridgeConfig, *, on_push: PushCallback | None = None
    ) -> AgentBridge:
        return cls(
            surface,
            host=config.agent_host,
            port=config.agent_port,
            socket_path=config.agent_socket,
            timeout=config.agent_timeout,
            on_push=on_push,
        )

    def _next_id(self) -> str:
        return f"agent-{next(self._ids)}"

    # ─────────────────────────────────────────────────────────────────────────
    # Listener lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def listening(self) -> bool:
        return self._server is not None

    @property
    def address(self) -> str:
        if self.socket_path:
            return f"unix:{self.socket_path}"
        return f"{self.host}:{self.port}"

    async def start(self) -> None:
        if self._server is not None:
            return
        if self.socket_path:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(self.socket_path)
            self._server = await asyncio.start_unix_server(self._handle_connection, path=self.socket_path)
        else:
            self._server = await asyncio.start_server(self._handle_connection, self.host, self.port)
            sockets = self._server.sockets or []
            if sockets:
                self.port = int(sockets[0].getsockname()[1])
        logger.info("Agent bridge listening on %s", self.address)

    async def stop(self) -> None:
        server, self._server = self._server, None
        if server is not None:
            server.close()
        for tab_id in list(self._peers):
            peer = self._peers.pop(tab_id)
            peer.correlator.reject_all(ChannelClosedError("Agent bridge stopped"))
            peer.close()
        for task in list(self._conn_tasks):
            task.cancel()
        for task in list(self._conn_tasks):
            with contextlib.suppress(asyncio.CancelledError, Exception):
                await task
        if server is not None:
            with contextlib.suppress(Exception):
                await server.wait_closed()
        for state in self._fallback_states.values():
            state.close()
        self._fallback_states.clear()
        if self.socket_path:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(self.socket_path)

    # ─────────────────────────────────────────────────────────────────────────
    # Agent connections
    # ─────────────────────────────────────────────────────────────────────────

    async def _handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        task = asyncio.current_task()
        if task is not None:
            self._conn_tasks.add(task)
        try:
            try:
                hello = await asyncio.wait_for(read_frame(reader), timeout=self.hello_timeout)
            except asyncio.TimeoutError:
                hello = None
            if not isinstance(hello, dict) or hello.get("type") != "hello":
                hello = {}
            tab_id = str(hello.get("tabId") or "").strip()
            if not tab_id:
                logger.warning("Rejecting agent connection without a valid hello")
                return
            peer = AgentPeer(tab_id=tab_id, writer=writer, correlator=RequestCorrelator(id_factory=self._next_id))
            self._register(peer)
            try:
                await peer.send({"type": "helloAck", "protocolVersion": BRIDGE_PROTOCOL_VERSION, "tabId": tab_id})
                await self._peer_loop(peer, reader)
            finally:
                self._unregister(peer)
        finally:
            with contextlib.suppress(Exception):
                writer.close()
            if task is not None:
                self._conn_tasks.discard(task)

    def _register(self, peer: AgentPeer) -> None:
        old = self._peers.get(peer.tab_id)
        self._peers[peer.tab_id] = peer
        if old is not None:
            logger.info("Agent for tab %s replaced", peer.tab_id)
            old.correlator.reject_all(ChannelClosedError(f"Agent for tab {peer.tab_id} was replaced"))
            old.close()
        else:
            logger.info("Agent connected for tab %s", peer.tab_id)

    def _unregister(self, peer: AgentPeer) -> None:
        if self._peers.get(peer.tab_id) is peer:
            del self._peers[peer.tab_id]
            logger.info("Agent disconnected for tab %s", peer.tab_id)
        rejected = peer.correlator.reject_all(ChannelClosedError(f"Agent for tab {peer.tab_id} disconnected"))
        if rejected:
            logger.warning("Rejected %d pending request(s) for tab %s", rejected, peer.tab_id)

    async def _peer_loop(self, peer: AgentPeer, reader: asyncio.StreamReader) -> None:
        while True:
            msg = await read_frame(reader)
            if msg is None:
                return
            mtype = msg.get("type")
            if mtype in RESPONSE_TYPES:
                peer.correlator.resolve(msg)
            elif mtype == "mutations":
                data = {"observerId": msg.get("observerId"), "mutations": msg.get("mutations") or []}
                await self._emit(peer.tab_id, "mutations", data)
            elif mtype == TYPE_PING:
                await peer.send({"type": TYPE_PONG})
            else:
                logger.debug("Ignoring agent frame type=%r from tab %s", mtype, peer.tab_id)

    async def _emit(self, tab_id: str, name: str, data: dict[str, Any]) -> None:
        if self.on_push is None:
            logger.debug("No push consumer for %s from tab %s", name, tab_id)
            return
        try:
            await self.on_push(tab_id, name, data)
        except Exception:  # noqa: BLE001
            logger.exception("Push consumer failed for %s from tab %s", name, tab_id)

    async def _fallback_push(self, tab_id: str, frame: dict[str, Any]) -> None:
        data = {"observerId": frame.get("observerId"), "mutations": frame.get("mutations") or []}
        await self._emit(tab_id, str(frame.get("type") or "mutations"), data)

    # ─────────────────────────────────────────────────────────────────────────
    # Forwarding
    # ─────────────────────────────────────────────────────────────────────────

    def has_agent(self, tab_id: str) -> bool:
        return str(tab_id) in self._peers

    async def forward(
        self, tab_id: str, command: str, params: dict[str, Any] | None = None, *, timeout: float | None = None
    ) -> Any:
        tab_id = str(tab_id)
        params = dict(params or {})
        peer = self._peers.get(tab_id)
        if peer is None:
            return await self._run_fallback(tab_id, command, params)

        if command in TYPED_COMMANDS:
            frame = {"type": command, "params": params}
        else:
            frame = {"command": command, "params": params}
        peer.forwarded += 1
        try:
            return await peer.correlator.issue(peer.send, frame, timeout=timeout or self.timeout)
        except RequestTimeout as exc:
            raise AgentTimeoutError(f"timeout waiting for agent: {command} (tab {tab_id})") from exc
        except (ConnectionError, OSError) as exc:
            raise ChannelClosedError(f"Agent for tab {tab_id} is unreachable: {exc}") from exc

    async def _run_fallback(self, tab_id: str, command: str, params: dict[str, Any]) -> Any:
        logger.debug("No agent for tab %s; running %s via script injection", tab_id, command)
        state = self._fallback_states.setdefault(tab_id, PageState())
        page = SurfacePage(self.surface, tab_id)
        return await run_page_command(page, state, command, params, push=partial(self._fallback_push, tab_id))

    def status(self) -> dict[str, Any]:
        return {
            "listening": self.listening,
            "address": self.address,
            "tabs": {
                tab_id: {
                    "connectedAt": peer.connected_at,
                    "pending": len(peer.correlator),
                    "forwarded": peer.forwarded,
                }
                for tab_id, peer in self._peers.items()
            },
        }


__all__ = ["AgentBridge", "AgentPeer"]
