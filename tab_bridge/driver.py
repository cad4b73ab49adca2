"""
Driver endpoint: the WebSocket server the bridge connects to.

Design goals:
- Sync API for scripts and tests (blocking ``call``), async core running in a
  dedicated daemon thread; ``call_async`` for callers already on that loop.
- One bridge connection at a time; a reconnecting bridge replaces the old
  connection and every request pending on the old one is rejected.
- Push events (``{"type": "event"}``) are kept in a bounded buffer and
  optionally handed to a callback.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from functools import partial
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed

from .correlator import RequestCorrelator
from .envelope import (
    RESPONSE_TYPES,
    TYPE_ACK,
    TYPE_CONNECTED,
    TYPE_EVENT,
    TYPE_PING,
    TYPE_PONG,
    FrameDecodeError,
    decode,
    encode,
)
from .errors import BridgeError, ChannelClosedError

logger = logging.getLogger("tab_bridge.driver")

DEFAULT_TIMEOUT = 30.0


class DriverServer:
    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 8765,
        *,
        request_timeout: float = DEFAULT_TIMEOUT,
        on_event: Callable[[dict[str, Any]], None] | None = None,
        max_events: int = 500,
    ) -> None:
        self.host = host
        self.port = int(port)
        self.request_timeout = float(request_timeout)
        self._on_event = on_event

        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._ready = threading.Event()
        self._connected = threading.Event()

        self._server: Any | None = None
        self._stop_event: asyncio.Event | None = None
        self._ws: Any | None = None
        self._bridge_version: str | None = None
        self._connects = 0
        self._correlator = RequestCorrelator(prefix="drv-")
        self._events: deque[dict[str, Any]] = deque(maxlen=max_events)
        self._bind_error: str | None = None

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    def start(self, *, wait_timeout: float = 5.0) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._ready.clear()
        t = threading.Thread(target=self._run_thread, name="tab-bridge-driver", daemon=True)
        self._thread = t
        t.start()
        if not self._ready.wait(timeout=max(0.05, float(wait_timeout))):
            raise RuntimeError(f"Driver endpoint failed to start on {self.host}:{self.port}")
        with self._lock:
            bind_error = self._bind_error
        if bind_error:
            raise RuntimeError(f"Driver endpoint bind failed on {self.host}:{self.port}: {bind_error}")

    def stop(self, *, timeout: float = 2.0) -> None:
        loop = self._loop
        stop_event = self._stop_event
        if loop is not None and stop_event is not None and not loop.is_closed():
            with contextlib.suppress(RuntimeError):
                loop.call_soon_threadsafe(stop_event.set)
        t = self._thread
        if t is not None:
            t.join(timeout=timeout)

    def status(self) -> dict[str, Any]:
        with self._lock:
            return {
                "listening": self._server is not None,
                "host": self.host,
                "port": self.port,
                "connected": self._ws is not None and self._connected.is_set(),
                "bridgeVersion": self._bridge_version,
                "connects": self._connects,
                "pending": len(self._correlator),
                "bufferedEvents": len(self._events),
            }

    def is_connected(self) -> bool:
        return self._connected.is_set()

    def wait_for_connection(self, *, timeout: float = 5.0) -> bool:
        """Block until the bridge has connected and announced itself, or timeout."""
        return bool(self._connected.wait(timeout=max(0.0, float(timeout))))

    # ─────────────────────────────────────────────────────────────────────────
    # Commands
    # ─────────────────────────────────────────────────────────────────────────

    def call(self, command: str, params: dict[str, Any] | None = None, *, timeout: float | None = None) -> Any:
        """Send one command to the bridge and block for its result (raises RemoteError on ``error``)."""
        loop = self._loop
        if loop is None:
            raise ChannelClosedError("Driver endpoint is not running")
        budget = self.request_timeout if timeout is None else float(timeout)
        fut = asyncio.run_coroutine_threadsafe(self.call_async(command, params, timeout=budget), loop)
        return fut.result(timeout=budget + 1.0)

    async def call_async(
        self, command: str, params: dict[str, Any] | None = None, *, timeout: float | None = None
    ) -> Any:
        if not isinstance(command, str) or not command.strip():
            raise BridgeError("command is required")
        ws = self._ws
        if ws is None:
            raise ChannelClosedError("Bridge is not connected")
        payload: dict[str, Any] = {"command": command}
        if params is not None:
            payload["params"] = params
        return await self._correlator.issue(
            partial(self._send, ws),
            payload,
            timeout=self.request_timeout if timeout is None else timeout,
        )

    def pop_events(self) -> list[dict[str, Any]]:
        with self._lock:
            events = list(self._events)
            self._events.clear()
        return events

    # ─────────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────────

    def _run_thread(self) -> None:
        asyncio.run(self._run_async())

    async def _run_async(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()
        try:
            server = await websockets.serve(self._handler, self.host, self.port, max_size=16_000_000, ping_interval=None)
        except OSError as exc:
            with self._lock:
                self._bind_error = str(exc)
            self._ready.set()
            return
        with self._lock:
            self._server = server
            sockets = list(getattr(server, "sockets", None) or [])
            if sockets:
                self.port = int(sockets[0].getsockname()[1])
        logger.info("Driver endpoint listening on %s:%s", self.host, self.port)
        self._ready.set()
        try:
            await self._stop_event.wait()
        finally:
            await self._shutdown_async()

    async def _shutdown_async(self) -> None:
        with self._lock:
            srv, self._server = self._server, None
            ws = self._ws
        if ws is not None:
            with contextlib.suppress(Exception):
                await ws.close()
        self._disconnect(ws)
        if srv is not None:
            srv.close()
            with contextlib.suppress(Exception):
                await srv.wait_closed()

    async def _handler(self, ws: Any) -> None:
        with self._lock:
            old, self._ws = self._ws, ws
            self._connects += 1
            if old is not None:
                self._bridge_version = None
        if old is not None:
            logger.info("Bridge reconnected; replacing previous connection")
            rejected = self._correlator.reject_all(ChannelClosedError("Bridge connection replaced"))
            if rejected:
                logger.warning("Rejected %d pending request(s) on bridge replacement", rejected)
            self._connected.clear()
            with contextlib.suppress(Exception):
                await old.close()
        try:
            async for raw in ws:
                await self._on_message(ws, raw)
        except ConnectionClosed as exc:
            logger.debug("Bridge connection closed: %s", exc)
        finally:
            self._disconnect(ws)

    def _disconnect(self, ws: Any) -> None:
        with self._lock:
            if ws is None or self._ws is not ws:
                return
            self._ws = None
            self._bridge_version = None
        self._connected.clear()
        rejected = self._correlator.reject_all(ChannelClosedError("Bridge disconnected"))
        if rejected:
            logger.warning("Rejected %d pending request(s) on bridge disconnect", rejected)

    async def _on_message(self, ws: Any, raw: Any) -> None:
        try:
            msg = decode(raw)
        except FrameDecodeError as exc:
            logger.warning("Ignoring malformed frame from bridge: %s", exc)
            return
        mtype = msg.get("type")
        if mtype in RESPONSE_TYPES:
            self._correlator.resolve(msg)
            return
        if mtype == TYPE_CONNECTED:
            with self._lock:
                self._bridge_version = str(msg.get("version") or "")
            await self._send(ws, {"type": TYPE_ACK})
            self._connected.set()
            logger.info("Bridge connected (version %s)", msg.get("version"))
            return
        if mtype == TYPE_PING:
            await self._send(ws, {"type": TYPE_PONG, "ts": int(time.time() * 1000)})
            return
        if mtype == TYPE_EVENT:
            with self._lock:
                self._events.append(msg)
            cb = self._on_event
            if cb is not None:
                try:
                    cb(msg)
                except Exception:  # noqa: BLE001
                    logger.exception("Event callback failed")
            return
        logger.debug("Ignoring frame type=%r from bridge", mtype)

    async def _send(self, ws: Any, payload: dict[str, Any]) -> None:
        await ws.send(encode(payload))


__all__ = ["DriverServer"]
