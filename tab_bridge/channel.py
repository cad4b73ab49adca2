"""Reconnecting duplex channels for both transport legs.

``DriverChannel`` is the WebSocket link to the external driver: a fixed
reconnect delay, retried forever, and sends on a non-open channel are dropped.
``AgentChannel`` is the page-agent link to the Agent Bridge: exponential
backoff with a bounded number of attempts, and sends on a non-open channel
raise ``ChannelClosedError``.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed

from . import BRIDGE_PROTOCOL_VERSION
from .envelope import connected, encode
from .errors import ChannelClosedError
from .framing import read_frame, write_frame

logger = logging.getLogger("tab_bridge.channel")

SleepFunc = Callable[[float], Awaitable[Any]]


class ChannelState(str, enum.Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class FixedDelay:
    """Retry forever with the same delay."""

    def __init__(self, delay: float) -> None:
        self.delay = float(delay)
        self.attempts = 0

    def next_delay(self) -> float | None:
        self.attempts += 1
        return self.delay

    def reset(self) -> None:
        self.attempts = 0


class ExponentialBackoff:
    """Doubling delay; gives up (returns None) after ``max_attempts`` consecutive failures."""

    def __init__(self, base: float, max_attempts: int, *, max_delay: float = 60.0) -> None:
        self.base = float(base)
        self.max_attempts = int(max_attempts)
        self.max_delay = float(max_delay)
        self.attempts = 0

    def next_delay(self) -> float | None:
        if self.attempts >= self.max_attempts:
            return None
        delay = min(self.base * (2**self.attempts), self.max_delay)
        self.attempts += 1
        return delay

    def reset(self) -> None:
        self.attempts = 0


class ReconnectingChannel:
    """Connect/reconnect state machine shared by both legs.

    Subclasses implement ``_connect``, ``_receive``, ``_send_raw`` and ``_disconnect``.
    Only a transport close schedules a reconnect; at most one reconnect timer runs.
    """

    drop_when_closed = True

    def __init__(
        self,
        *,
        name: str,
        policy: FixedDelay | ExponentialBackoff,
        on_message: Callable[[Any], Awaitable[None]] | None = None,
        on_open: Callable[[], Awaitable[None]] | None = None,
        on_close: Callable[[], Awaitable[None]] | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        self.name = name
        self.policy = policy
        self.state = ChannelState.CLOSED
        self.gave_up = False
        self.connect_count = 0
        self._on_message = on_message
        self._on_open = on_open
        self._on_close = on_close
        self._sleep = sleep
        self._stopped = False
        self._reader_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None

    @property
    def is_open(self) -> bool:
        return self.state is ChannelState.OPEN

    # ─────────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────────

    async def open(self) -> bool:
        """Connect if not already open/connecting. Schedules retries on failure."""
        if self.state is not ChannelState.CLOSED:
            return self.is_open
        self._stopped = False
        if self.gave_up:
            self.policy.reset()
            self.gave_up = False
        if await self._attempt():
            return True
        self._schedule_reconnect()
        return False

    async def close(self) -> None:
        self._stopped = True
        for task in (self._reconnect_task, self._reader_task):
            if task is not None and task is not asyncio.current_task():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError, Exception):
                    await task
        self._reconnect_task = None
        self._reader_task = None
        was_open = self.state is ChannelState.OPEN
        self.state = ChannelState.CLOSED
        await self._disconnect()
        if was_open:
            await self._notify_closed()

    async def reconnect(self) -> bool:
        """Drop the current connection (if any) and connect again with a fresh policy."""
        await self.close()
        self.policy.reset()
        return await self.open()

    async def send(self, frame: dict[str, Any]) -> bool:
        if self.state is not ChannelState.OPEN:
            if self.drop_when_closed:
                logger.debug("%s: dropping frame while %s", self.name, self.state.value)
                return False
            raise ChannelClosedError(f"{self.name} channel is not open")
        try:
            await self._send_raw(frame)
        except Exception as exc:  # noqa: BLE001
            logger.warning("%s: send failed: %s", self.name, exc)
            if self.drop_when_closed:
                return False
            raise ChannelClosedError(f"{self.name} send failed: {exc}") from exc
        return True

    # ─────────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────────

    async def _attempt(self) -> bool:
        self.state = ChannelState.CONNECTING
        try:
            await self._connect()
        except Exception as exc:  # noqa: BLE001
            logger.warning("%s: connect failed: %s", self.name, exc)
            self.state = ChannelState.CLOSED
            return False
        self.state = ChannelState.OPEN
        self.connect_count += 1
        self.policy.reset()
        logger.info("%s: connected", self.name)
        self._reader_task = asyncio.create_task(self._read_loop(), name=f"{self.name}-reader")
        if self._on_open is not None:
            try:
                await self._on_open()
            except Exception:  # noqa: BLE001
                logger.exception("%s: on_open hook failed", self.name)
        return True

    def _schedule_reconnect(self) -> None:
        if self._stopped:
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.create_task(self._reconnect_loop(), name=f"{self.name}-reconnect")

    async def _reconnect_loop(self) -> None:
        while not self._stopped and self.state is ChannelState.CLOSED:
            delay = self.policy.next_delay()
            if delay is None:
                self.gave_up = True
                logger.warning("%s: giving up after %d attempts", self.name, self.policy.attempts)
                return
            await self._sleep(delay)
            if self._stopped or self.state is not ChannelState.CLOSED:
                return
            logger.info("%s: attempting to reconnect", self.name)
            if await self._attempt():
                return

    async def _read_loop(self) -> None:
        try:
            async for msg in self._receive():
                if self._on_message is None:
                    continue
                try:
                    await self._on_message(msg)
                except Exception:  # noqa: BLE001
                    logger.exception("%s: message handler failed", self.name)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.warning("%s: transport error: %s", self.name, exc)
        if self._stopped:
            return
        logger.info("%s: disconnected", self.name)
        self.state = ChannelState.CLOSED
        await self._disconnect()
        await self._notify_closed()
        self._schedule_reconnect()

    async def _notify_closed(self) -> None:
        if self._on_close is None:
            return
        try:
            await self._on_close()
        except Exception:  # noqa: BLE001
            logger.exception("%s: on_close hook failed", self.name)

    async def _connect(self) -> None:
        raise NotImplementedError

    def _receive(self):  # noqa: ANN202
        raise NotImplementedError

    async def _send_raw(self, frame: dict[str, Any]) -> None:
        raise NotImplementedError

    async def _disconnect(self) -> None:
        raise NotImplementedError


class DriverChannel(ReconnectingChannel):
    """WebSocket client leg towards the driver; announces itself with a ``connected`` frame."""

    def __init__(
        self,
        url: str,
        *,
        reconnect_delay: float = 5.0,
        version: str = BRIDGE_PROTOCOL_VERSION,
        on_message: Callable[[Any], Awaitable[None]] | None = None,
        on_open: Callable[[], Awaitable[None]] | None = None,
        on_close: Callable[[], Awaitable[None]] | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        super().__init__(
            name="driver",
            policy=FixedDelay(reconnect_delay),
            on_message=on_message,
            on_open=on_open,
            on_close=on_close,
            sleep=sleep,
        )
        self.url = url
        self.version = version
        self._ws: Any | None = None

    async def _connect(self) -> None:
        ws = await websockets.connect(self.url, open_timeout=5.0, ping_interval=None, max_size=16_000_000)
        try:
            await ws.send(encode(connected(self.version)))
        except Exception:
            with contextlib.suppress(Exception):
                await ws.close()
            raise
        self._ws = ws

    async def _receive(self):  # noqa: ANN202
        ws = self._ws
        if ws is None:
            return
        try:
            async for raw in ws:
                yield raw
        except ConnectionClosed as exc:
            logger.debug("driver: connection closed: %s", exc)

    async def _send_raw(self, frame: dict[str, Any]) -> None:
        ws = self._ws
        if ws is None:
            raise ChannelClosedError("driver channel has no connection")
        await ws.send(encode(frame))

    async def _disconnect(self) -> None:
        ws, self._ws = self._ws, None
        if ws is not None:
            with contextlib.suppress(Exception):
                await ws.close()


class AgentChannel(ReconnectingChannel):
    """Page-agent leg: local IPC to the Agent Bridge with a hello/helloAck handshake."""

    drop_when_closed = False

    def __init__(
        self,
        tab_id: str,
        *,
        host: str = "127.0.0.1",
        port: int = 8766,
        socket_path: str | None = None,
        backoff: float = 1.0,
        max_attempts: int = 5,
        hello_timeout: float = 2.5,
        on_message: Callable[[Any], Awaitable[None]] | None = None,
        on_open: Callable[[], Awaitable[None]] | None = None,
        on_close: Callable[[], Awaitable[None]] | None = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        super().__init__(
            name=f"agent[{tab_id}]",
            policy=ExponentialBackoff(backoff, max_attempts),
            on_message=on_message,
            on_open=on_open,
            on_close=on_close,
            sleep=sleep,
        )
        self.tab_id = str(tab_id)
        self.host = host
        self.port = int(port)
        self.socket_path = socket_path
        self.hello_timeout = float(hello_timeout)
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._write_lock = asyncio.Lock()

    async def _connect(self) -> None:
        if self.socket_path:
            reader, writer = await asyncio.open_unix_connection(self.socket_path)
        else:
            reader, writer = await asyncio.open_connection(self.host, self.port)
        try:
            await write_frame(
                writer,
                {"type": "hello", "tabId": self.tab_id, "protocolVersion": BRIDGE_PROTOCOL_VERSION},
            )
            ack = await asyncio.wait_for(read_frame(reader), timeout=self.hello_timeout)
            if not isinstance(ack, dict) or ack.get("type") != "helloAck":
                raise ChannelClosedError("agent helloAck invalid")
        except BaseException:
            writer.close()
            raise
        self._reader, self._writer = reader, writer

    async def _receive(self):  # noqa: ANN202
        reader = self._reader
        if reader is None:
            return
        while True:
            msg = await read_frame(reader)
            if msg is None:
                return
            yield msg

    async def _send_raw(self, frame: dict[str, Any]) -> None:
        writer = self._writer
        if writer is None:
            raise ChannelClosedError(f"{self.name} channel has no connection")
        async with self._write_lock:
            await write_frame(writer, frame)

    async def _disconnect(self) -> None:
        writer, self._writer = self._writer, None
        self._reader = None
        if writer is not None:
            writer.close()
            with contextlib.suppress(Exception):
                await writer.wait_closed()


__all__ = [
    "AgentChannel",
    "ChannelState",
    "DriverChannel",
    "ExponentialBackoff",
    "FixedDelay",
    "ReconnectingChannel",
]
