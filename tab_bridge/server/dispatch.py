"""
Command dispatcher: one inbound frame in, at most one envelope out.

Control frames (``ack``/``pong``) produce nothing. Every other frame yields
exactly one ``response`` or ``error`` carrying the request id; a frame that
cannot be parsed yields an ``error`` with ``id: null``. No handler failure
escapes ``handle_frame``.
"""

from __future__ import annotations

import logging
from typing import Any

from ..envelope import CONTROL_TYPES, TYPE_PING, TYPE_PONG, FrameDecodeError, decode, error, response
from ..errors import ValidationError, require
from .context import CommandContext
from .registry import CommandRegistry

logger = logging.getLogger("tab_bridge.dispatch")


def _error_text(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


class CommandDispatcher:
    def __init__(self, registry: CommandRegistry, ctx: CommandContext) -> None:
        self.registry = registry
        self.ctx = ctx
        self._inflight: set[Any] = set()
        self.handled = 0
        self.failed = 0

    @property
    def in_flight(self) -> int:
        return len(self._inflight)

    async def handle_raw(self, raw: str | bytes, *, scope: Any = None) -> dict[str, Any] | None:
        try:
            frame = decode(raw)
        except FrameDecodeError as exc:
            logger.warning("Dropping malformed frame: %s", exc)
            self.failed += 1
            return error(None, exc)
        return await self.handle_frame(frame, scope=scope)

    async def handle_frame(self, frame: dict[str, Any], *, scope: Any = None) -> dict[str, Any] | None:
        """Handle one frame. In-flight ids are tracked per ``scope`` (one per driver connection)."""
        ftype = frame.get("type")
        if ftype in CONTROL_TYPES:
            logger.debug("Received %s", ftype)
            return None
        if ftype == TYPE_PING:
            return {"type": TYPE_PONG}

        req_id = frame.get("id")
        command = frame.get("command")
        if not command:
            self.failed += 1
            return error(req_id, "Command not specified")
        spec = self.registry.get(str(command))
        if spec is None:
            self.failed += 1
            return error(req_id, f"Unknown command: {command}")

        # A reused id while its first request is running is rejected; the first keeps its waiter.
        key = self._inflight_key(scope, req_id)
        if key is not None and key in self._inflight:
            self.failed += 1
            return error(req_id, f"Duplicate request id: {req_id}")

        if key is not None:
            self._inflight.add(key)
        try:
            params = frame.get("params")
            if params is None:
                params = {}
            if not isinstance(params, dict):
                raise ValidationError("params must be an object")
            require(params, *spec.required)
            result = await spec.handler(self.ctx, params)
        except Exception as exc:  # noqa: BLE001
            self.failed += 1
            logger.warning("Command %s (id=%r) failed: %s", command, req_id, _error_text(exc))
            return error(req_id, _error_text(exc))
        finally:
            if key is not None:
                self._inflight.discard(key)
        self.handled += 1
        return response(req_id, result)

    @staticmethod
    def _inflight_key(scope: Any, req_id: Any) -> Any:
        if req_id is None:
            return None
        try:
            hash(req_id)
        except TypeError:
            return scope, repr(req_id)
        return scope, req_id


__all__ = ["CommandDispatcher"]
