"""Wire envelope helpers shared by both transport legs."""

from __future__ import annotations

import json
from typing import Any

from . import BRIDGE_PROTOCOL_VERSION

TYPE_CONNECTED = "connected"
TYPE_RESPONSE = "response"
TYPE_ERROR = "error"
TYPE_ACK = "ack"
TYPE_PING = "ping"
TYPE_PONG = "pong"
TYPE_EVENT = "event"

# Inbound frames that are acknowledged locally and never answered.
CONTROL_TYPES = frozenset({TYPE_ACK, TYPE_PONG})
RESPONSE_TYPES = frozenset({TYPE_RESPONSE, TYPE_ERROR})


class FrameDecodeError(ValueError):
    pass


def decode(raw: str | bytes) -> dict[str, Any]:
    """Parse one raw frame. Raises FrameDecodeError on anything but a JSON object."""
    if isinstance(raw, bytes | bytearray):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise FrameDecodeError(f"Invalid frame encoding: {exc}") from exc
    try:
        msg = json.loads(raw)
    except (TypeError, ValueError) as exc:
        raise FrameDecodeError(f"Invalid JSON: {exc}") from exc
    if not isinstance(msg, dict):
        raise FrameDecodeError("Invalid frame: expected a JSON object")
    return msg


def encode(frame: dict[str, Any]) -> str:
    return json.dumps(frame, ensure_ascii=False)


def response(req_id: Any, result: Any) -> dict[str, Any]:
    return {"id": req_id, "type": TYPE_RESPONSE, "result": result}


def error(req_id: Any, message: Any) -> dict[str, Any]:
    return {"id": req_id, "type": TYPE_ERROR, "error": str(message)}


def connected(version: str = BRIDGE_PROTOCOL_VERSION) -> dict[str, Any]:
    return {"type": TYPE_CONNECTED, "version": version}


def event(name: str, tab_id: Any, data: Any) -> dict[str, Any]:
    return {"type": TYPE_EVENT, "event": name, "tabId": tab_id, "data": data}


def is_response(frame: dict[str, Any]) -> bool:
    return frame.get("type") in RESPONSE_TYPES
