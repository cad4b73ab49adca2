"""Length-prefixed JSON framing for the agent leg (4-byte little-endian size + UTF-8 JSON)."""

from __future__ import annotations

import asyncio
import json
import struct
from typing import Any

MAX_FRAME_BYTES = 8_000_000


async def read_frame(reader: asyncio.StreamReader) -> dict[str, Any] | None:
    """Read one frame. Returns None on EOF, oversized or undecodable frames."""
    try:
        header = await reader.readexactly(4)
    except (asyncio.IncompleteReadError, ConnectionError):
        return None
    (length,) = struct.unpack("<I", header)
    if length <= 0 or length > MAX_FRAME_BYTES:
        return None
    try:
        raw = await reader.readexactly(int(length))
    except (asyncio.IncompleteReadError, ConnectionError):
        return None
    try:
        obj = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return None
    return obj if isinstance(obj, dict) else None


async def write_frame(writer: asyncio.StreamWriter, msg: dict[str, Any]) -> None:
    raw = json.dumps(msg, ensure_ascii=False, separators=(",", ":")).encode("utf-8")
    writer.write(struct.pack("<I", len(raw)))
    writer.write(raw)
    await writer.drain()
