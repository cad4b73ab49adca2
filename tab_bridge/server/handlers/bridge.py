"""
Bridge self-management: connection status and forced driver-leg reconnect.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ... import BRIDGE_PROTOCOL_VERSION
from ...errors import BridgeError

if TYPE_CHECKING:
    from ..context import CommandContext


async def handle_status(ctx: CommandContext, params: dict[str, Any]) -> Any:
    status: dict[str, Any] = {"version": BRIDGE_PROTOCOL_VERSION}
    if ctx.status is not None:
        status.update(ctx.status())
    if ctx.agents is not None:
        status["agents"] = ctx.agents.status()
    return status


async def handle_reconnect(ctx: CommandContext, params: dict[str, Any]) -> Any:
    if ctx.reconnect is None:
        raise BridgeError("Reconnect is not supported")
    await ctx.reconnect(bool(params.get("force")))
    return {"success": True}


BRIDGE_HANDLERS: dict[str, tuple] = {
    "bridge.status": (handle_status, ()),
    "bridge.reconnect": (handle_reconnect, ()),
}
