"""
Polling handlers. A timeout is a successful ``{found: false}`` result, not an error.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ...tools.wait import (
    DEFAULT_IFRAME_TIMEOUT_MS,
    DEFAULT_TIMEOUT_MS,
    wait_for_element,
    wait_for_iframe,
    wait_for_navigation,
)
from .common import tab_id_of

if TYPE_CHECKING:
    from ..context import CommandContext


async def handle_wait_for_element(ctx: CommandContext, params: dict[str, Any]) -> Any:
    return await wait_for_element(
        ctx.surface,
        tab_id_of(params),
        str(params["selector"]),
        timeout_ms=params.get("timeout") or DEFAULT_TIMEOUT_MS,
        sleep=ctx.sleep,
        clock=ctx.clock,
    )


async def handle_wait_for_navigation(ctx: CommandContext, params: dict[str, Any]) -> Any:
    return await wait_for_navigation(
        ctx.surface,
        tab_id_of(params),
        url=params.get("url"),
        timeout_ms=params.get("timeout") or DEFAULT_TIMEOUT_MS,
        sleep=ctx.sleep,
        clock=ctx.clock,
    )


async def handle_wait_for_iframe(ctx: CommandContext, params: dict[str, Any]) -> Any:
    return await wait_for_iframe(
        ctx.surface,
        tab_id_of(params),
        str(params["selector"]),
        timeout_ms=params.get("timeout") or DEFAULT_IFRAME_TIMEOUT_MS,
        sleep=ctx.sleep,
        clock=ctx.clock,
    )


WAIT_HANDLERS: dict[str, tuple] = {
    "tabs.waitForElement": (handle_wait_for_element, ("tabId", "selector")),
    "tabs.waitForNavigation": (handle_wait_for_navigation, ("tabId",)),
    "tabs.waitForIframe": (handle_wait_for_iframe, ("tabId", "selector")),
}
