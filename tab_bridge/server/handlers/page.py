"""
DOM handlers forwarded to the tab's page agent through the Agent Bridge.

Without a live agent connection the bridge runs the same command through a
one-shot script injection, so results have the same shape on both paths.
"""

from __future__ import annotations

from functools import partial
from typing import TYPE_CHECKING, Any

from ...errors import SurfaceError
from .common import tab_id_of

if TYPE_CHECKING:
    from ..context import CommandContext


async def handle_forward(command: str, ctx: CommandContext, params: dict[str, Any]) -> Any:
    if ctx.agents is None:
        raise SurfaceError("Agent bridge is not available")
    tab_id = tab_id_of(params)
    args = {k: v for k, v in params.items() if k != "tabId"}
    return await ctx.agents.forward(tab_id, command, args)


def _forwarded(command: str) -> Any:
    return partial(handle_forward, command)


PAGE_HANDLERS: dict[str, tuple] = {
    "tabs.getElementInfo": (_forwarded("getElementInfo"), ("tabId", "selector")),
    "tabs.highlightElement": (_forwarded("highlightElement"), ("tabId", "selector")),
    "tabs.simulateEvent": (_forwarded("simulateEvent"), ("tabId", "selector", "eventType")),
    "tabs.extractStructuredData": (_forwarded("extractStructuredData"), ("tabId", "rowSelector")),
    "tabs.observeMutations": (_forwarded("observeMutations"), ("tabId",)),
    "tabs.injectCSS": (_forwarded("injectCSS"), ("tabId", "css")),
    "tabs.removeCSS": (_forwarded("removeCSS"), ("tabId", "styleId")),
    "tabs.getAccessibilitySnapshot": (_forwarded("getAccessibilitySnapshot"), ("tabId",)),
}
