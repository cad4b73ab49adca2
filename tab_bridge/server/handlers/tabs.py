"""
Tab lifecycle handlers - thin pass-throughs to the Browser Control Surface.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ...tools.wait import wait_for_tab_load
from .common import tab_id_of

if TYPE_CHECKING:
    from ..context import CommandContext

TAB_FIELDS = ("id", "url", "title", "active", "windowId", "index", "pinned", "audible", "mutedInfo", "status")


async def handle_list_tabs(ctx: CommandContext, params: dict[str, Any]) -> Any:
    tabs = await ctx.surface.list_tabs()
    return [{key: tab.get(key) for key in TAB_FIELDS} for tab in tabs]


async def handle_create_tab(ctx: CommandContext, params: dict[str, Any]) -> Any:
    tab = await ctx.surface.create_tab(
        params.get("url"),
        active=params.get("active") is not False,
        window_id=params.get("windowId"),
        index=params.get("index"),
        pinned=params.get("pinned"),
    )
    return {"id": tab.get("id"), "url": tab.get("url"), "title": tab.get("title")}


async def handle_close_tab(ctx: CommandContext, params: dict[str, Any]) -> Any:
    await ctx.surface.close_tab(tab_id_of(params))
    return {"success": True}


async def handle_activate_tab(ctx: CommandContext, params: dict[str, Any]) -> Any:
    await ctx.surface.update_tab(tab_id_of(params), active=True)
    return {"success": True}


async def handle_reload_tab(ctx: CommandContext, params: dict[str, Any]) -> Any:
    await ctx.surface.reload_tab(tab_id_of(params), bypass_cache=bool(params.get("bypassCache")))
    return {"success": True}


async def handle_navigate(ctx: CommandContext, params: dict[str, Any]) -> Any:
    tab_id = tab_id_of(params)
    await ctx.surface.update_tab(tab_id, url=params["url"])
    await wait_for_tab_load(
        ctx.surface, tab_id, timeout=ctx.config.navigation_timeout, sleep=ctx.sleep, clock=ctx.clock
    )
    return {"success": True}


async def handle_go_back(ctx: CommandContext, params: dict[str, Any]) -> Any:
    await ctx.surface.go_back(tab_id_of(params))
    return {"success": True}


async def handle_go_forward(ctx: CommandContext, params: dict[str, Any]) -> Any:
    await ctx.surface.go_forward(tab_id_of(params))
    return {"success": True}


async def handle_capture_screenshot(ctx: CommandContext, params: dict[str, Any]) -> Any:
    data_url = await ctx.surface.capture_visible_tab(
        params.get("windowId"),
        format=str(params.get("format") or "png"),
        quality=100 if params.get("quality") is None else int(params["quality"]),
    )
    return {"dataUrl": data_url}


TAB_HANDLERS: dict[str, tuple] = {
    "tabs.list": (handle_list_tabs, ()),
    "tabs.create": (handle_create_tab, ()),
    "tabs.close": (handle_close_tab, ("tabId",)),
    "tabs.activate": (handle_activate_tab, ("tabId",)),
    "tabs.reload": (handle_reload_tab, ("tabId",)),
    "tabs.navigate": (handle_navigate, ("tabId", "url")),
    "tabs.goBack": (handle_go_back, ("tabId",)),
    "tabs.goForward": (handle_go_forward, ("tabId",)),
    "tabs.captureScreenshot": (handle_capture_screenshot, ()),
}
