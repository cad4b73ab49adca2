"""
Page storage handlers (localStorage / sessionStorage) and cookie CRUD.
"""

from __future__ import annotations

from functools import partial
from typing import TYPE_CHECKING, Any

from ...errors import ValidationError
from ...tools.scripts import STORAGE_CLEAR_JS, STORAGE_GET_JS, STORAGE_SET_JS
from .common import run_script, tab_id_of

if TYPE_CHECKING:
    from ..context import CommandContext

LOCAL = "localStorage"
SESSION = "sessionStorage"


async def handle_get_storage(area: str, ctx: CommandContext, params: dict[str, Any]) -> Any:
    storage = await run_script(ctx, tab_id_of(params), STORAGE_GET_JS, area, params.get("key"))
    return {"storage": storage}


async def handle_set_storage(area: str, ctx: CommandContext, params: dict[str, Any]) -> Any:
    value = params.get("value")
    if value is None:
        raise ValidationError("value is required")
    ok = await run_script(ctx, tab_id_of(params), STORAGE_SET_JS, area, str(params["key"]), str(value))
    return {"success": bool(ok)}


async def handle_clear_storage(area: str, ctx: CommandContext, params: dict[str, Any]) -> Any:
    ok = await run_script(ctx, tab_id_of(params), STORAGE_CLEAR_JS, area)
    return {"success": bool(ok)}


async def handle_get_cookies(ctx: CommandContext, params: dict[str, Any]) -> Any:
    cookies = await ctx.surface.get_cookies(url=params.get("url"), domain=params.get("domain"), name=params.get("name"))
    return {"cookies": cookies}


async def handle_set_cookie(ctx: CommandContext, params: dict[str, Any]) -> Any:
    cookie = {
        "url": params["url"],
        "name": params["name"],
        "value": params.get("value"),
        "domain": params.get("domain"),
        "path": params.get("path") or "/",
        "secure": params.get("secure"),
        "httpOnly": params.get("httpOnly"),
        "expirationDate": params.get("expirationDate"),
    }
    stored = await ctx.surface.set_cookie({k: v for k, v in cookie.items() if v is not None})
    return {"cookie": stored}


async def handle_delete_cookie(ctx: CommandContext, params: dict[str, Any]) -> Any:
    await ctx.surface.remove_cookie(url=params["url"], name=params["name"])
    return {"success": True}


STORAGE_HANDLERS: dict[str, tuple] = {
    "tabs.getLocalStorage": (partial(handle_get_storage, LOCAL), ("tabId",)),
    "tabs.setLocalStorage": (partial(handle_set_storage, LOCAL), ("tabId", "key")),
    "tabs.clearLocalStorage": (partial(handle_clear_storage, LOCAL), ("tabId",)),
    "tabs.getSessionStorage": (partial(handle_get_storage, SESSION), ("tabId",)),
    "tabs.setSessionStorage": (partial(handle_set_storage, SESSION), ("tabId", "key")),
    "tabs.clearSessionStorage": (partial(handle_clear_storage, SESSION), ("tabId",)),
}

COOKIE_HANDLERS: dict[str, tuple] = {
    "tabs.getCookies": (handle_get_cookies, ()),
    "tabs.setCookie": (handle_set_cookie, ("url", "name")),
    "tabs.deleteCookie": (handle_delete_cookie, ("url", "name")),
}
