"""
Script-injection handlers.

Each builds one injection (tab, function, args, world) and returns the first
frame's result; an absent result degrades to the documented default.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ...errors import ValidationError
from ...surface import WORLD_ISOLATED, WORLD_MAIN, ScriptInjection, first_result
from ...tools import page_ops
from ...tools.page_ops import SurfacePage
from ...tools.scripts import (
    CLICK_JS,
    EXTRACT_TEXT_JS,
    FIND_ELEMENTS_JS,
    SCROLL_JS,
    SEND_KEY_JS,
    TYPE_JS,
    function_from_body,
)
from .common import run_script, tab_id_of

if TYPE_CHECKING:
    from ..context import CommandContext


def _world(params: dict[str, Any]) -> str:
    world = str(params.get("world") or WORLD_ISOLATED).upper()
    if world not in (WORLD_ISOLATED, WORLD_MAIN):
        raise ValidationError(f"Invalid world: {params.get('world')}")
    return world


async def handle_execute_script(ctx: CommandContext, params: dict[str, Any]) -> Any:
    injection = ScriptInjection(
        tab_id=tab_id_of(params),
        function=function_from_body(str(params["script"])),
        world=_world(params),
        all_frames=bool(params.get("allFrames")),
    )
    frame_id = params.get("frameId")
    if frame_id is not None and not injection.all_frames:
        try:
            injection.frame_ids = [int(frame_id)]
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid frameId: {frame_id}") from exc
    results = await ctx.surface.execute_script(injection)
    if not injection.all_frames:
        return first_result(results)
    out: list[dict[str, Any]] = []
    for res in results or []:
        if res.error:
            out.append({"frameId": res.frame_id, "documentId": res.document_id, "error": res.error})
        elif res.result is not None:
            out.append({"frameId": res.frame_id, "documentId": res.document_id, "result": res.result})
    return out


async def handle_extract_text(ctx: CommandContext, params: dict[str, Any]) -> Any:
    text = await run_script(ctx, tab_id_of(params), EXTRACT_TEXT_JS, params.get("selector"))
    return {"text": text}


async def handle_find_elements(ctx: CommandContext, params: dict[str, Any]) -> Any:
    elements = await run_script(ctx, tab_id_of(params), FIND_ELEMENTS_JS, params["selector"])
    return {"elements": elements or []}


async def handle_click(ctx: CommandContext, params: dict[str, Any]) -> Any:
    clicked = await run_script(ctx, tab_id_of(params), CLICK_JS, params["selector"], params.get("index") or 0)
    return {"success": bool(clicked)}


async def handle_type(ctx: CommandContext, params: dict[str, Any]) -> Any:
    if params.get("text") is None:
        raise ValidationError("text is required")
    typed = await run_script(
        ctx, tab_id_of(params), TYPE_JS, params["selector"], str(params["text"]), bool(params.get("append"))
    )
    return {"success": bool(typed)}


async def handle_send_key(ctx: CommandContext, params: dict[str, Any]) -> Any:
    modifiers = params.get("modifiers") or []
    if not isinstance(modifiers, list):
        raise ValidationError("modifiers must be a list")
    res = await run_script(ctx, tab_id_of(params), SEND_KEY_JS, params.get("selector"), str(params["key"]), modifiers)
    if not isinstance(res, dict):
        return {"success": False, "error": "Script execution failed"}
    return res


async def handle_scroll(ctx: CommandContext, params: dict[str, Any]) -> Any:
    return await run_script(
        ctx,
        tab_id_of(params),
        SCROLL_JS,
        params.get("x"),
        params.get("y"),
        params.get("selector"),
        params.get("behavior") or "smooth",
    )


async def handle_get_actionables(ctx: CommandContext, params: dict[str, Any]) -> Any:
    return await page_ops.actionables(SurfacePage(ctx.surface, tab_id_of(params)))


SCRIPTING_HANDLERS: dict[str, tuple] = {
    "tabs.executeScript": (handle_execute_script, ("tabId", "script")),
    "tabs.extractText": (handle_extract_text, ("tabId",)),
    "tabs.findElements": (handle_find_elements, ("tabId", "selector")),
    "tabs.click": (handle_click, ("tabId", "selector")),
    "tabs.type": (handle_type, ("tabId", "selector")),
    "tabs.sendKey": (handle_send_key, ("tabId", "key")),
    "tabs.scroll": (handle_scroll, ("tabId",)),
    "tabs.getActionables": (handle_get_actionables, ("tabId",)),
}
