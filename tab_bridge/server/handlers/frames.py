"""
Frame utilities: frame tree listing and frame lookup by URL pattern, name or iframe selector.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

from ...errors import ValidationError
from ...tools.scripts import FIND_IFRAMES_JS
from .common import run_script, tab_id_of

if TYPE_CHECKING:
    from ..context import CommandContext

FRAME_FIELDS = (
    "frameId",
    "parentFrameId",
    "url",
    "frameType",
    "documentId",
    "documentLifecycle",
    "errorOccurred",
)


async def handle_get_frames(ctx: CommandContext, params: dict[str, Any]) -> Any:
    frames = await ctx.surface.get_all_frames(tab_id_of(params))
    return {"frames": [{key: frame.get(key) for key in FRAME_FIELDS} for frame in frames]}


async def handle_find_frames(ctx: CommandContext, params: dict[str, Any]) -> Any:
    tab_id = tab_id_of(params)
    frames = await ctx.surface.get_all_frames(tab_id)
    if params.get("url"):
        try:
            pattern = re.compile(str(params["url"]))
        except re.error as exc:
            raise ValidationError(f"Invalid url pattern: {exc}") from exc
        frames = [f for f in frames if pattern.search(str(f.get("url") or ""))]
    if params.get("name") or params.get("selector"):
        elements = await run_script(ctx, tab_id, FIND_IFRAMES_JS, params.get("name"), params.get("selector")) or []
        sources = [str(e.get("src") or "") for e in elements if isinstance(e, dict)]
        frames = [f for f in frames if f.get("url") and any(src and src in str(f["url"]) for src in sources)]
    return {"frameIds": [f.get("frameId") for f in frames]}


FRAME_HANDLERS: dict[str, tuple] = {
    "tabs.getFrames": (handle_get_frames, ("tabId",)),
    "tabs.findFrames": (handle_find_frames, ("tabId",)),
}
