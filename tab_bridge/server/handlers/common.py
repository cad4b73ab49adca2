from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ...errors import ValidationError
from ...surface import WORLD_ISOLATED, ScriptInjection, first_result, normalize_tab_id

if TYPE_CHECKING:
    from ..context import CommandContext


def tab_id_of(params: dict[str, Any]) -> str:
    tab_id = normalize_tab_id(params.get("tabId"))
    if not tab_id:
        raise ValidationError("tabId is required")
    return tab_id


async def run_script(ctx: CommandContext, tab_id: str, function: str, *args: Any, world: str = WORLD_ISOLATED) -> Any:
    """Inject ``function`` into the tab's main frame and return its result."""
    results = await ctx.surface.execute_script(
        ScriptInjection(tab_id=tab_id, function=function, args=list(args), world=world)
    )
    return first_result(results)
