"""
DOM commands executed in a page context.

The same functions back both execution paths: the page agent (over its own
``Page``) and the Agent Bridge fallback, which drives a one-shot script
injection through the Browser Control Surface (``SurfacePage``).
"""

from __future__ import annotations

import asyncio
import contextlib
import itertools
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from ..errors import SurfaceError, ValidationError, require
from ..surface import ScriptInjection, first_result
from .actionables import find_actionables
from .ax import build_snapshot
from .dom import MAX_SNAPSHOT_NODES, DomSnapshot
from .scripts import (
    COLLECT_MUTATIONS_JS,
    DOM_SNAPSHOT_JS,
    ELEMENT_INFO_JS,
    HIGHLIGHT_JS,
    INJECT_CSS_JS,
    OBSERVE_MUTATIONS_JS,
    REMOVE_CSS_JS,
    SIMULATE_EVENT_JS,
    STRUCTURED_DATA_JS,
)

if TYPE_CHECKING:
    from ..surface import BrowserControlSurface

logger = logging.getLogger("tab_bridge.page")

PushFunc = Callable[[dict[str, Any]], Awaitable[None]]

DEFAULT_MAX_MUTATIONS = 100
MUTATION_POLL_INTERVAL = 0.25


class Page(Protocol):
    async def evaluate(self, function: str, *args: Any) -> Any: ...


class SurfacePage:
    """A ``Page`` backed by one-shot script injection into a tab's main frame."""

    def __init__(self, surface: BrowserControlSurface, tab_id: str) -> None:
        self.surface = surface
        self.tab_id = tab_id

    async def evaluate(self, function: str, *args: Any) -> Any:
        results = await self.surface.execute_script(
            ScriptInjection(tab_id=self.tab_id, function=function, args=list(args))
        )
        return first_result(results)


class StyleRegistry:
    """Injected stylesheets by id. Re-injecting an id replaces its CSS in place."""

    def __init__(self) -> None:
        self._styles: dict[str, str] = {}

    def __contains__(self, style_id: object) -> bool:
        return style_id in self._styles

    def __len__(self) -> int:
        return len(self._styles)

    def ids(self) -> list[str]:
        return list(self._styles)

    def put(self, style_id: str, css: str) -> bool:
        """Store ``css`` under ``style_id``. Returns True when the id is new."""
        created = style_id not in self._styles
        self._styles[style_id] = css
        return created

    def remove(self, style_id: str) -> bool:
        return self._styles.pop(style_id, None) is not None

    def clear(self) -> None:
        self._styles.clear()


@dataclass
class MutationObservation:
    observer_id: str
    max_mutations: int
    timeout: float | None
    task: asyncio.Task | None = None

    def cancel(self) -> None:
        if self.task is not None and not self.task.done():
            self.task.cancel()


class PageState:
    """Per-page side-effect registries: injected styles and the single mutation observer."""

    def __init__(self) -> None:
        self.styles = StyleRegistry()
        self.observation: MutationObservation | None = None
        self._seq = itertools.count(1)

    def next_style_id(self) -> str:
        return f"injected-style-{int(time.time() * 1000)}-{next(self._seq)}"

    def next_observer_id(self) -> str:
        return f"observer-{next(self._seq)}"

    def stop_observation(self) -> None:
        obs, self.observation = self.observation, None
        if obs is not None:
            obs.cancel()

    def close(self) -> None:
        self.stop_observation()
        self.styles.clear()


# ─────────────────────────────────────────────────────────────────────────────
# Commands
# ─────────────────────────────────────────────────────────────────────────────


async def get_element_info(page: Page, state: PageState, params: dict[str, Any], **_: Any) -> Any:
    require(params, "selector")
    info = await page.evaluate(ELEMENT_INFO_JS, params["selector"], params.get("includeStyles", True) is not False)
    if info is None:
        raise SurfaceError("Element not found")
    return info


async def highlight_element(page: Page, state: PageState, params: dict[str, Any], **_: Any) -> Any:
    require(params, "selector")
    res = await page.evaluate(
        HIGHLIGHT_JS,
        params["selector"],
        params.get("outline"),
        params.get("backgroundColor"),
        params.get("duration"),
    )
    count = res.get("count") if isinstance(res, dict) else 0
    return {"count": int(count or 0)}


async def simulate_event(page: Page, state: PageState, params: dict[str, Any], **_: Any) -> Any:
    require(params, "selector", "eventType")
    options = params.get("options") or {}
    if not isinstance(options, dict):
        raise ValidationError("options must be an object")
    found = await page.evaluate(SIMULATE_EVENT_JS, params["selector"], params["eventType"], options)
    if found is not True:
        raise SurfaceError("Element not found")
    return {"success": True}


async def extract_structured_data(page: Page, state: PageState, params: dict[str, Any], **_: Any) -> Any:
    require(params, "rowSelector")
    columns = params.get("columnSelectors") or {}
    if not isinstance(columns, dict):
        raise ValidationError("columnSelectors must be an object")
    data = await page.evaluate(STRUCTURED_DATA_JS, params["rowSelector"], columns, params.get("extractAttribute"))
    return {"data": data if isinstance(data, list) else []}


async def inject_css(page: Page, state: PageState, params: dict[str, Any], **_: Any) -> Any:
    require(params, "css")
    style_id = str(params.get("id") or state.next_style_id())
    await page.evaluate(INJECT_CSS_JS, style_id, params["css"])
    state.styles.put(style_id, params["css"])
    return {"styleId": style_id}


async def remove_css(page: Page, state: PageState, params: dict[str, Any], **_: Any) -> Any:
    require(params, "styleId")
    style_id = str(params["styleId"])
    if style_id not in state.styles:
        raise SurfaceError("Style not found")
    await page.evaluate(REMOVE_CSS_JS, style_id)
    state.styles.remove(style_id)
    return {"success": True}


def _observer_options(params: dict[str, Any]) -> dict[str, bool]:
    return {
        "attributes": params.get("attributes") is not False,
        "childList": params.get("childList") is not False,
        "subtree": params.get("subtree") is not False,
        "attributeOldValue": bool(params.get("attributeOldValue")),
        "characterData": bool(params.get("characterData")),
        "characterDataOldValue": bool(params.get("characterDataOldValue")),
    }


async def _watch_mutations(page: Page, state: PageState, obs: MutationObservation, push: PushFunc | None) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + obs.timeout if obs.timeout else None
    mutations: list[Any] = []
    while True:
        await asyncio.sleep(MUTATION_POLL_INTERVAL)
        expired = deadline is not None and loop.time() >= deadline
        try:
            batch = await page.evaluate(COLLECT_MUTATIONS_JS, obs.observer_id, False)
        except Exception as exc:  # noqa: BLE001
            logger.debug("mutation poll failed for %s: %s", obs.observer_id, exc)
            batch = mutations
        if batch is None:
            # Page navigated or a newer observer replaced this one.
            break
        mutations = list(batch)
        if len(mutations) >= obs.max_mutations or expired:
            break
    with contextlib.suppress(Exception):
        await page.evaluate(COLLECT_MUTATIONS_JS, obs.observer_id, True)
    if state.observation is obs:
        state.observation = None
    if push is not None:
        await push(
            {
                "type": "mutations",
                "observerId": obs.observer_id,
                "mutations": mutations[: obs.max_mutations],
            }
        )


async def observe_mutations(
    page: Page, state: PageState, params: dict[str, Any], *, push: PushFunc | None = None, **_: Any
) -> Any:
    """Start the page's single mutation observer; completion is pushed through ``push``."""
    state.stop_observation()
    observer_id = state.next_observer_id()
    res = await page.evaluate(
        OBSERVE_MUTATIONS_JS, observer_id, params.get("selector"), _observer_options(params)
    )
    if not isinstance(res, dict) or not res.get("ok"):
        raise SurfaceError("Target element not found")
    try:
        max_mutations = int(params.get("maxMutations") or DEFAULT_MAX_MUTATIONS)
    except (TypeError, ValueError):
        max_mutations = DEFAULT_MAX_MUTATIONS
    timeout_ms = params.get("timeout")
    obs = MutationObservation(
        observer_id=observer_id,
        max_mutations=max(1, max_mutations),
        timeout=(float(timeout_ms) / 1000.0) if timeout_ms else None,
    )
    obs.task = asyncio.create_task(_watch_mutations(page, state, obs, push), name=f"mutations-{observer_id}")
    state.observation = obs
    return {"observing": True, "observerId": observer_id}


async def accessibility_snapshot(page: Page, state: PageState, params: dict[str, Any], **_: Any) -> Any:
    data = await page.evaluate(DOM_SNAPSHOT_JS, params.get("root"), MAX_SNAPSHOT_NODES)
    interesting_only = params.get("interestingOnly", True) is not False
    snapshot = build_snapshot(DomSnapshot.from_result(data), interesting_only=interesting_only)
    return {"snapshot": snapshot}


async def actionables(page: Page, state: PageState | None = None, params: Any = None, **_: Any) -> Any:
    data = await page.evaluate(DOM_SNAPSHOT_JS, None, MAX_SNAPSHOT_NODES)
    return {"actionables": find_actionables(DomSnapshot.from_result(data))}


PageCommand = Callable[..., Awaitable[Any]]

PAGE_COMMANDS: dict[str, PageCommand] = {
    "getElementInfo": get_element_info,
    "highlightElement": highlight_element,
    "simulateEvent": simulate_event,
    "extractStructuredData": extract_structured_data,
    "observeMutations": observe_mutations,
    "injectCSS": inject_css,
    "removeCSS": remove_css,
    "getAccessibilitySnapshot": accessibility_snapshot,
}

# Sent with a ``type`` discriminator on the agent leg instead of ``command``.
TYPED_COMMANDS = frozenset({"getAccessibilitySnapshot"})


async def run_page_command(
    page: Page,
    state: PageState,
    command: str,
    params: dict[str, Any] | None,
    *,
    push: PushFunc | None = None,
) -> Any:
    fn = PAGE_COMMANDS.get(command)
    if fn is None:
        raise ValidationError(f"Unknown command: {command}")
    return await fn(page, state, dict(params or {}), push=push)


__all__ = [
    "PAGE_COMMANDS",
    "TYPED_COMMANDS",
    "MutationObservation",
    "Page",
    "PageState",
    "StyleRegistry",
    "SurfacePage",
    "accessibility_snapshot",
    "actionables",
    "run_page_command",
]
