from __future__ import annotations

import asyncio
import contextlib
from typing import Any

import pytest
from fakes import FakePage, el, snapshot

from tab_bridge.errors import SurfaceError, ValidationError
from tab_bridge.tools.dom import MAX_SNAPSHOT_NODES
from tab_bridge.tools.page_ops import PageState, StyleRegistry, run_page_command
from tab_bridge.tools.scripts import (
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


def test_style_registry_updates_in_place() -> None:
    reg = StyleRegistry()
    assert reg.put("theme", "body{color:red}") is True
    assert reg.put("theme", "body{color:blue}") is False
    assert len(reg) == 1
    assert "theme" in reg
    assert reg.remove("theme") is True
    assert reg.remove("theme") is False
    assert reg.ids() == []


def test_inject_css_with_explicit_id_reuses_the_entry() -> None:
    page = FakePage()
    state = PageState()

    async def _run() -> list[Any]:
        first = await run_page_command(page, state, "injectCSS", {"css": "a{}", "id": "theme"})
        second = await run_page_command(page, state, "injectCSS", {"css": "b{}", "id": "theme"})
        generated = await run_page_command(page, state, "injectCSS", {"css": "c{}"})
        return [first, second, generated]

    first, second, generated = asyncio.run(_run())
    assert first == second == {"styleId": "theme"}
    assert generated["styleId"].startswith("injected-style-")
    assert len(state.styles) == 2
    assert page.calls_to(INJECT_CSS_JS)[:2] == [("theme", "a{}"), ("theme", "b{}")]


def test_remove_css_unknown_id_errors_without_touching_page() -> None:
    page = FakePage()
    state = PageState()
    with pytest.raises(SurfaceError, match="Style not found"):
        asyncio.run(run_page_command(page, state, "removeCSS", {"styleId": "nope"}))
    assert page.calls == []

    state.styles.put("theme", "a{}")
    out = asyncio.run(run_page_command(page, state, "removeCSS", {"styleId": "theme"}))
    assert out == {"success": True}
    assert page.calls_to(REMOVE_CSS_JS) == [("theme",)]
    assert "theme" not in state.styles


def test_element_info_and_simulate_event_report_missing_elements() -> None:
    page = FakePage({ELEMENT_INFO_JS: None, SIMULATE_EVENT_JS: False})
    state = PageState()
    with pytest.raises(SurfaceError, match="Element not found"):
        asyncio.run(run_page_command(page, state, "getElementInfo", {"selector": "#x"}))
    with pytest.raises(SurfaceError, match="Element not found"):
        asyncio.run(run_page_command(page, state, "simulateEvent", {"selector": "#x", "eventType": "click"}))

    page.responses[SIMULATE_EVENT_JS] = True
    out = asyncio.run(
        run_page_command(page, state, "simulateEvent", {"selector": "#x", "eventType": "input", "options": {"a": 1}})
    )
    assert out == {"success": True}
    assert page.calls_to(SIMULATE_EVENT_JS)[-1] == ("#x", "input", {"a": 1})


def test_required_params_are_validated() -> None:
    with pytest.raises(ValidationError, match="eventType is required"):
        asyncio.run(run_page_command(FakePage(), PageState(), "simulateEvent", {"selector": "#x"}))
    with pytest.raises(ValidationError, match="Unknown command: explode"):
        asyncio.run(run_page_command(FakePage(), PageState(), "explode", {}))


def test_highlight_and_structured_data() -> None:
    rows = [{"name": "Widget", "price": "9"}]
    page = FakePage({HIGHLIGHT_JS: {"count": 3}, STRUCTURED_DATA_JS: rows})
    state = PageState()
    assert asyncio.run(run_page_command(page, state, "highlightElement", {"selector": "li"})) == {"count": 3}
    out = asyncio.run(
        run_page_command(
            page,
            state,
            "extractStructuredData",
            {"rowSelector": "tr", "columnSelectors": {"name": ".n", "price": ".p"}},
        )
    )
    assert out == {"data": rows}


def test_accessibility_snapshot_reads_the_requested_root() -> None:
    dom = el("main", el("button", text="Go"))
    page = FakePage({DOM_SNAPSHOT_JS: snapshot(dom)})
    out = asyncio.run(
        run_page_command(page, PageState(), "getAccessibilitySnapshot", {"root": "main", "interestingOnly": False})
    )
    assert out == {"snapshot": {"role": "main", "children": [{"role": "button", "name": "Go"}]}}
    assert page.calls_to(DOM_SNAPSHOT_JS) == [("main", MAX_SNAPSHOT_NODES)]


def test_observe_mutations_pushes_when_max_reached() -> None:
    batch = [{"type": "childList"}, {"type": "attributes"}, {"type": "childList"}]
    page = FakePage({OBSERVE_MUTATIONS_JS: {"ok": True}, COLLECT_MUTATIONS_JS: lambda oid, disconnect: batch})
    state = PageState()
    pushed: list[dict[str, Any]] = []

    async def push(frame: dict[str, Any]) -> None:
        pushed.append(frame)

    async def _run() -> dict[str, Any]:
        out = await run_page_command(page, state, "observeMutations", {"maxMutations": 2}, push=push)
        assert state.observation is not None
        await asyncio.wait_for(state.observation.task, timeout=3.0)
        return out

    out = asyncio.run(_run())
    assert out["observing"] is True
    assert pushed == [{"type": "mutations", "observerId": out["observerId"], "mutations": batch[:2]}]
    assert state.observation is None
    assert page.calls_to(COLLECT_MUTATIONS_JS)[-1] == (out["observerId"], True)


def test_new_observation_replaces_the_previous_one() -> None:
    page = FakePage({OBSERVE_MUTATIONS_JS: {"ok": True}, COLLECT_MUTATIONS_JS: lambda oid, disconnect: []})
    state = PageState()

    async def _run() -> tuple[Any, Any]:
        first = await run_page_command(page, state, "observeMutations", {})
        first_obs = state.observation
        second = await run_page_command(page, state, "observeMutations", {"selector": "#feed"})
        with contextlib.suppress(asyncio.CancelledError):
            await first_obs.task
        assert first_obs.task.cancelled()
        second_obs = state.observation
        assert second_obs.observer_id == second["observerId"]
        state.close()
        await asyncio.gather(second_obs.task, return_exceptions=True)
        assert second_obs.task.cancelled()
        return first, second

    first, second = asyncio.run(_run())
    assert first["observerId"] != second["observerId"]


def test_observe_mutations_without_target_fails() -> None:
    page = FakePage({OBSERVE_MUTATIONS_JS: {"ok": False}})
    state = PageState()
    with pytest.raises(SurfaceError, match="Target element not found"):
        asyncio.run(run_page_command(page, state, "observeMutations", {"selector": "#missing"}))
    assert state.observation is None
