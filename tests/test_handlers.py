from __future__ import annotations

import asyncio
from typing import Any

from fakes import FakeSurface, el, snapshot

from tab_bridge.agent_bridge import AgentBridge
from tab_bridge.server import CommandContext, CommandDispatcher, create_default_registry
from tab_bridge.surface import WORLD_MAIN, FrameResult
from tab_bridge.tools.scripts import (
    CLICK_JS,
    DOM_SNAPSHOT_JS,
    ELEMENT_INFO_JS,
    FIND_IFRAMES_JS,
    SCROLL_JS,
    SEND_KEY_JS,
    STORAGE_GET_JS,
    STORAGE_SET_JS,
    function_from_body,
)


class _Clock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.now += seconds


def _call(surface: FakeSurface, command: str, params: dict[str, Any] | None = None, **ctx_kw: Any) -> Any:
    clock = _Clock()
    ctx = CommandContext(surface=surface, sleep=clock.sleep, clock=clock, **ctx_kw)
    dispatcher = CommandDispatcher(create_default_registry(), ctx)
    return asyncio.run(dispatcher.handle_frame({"id": "t", "command": command, "params": params or {}}))


def _result(out: dict[str, Any]) -> Any:
    assert out["type"] == "response", out
    return out["result"]


def test_list_tabs_projects_public_fields() -> None:
    tabs = _result(_call(FakeSurface(), "tabs.list"))
    assert len(tabs) == 1
    assert tabs[0]["id"] == "1"
    assert tabs[0]["status"] == "complete"
    assert "internal" not in tabs[0]


def test_create_tab_defaults_to_active() -> None:
    surface = FakeSurface()
    out = _result(_call(surface, "tabs.create", {"url": "https://new.test/"}))
    assert out == {"id": "2", "url": "https://new.test/", "title": ""}
    assert surface.calls[0] == ("create_tab", {"url": "https://new.test/", "active": True, "windowId": None})


def test_navigate_updates_url_before_waiting_for_load() -> None:
    surface = FakeSurface()
    surface.statuses = ["loading", "loading", "complete"]
    out = _result(_call(surface, "tabs.navigate", {"tabId": 1, "url": "https://example.test/next"}))
    assert out == {"success": True}
    assert surface.call_names() == ["update_tab", "get_tab", "get_tab", "get_tab"]
    assert surface.calls[0][1]["url"] == "https://example.test/next"


def test_navigate_fails_when_load_never_completes() -> None:
    surface = FakeSurface()
    surface.statuses = ["loading"] * 1000
    out = _call(surface, "tabs.navigate", {"tabId": "1", "url": "https://slow.test/"})
    assert out["type"] == "error"
    assert "finish loading" in out["error"]


def test_execute_script_wraps_body_and_honours_world() -> None:
    body = "return document.title;"
    surface = FakeSurface({function_from_body(body): "Example"})
    out = _result(_call(surface, "tabs.executeScript", {"tabId": "1", "script": body, "world": "main"}))
    assert out == "Example"
    assert surface.injections[0].world == WORLD_MAIN

    bad = _call(surface, "tabs.executeScript", {"tabId": "1", "script": body, "world": "shadow"})
    assert bad["error"] == "Invalid world: shadow"


def test_execute_script_all_frames_reports_each_frame() -> None:
    body = "return location.host;"
    surface = FakeSurface(
        {
            function_from_body(body): [
                FrameResult(frame_id=0, result="example.test", document_id="d0"),
                FrameResult(frame_id=3, error="Cannot access frame"),
                FrameResult(frame_id=4, result=None),
            ]
        }
    )
    out = _result(_call(surface, "tabs.executeScript", {"tabId": "1", "script": body, "allFrames": True}))
    assert out == [
        {"frameId": 0, "documentId": "d0", "result": "example.test"},
        {"frameId": 3, "documentId": None, "error": "Cannot access frame"},
    ]


def test_script_error_in_main_frame_surfaces_as_error() -> None:
    surface = FakeSurface({CLICK_JS: [FrameResult(frame_id=0, error="Cannot access contents of the page")]})
    out = _call(surface, "tabs.click", {"tabId": "1", "selector": "#buy"})
    assert out == {"id": "t", "type": "error", "error": "Cannot access contents of the page"}


def test_click_passes_selector_and_index() -> None:
    surface = FakeSurface({CLICK_JS: True})
    out = _result(_call(surface, "tabs.click", {"tabId": "1", "selector": ".item", "index": 2}))
    assert out == {"success": True}
    assert surface.injections[0].args == [".item", 2]


def test_type_requires_text() -> None:
    out = _call(FakeSurface(), "tabs.type", {"tabId": "1", "selector": "#q"})
    assert out["error"] == "text is required"


def test_send_key_without_frame_result_reports_failure() -> None:
    surface = FakeSurface({SEND_KEY_JS: None})
    out = _result(_call(surface, "tabs.sendKey", {"tabId": "1", "key": "Enter"}))
    assert out == {"success": False, "error": "Script execution failed"}

    surface.scripts[SEND_KEY_JS] = {"success": True}
    out = _result(_call(surface, "tabs.sendKey", {"tabId": "1", "key": "a", "modifiers": ["Shift"]}))
    assert out == {"success": True}
    assert surface.injections[-1].args == [None, "a", ["Shift"]]


def test_scroll_defaults_to_smooth_behavior() -> None:
    surface = FakeSurface({SCROLL_JS: {"x": 0, "y": 400}})
    out = _result(_call(surface, "tabs.scroll", {"tabId": "1", "y": 400}))
    assert out == {"x": 0, "y": 400}
    assert surface.injections[0].args == [None, 400, None, "smooth"]


def test_wait_for_element_times_out_as_success_shaped_result() -> None:
    out = _result(_call(FakeSurface(), "tabs.waitForElement", {"tabId": "1", "selector": "#never", "timeout": 500}))
    assert out["found"] is False
    assert out["elapsed"] >= 500


def test_storage_get_and_set() -> None:
    surface = FakeSurface({STORAGE_GET_JS: {"token": "abc"}, STORAGE_SET_JS: True})
    out = _result(_call(surface, "tabs.getSessionStorage", {"tabId": "1"}))
    assert out == {"storage": {"token": "abc"}}
    assert surface.injections[0].args == ["sessionStorage", None]

    out = _result(_call(surface, "tabs.setLocalStorage", {"tabId": "1", "key": "n", "value": 5}))
    assert out == {"success": True}
    assert surface.injections[1].args == ["localStorage", "n", "5"]

    missing = _call(surface, "tabs.setLocalStorage", {"tabId": "1", "key": "n"})
    assert missing["error"] == "value is required"


def test_cookie_crud() -> None:
    surface = FakeSurface()
    out = _result(
        _call(surface, "tabs.setCookie", {"url": "https://example.test/", "name": "sid", "value": "1", "secure": True})
    )
    assert out == {
        "cookie": {"url": "https://example.test/", "name": "sid", "value": "1", "path": "/", "secure": True}
    }
    out = _result(_call(surface, "tabs.getCookies", {"url": "https://example.test/", "name": "sid"}))
    assert [c["name"] for c in out["cookies"]] == ["sid"]

    out = _result(_call(surface, "tabs.deleteCookie", {"url": "https://example.test/", "name": "sid"}))
    assert out == {"success": True}
    assert surface.cookies == []

    missing = _call(surface, "tabs.deleteCookie", {"url": "https://example.test/"})
    assert missing["error"] == "name is required"


def test_screenshot_defaults() -> None:
    surface = FakeSurface()
    out = _result(_call(surface, "tabs.captureScreenshot", {"windowId": 1}))
    assert out == {"dataUrl": "data:image/png;base64,AAAA"}
    assert surface.calls[0][1] == {"windowId": 1, "format": "png", "quality": 100}


def test_screenshot_keeps_explicit_zero_quality() -> None:
    surface = FakeSurface()
    _result(_call(surface, "tabs.captureScreenshot", {"windowId": 1, "format": "jpeg", "quality": 0}))
    assert surface.calls[0][1] == {"windowId": 1, "format": "jpeg", "quality": 0}


def test_frames_listing_and_lookup() -> None:
    surface = FakeSurface({FIND_IFRAMES_JS: [{"src": "https://widgets.test/chat", "name": "chat"}]})
    frames = _result(_call(surface, "tabs.getFrames", {"tabId": "1"}))["frames"]
    assert [f["frameId"] for f in frames] == [0, 1, 2]
    assert frames[1]["parentFrameId"] == 0

    out = _result(_call(surface, "tabs.findFrames", {"tabId": "1", "url": r"ads\."}))
    assert out == {"frameIds": [1]}

    out = _result(_call(surface, "tabs.findFrames", {"tabId": "1", "name": "chat"}))
    assert out == {"frameIds": [2]}


def test_get_actionables_filters_hidden_elements() -> None:
    dom = el(
        "body",
        el("button", text="Hidden", nth=1, rect={"x": 0, "y": 0, "width": 0, "height": 0}),
        el("button", text="Visible", nth=2),
    )
    surface = FakeSurface({DOM_SNAPSHOT_JS: snapshot(dom)})
    out = _result(_call(surface, "tabs.getActionables", {"tabId": "1"}))
    assert out == {
        "actionables": [
            {"labelNumber": 0, "description": "Visible", "type": "button", "selector": "body > button:nth-child(2)"}
        ]
    }


def test_forwarded_command_falls_back_to_script_injection() -> None:
    surface = FakeSurface({ELEMENT_INFO_JS: {"tagName": "button", "id": "buy"}})
    agents = AgentBridge(surface, port=0)
    out = _result(_call(surface, "tabs.getElementInfo", {"tabId": "1", "selector": "#buy"}, agents=agents))
    assert out == {"tagName": "button", "id": "buy"}
    assert surface.injections[0].args == ["#buy", True]


def test_accessibility_snapshot_through_fallback() -> None:
    dom = el("body", el("div", el("button", text="Submit")))
    surface = FakeSurface({DOM_SNAPSHOT_JS: snapshot(dom)})
    agents = AgentBridge(surface, port=0)
    out = _result(_call(surface, "tabs.getAccessibilitySnapshot", {"tabId": "1"}, agents=agents))
    assert out == {"snapshot": {"role": "document", "children": [{"role": "button", "name": "Submit"}]}}


def test_bridge_status_and_reconnect() -> None:
    requested: list[bool] = []

    async def reconnect(force: bool) -> None:
        requested.append(force)

    surface = FakeSurface()
    agents = AgentBridge(surface, port=0)
    status = _result(
        _call(surface, "bridge.status", agents=agents, status=lambda: {"driver": {"state": "open"}})
    )
    assert status["version"] == "1.0.0"
    assert status["driver"] == {"state": "open"}
    assert status["agents"]["tabs"] == {}

    out = _result(_call(surface, "bridge.reconnect", {"force": True}, reconnect=reconnect))
    assert out == {"success": True}
    assert requested == [True]
