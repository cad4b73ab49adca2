from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest
from fakes import FakeSurface

from tab_bridge.server import CommandContext, CommandDispatcher, CommandRegistry, create_default_registry


async def _no_sleep(_: float) -> None:
    await asyncio.sleep(0)


def _dispatcher(registry: CommandRegistry | None = None, surface: FakeSurface | None = None) -> CommandDispatcher:
    ctx = CommandContext(surface=surface or FakeSurface(), sleep=_no_sleep)
    return CommandDispatcher(registry or create_default_registry(), ctx)


def test_unknown_command_yields_error_envelope() -> None:
    d = _dispatcher()
    out = asyncio.run(d.handle_frame({"id": "x", "command": "nope"}))
    assert out == {"id": "x", "type": "error", "error": "Unknown command: nope"}


def test_missing_command_yields_error_envelope() -> None:
    d = _dispatcher()
    out = asyncio.run(d.handle_frame({"id": "x", "params": {}}))
    assert out == {"id": "x", "type": "error", "error": "Command not specified"}


def test_malformed_frame_has_null_id_and_channel_keeps_working() -> None:
    surface = FakeSurface()
    d = _dispatcher(surface=surface)

    async def _run() -> tuple[Any, Any]:
        bad = await d.handle_raw("{not json")
        good = await d.handle_raw(json.dumps({"id": 7, "command": "tabs.close", "params": {"tabId": "1"}}))
        return bad, good

    bad, good = asyncio.run(_run())
    assert bad["id"] is None
    assert bad["type"] == "error"
    assert bad["error"].startswith("Invalid JSON")
    assert good == {"id": 7, "type": "response", "result": {"success": True}}
    assert surface.call_names() == ["close_tab"]


def test_non_object_frame_is_malformed() -> None:
    d = _dispatcher()
    out = asyncio.run(d.handle_raw("[1, 2, 3]"))
    assert out["id"] is None
    assert out["type"] == "error"


def test_control_frames_are_swallowed_and_ping_answered() -> None:
    d = _dispatcher()
    assert asyncio.run(d.handle_frame({"type": "ack"})) is None
    assert asyncio.run(d.handle_frame({"type": "pong"})) is None
    assert asyncio.run(d.handle_frame({"type": "ping"})) == {"type": "pong"}


def test_missing_required_param_fails_before_touching_surface() -> None:
    surface = FakeSurface()
    d = _dispatcher(surface=surface)
    out = asyncio.run(d.handle_frame({"id": 1, "command": "tabs.waitForElement", "params": {"tabId": "1"}}))
    assert out == {"id": 1, "type": "error", "error": "selector is required"}
    assert surface.injections == []

    out = asyncio.run(d.handle_frame({"id": 2, "command": "tabs.waitForElement", "params": {"selector": "#a"}}))
    assert out == {"id": 2, "type": "error", "error": "tabId is required"}


def test_params_must_be_an_object() -> None:
    d = _dispatcher()
    out = asyncio.run(d.handle_frame({"id": 3, "command": "tabs.list", "params": [1]}))
    assert out == {"id": 3, "type": "error", "error": "params must be an object"}


def test_handler_exception_becomes_error_envelope() -> None:
    registry = CommandRegistry()

    async def boom(ctx: CommandContext, params: dict[str, Any]) -> Any:
        raise RuntimeError("tab was closed")

    registry.register("test.boom", boom)
    d = _dispatcher(registry)
    out = asyncio.run(d.handle_frame({"id": "b", "command": "test.boom"}))
    assert out == {"id": "b", "type": "error", "error": "tab was closed"}
    assert d.failed == 1


def test_none_result_is_passed_through() -> None:
    registry = CommandRegistry()

    async def nothing(ctx: CommandContext, params: dict[str, Any]) -> Any:
        return None

    registry.register("test.nothing", nothing)
    d = _dispatcher(registry)
    out = asyncio.run(d.handle_frame({"id": 5, "command": "test.nothing"}))
    assert out == {"id": 5, "type": "response", "result": None}


def test_reused_in_flight_id_is_rejected_and_first_request_completes() -> None:
    registry = CommandRegistry()
    release = None

    async def slow(ctx: CommandContext, params: dict[str, Any]) -> Any:
        await release.wait()
        return {"done": True}

    registry.register("test.slow", slow)
    d = _dispatcher(registry)

    async def _run() -> tuple[Any, Any]:
        nonlocal release
        release = asyncio.Event()
        first = asyncio.create_task(d.handle_frame({"id": "dup", "command": "test.slow"}))
        await asyncio.sleep(0)
        assert d.in_flight == 1
        second = await d.handle_frame({"id": "dup", "command": "test.slow"})
        release.set()
        return await first, second

    first, second = asyncio.run(_run())
    assert second == {"id": "dup", "type": "error", "error": "Duplicate request id: dup"}
    assert first == {"id": "dup", "type": "response", "result": {"done": True}}
    assert d.in_flight == 0


def test_same_id_on_a_new_connection_is_not_a_duplicate() -> None:
    registry = CommandRegistry()
    release = None

    async def slow(ctx: CommandContext, params: dict[str, Any]) -> Any:
        await release.wait()
        return params.get("n")

    registry.register("test.slow", slow)
    d = _dispatcher(registry)

    async def _run() -> tuple[Any, Any]:
        nonlocal release
        release = asyncio.Event()
        old = asyncio.create_task(d.handle_frame({"id": "r1", "command": "test.slow", "params": {"n": 1}}, scope=1))
        await asyncio.sleep(0)
        new = asyncio.create_task(d.handle_frame({"id": "r1", "command": "test.slow", "params": {"n": 2}}, scope=2))
        await asyncio.sleep(0)
        assert d.in_flight == 2
        release.set()
        return await old, await new

    old, new = asyncio.run(_run())
    assert old == {"id": "r1", "type": "response", "result": 1}
    assert new == {"id": "r1", "type": "response", "result": 2}
    assert d.in_flight == 0


def test_concurrent_requests_resolve_independently() -> None:
    registry = CommandRegistry()

    async def echo(ctx: CommandContext, params: dict[str, Any]) -> Any:
        await asyncio.sleep(float(params["delay"]))
        return params["value"]

    registry.register("test.echo", echo, ("value",))
    d = _dispatcher(registry)

    async def _run() -> list[Any]:
        return await asyncio.gather(
            d.handle_frame({"id": 1, "command": "test.echo", "params": {"value": "a", "delay": 0.05}}),
            d.handle_frame({"id": 2, "command": "test.echo", "params": {"value": "b", "delay": 0.0}}),
        )

    out = asyncio.run(_run())
    assert [(o["id"], o["result"]) for o in out] == [(1, "a"), (2, "b")]


def test_default_registry_is_frozen_and_complete() -> None:
    registry = create_default_registry()
    assert registry.frozen
    for name in (
        "tabs.list",
        "tabs.create",
        "tabs.close",
        "tabs.navigate",
        "tabs.executeScript",
        "tabs.captureScreenshot",
        "tabs.findElements",
        "tabs.click",
        "tabs.type",
        "tabs.scroll",
        "tabs.waitForElement",
        "tabs.getCookies",
        "tabs.setCookie",
        "tabs.deleteCookie",
        "tabs.getLocalStorage",
        "tabs.setSessionStorage",
        "tabs.getActionables",
        "tabs.getAccessibilitySnapshot",
        "bridge.status",
    ):
        assert name in registry, name
    with pytest.raises(RuntimeError):
        registry.register("tabs.extra", lambda ctx, params: None)
