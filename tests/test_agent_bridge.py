from __future__ import annotations

import asyncio
import contextlib
import sys
from typing import Any

import pytest
from fakes import FakePage, FakeSurface, el, snapshot

from tab_bridge.agent import PageAgent
from tab_bridge.agent_bridge import AgentBridge
from tab_bridge.errors import AgentTimeoutError, ChannelClosedError, RemoteError
from tab_bridge.framing import read_frame, write_frame
from tab_bridge.tools.scripts import (
    COLLECT_MUTATIONS_JS,
    DOM_SNAPSHOT_JS,
    ELEMENT_INFO_JS,
    HIGHLIGHT_JS,
    OBSERVE_MUTATIONS_JS,
)


async def _hello(port: int, tab_id: str) -> tuple[asyncio.StreamReader, asyncio.StreamWriter, dict[str, Any]]:
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    await write_frame(writer, {"type": "hello", "tabId": tab_id, "protocolVersion": "1.0.0"})
    ack = await asyncio.wait_for(read_frame(reader), timeout=2.0)
    return reader, writer, ack


async def _wait_until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() >= deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


def test_page_agent_roundtrip_for_command_and_typed_requests() -> None:
    page = FakePage(
        {
            ELEMENT_INFO_JS: {"tagName": "button", "id": "buy"},
            DOM_SNAPSHOT_JS: snapshot(el("body", el("div", el("button", text="Buy")))),
        }
    )

    async def _run() -> tuple[Any, Any, dict[str, Any]]:
        bridge = AgentBridge(FakeSurface(), port=0)
        await bridge.start()
        agent = PageAgent("7", page, port=bridge.port)
        try:
            assert await agent.start() is True
            assert bridge.has_agent("7")
            info = await bridge.forward("7", "getElementInfo", {"selector": "#buy"})
            ax = await bridge.forward("7", "getAccessibilitySnapshot", {"interestingOnly": True})
            status = bridge.status()
        finally:
            await agent.stop()
            await bridge.stop()
        return info, ax, status

    info, ax, status = asyncio.run(_run())
    assert info == {"tagName": "button", "id": "buy"}
    assert ax == {"snapshot": {"role": "document", "children": [{"role": "button", "name": "Buy"}]}}
    assert status["tabs"]["7"]["forwarded"] == 2
    assert status["tabs"]["7"]["pending"] == 0


def test_agent_errors_travel_back_as_remote_errors() -> None:
    page = FakePage({ELEMENT_INFO_JS: None})

    async def _run() -> None:
        bridge = AgentBridge(FakeSurface(), port=0)
        await bridge.start()
        agent = PageAgent("7", page, port=bridge.port)
        try:
            await agent.start()
            with pytest.raises(RemoteError, match="Element not found"):
                await bridge.forward("7", "getElementInfo", {"selector": "#gone"})
        finally:
            await agent.stop()
            await bridge.stop()

    asyncio.run(_run())


def test_forwarded_ids_use_their_own_namespace() -> None:
    async def _run() -> dict[str, Any]:
        bridge = AgentBridge(FakeSurface(), port=0)
        await bridge.start()
        reader, writer, ack = await _hello(bridge.port, "3")
        try:
            assert ack["type"] == "helloAck"
            assert ack["tabId"] == "3"
            task = asyncio.create_task(bridge.forward("3", "highlightElement", {"selector": "p"}))
            request = await asyncio.wait_for(read_frame(reader), timeout=2.0)
            await write_frame(writer, {"id": request["id"], "type": "response", "result": {"count": 4}})
            assert await task == {"count": 4}
            return request
        finally:
            writer.close()
            await bridge.stop()

    request = asyncio.run(_run())
    assert request["id"].startswith("agent-")
    assert request["command"] == "highlightElement"
    assert request["params"] == {"selector": "p"}


def test_typed_requests_use_the_type_discriminator() -> None:
    async def _run() -> dict[str, Any]:
        bridge = AgentBridge(FakeSurface(), port=0)
        await bridge.start()
        reader, writer, _ = await _hello(bridge.port, "3")
        try:
            task = asyncio.create_task(bridge.forward("3", "getAccessibilitySnapshot", {"root": "main"}))
            request = await asyncio.wait_for(read_frame(reader), timeout=2.0)
            await write_frame(writer, {"id": request["id"], "type": "response", "result": {"snapshot": None}})
            assert await task == {"snapshot": None}
            return request
        finally:
            writer.close()
            await bridge.stop()

    request = asyncio.run(_run())
    assert request["type"] == "getAccessibilitySnapshot"
    assert "command" not in request


def test_silent_agent_times_out() -> None:
    async def _run() -> None:
        bridge = AgentBridge(FakeSurface(), port=0)
        await bridge.start()
        _, writer, _ = await _hello(bridge.port, "9")
        try:
            with pytest.raises(AgentTimeoutError, match=r"timeout waiting for agent: highlightElement \(tab 9\)"):
                await bridge.forward("9", "highlightElement", {"selector": "p"}, timeout=0.2)
            assert bridge.status()["tabs"]["9"]["pending"] == 0
        finally:
            writer.close()
            await bridge.stop()

    asyncio.run(_run())


def test_agent_disconnect_rejects_pending_forwards() -> None:
    async def _run() -> None:
        bridge = AgentBridge(FakeSurface(), port=0)
        await bridge.start()
        reader, writer, _ = await _hello(bridge.port, "4")
        try:
            task = asyncio.create_task(bridge.forward("4", "highlightElement", {"selector": "p"}, timeout=5.0))
            await asyncio.wait_for(read_frame(reader), timeout=2.0)
            writer.close()
            with pytest.raises(ChannelClosedError, match="disconnected"):
                await asyncio.wait_for(task, timeout=2.0)
            await _wait_until(lambda: not bridge.has_agent("4"))
        finally:
            await bridge.stop()

    asyncio.run(_run())


def test_new_agent_for_same_tab_replaces_the_old_one() -> None:
    async def _run() -> None:
        bridge = AgentBridge(FakeSurface(), port=0)
        await bridge.start()
        reader1, writer1, _ = await _hello(bridge.port, "5")
        try:
            stale = asyncio.create_task(bridge.forward("5", "highlightElement", {"selector": "a"}, timeout=5.0))
            await asyncio.wait_for(read_frame(reader1), timeout=2.0)

            reader2, writer2, _ = await _hello(bridge.port, "5")
            with pytest.raises(ChannelClosedError, match="replaced"):
                await asyncio.wait_for(stale, timeout=2.0)
            # The replaced connection is closed by the bridge.
            assert await asyncio.wait_for(read_frame(reader1), timeout=2.0) is None

            fresh = asyncio.create_task(bridge.forward("5", "highlightElement", {"selector": "b"}))
            request = await asyncio.wait_for(read_frame(reader2), timeout=2.0)
            await write_frame(writer2, {"id": request["id"], "type": "response", "result": {"count": 1}})
            assert await fresh == {"count": 1}
            assert list(bridge.status()["tabs"]) == ["5"]
            writer2.close()
        finally:
            writer1.close()
            await bridge.stop()

    asyncio.run(_run())


def test_connection_without_hello_is_rejected() -> None:
    async def _run() -> Any:
        bridge = AgentBridge(FakeSurface(), port=0, hello_timeout=0.2)
        await bridge.start()
        try:
            reader, writer = await asyncio.open_connection("127.0.0.1", bridge.port)
            await write_frame(writer, {"type": "hello"})
            closed = await asyncio.wait_for(read_frame(reader), timeout=2.0)
            writer.close()
            return closed, bridge.status()["tabs"]
        finally:
            await bridge.stop()

    closed, tabs = asyncio.run(_run())
    assert closed is None
    assert tabs == {}


def test_without_agent_commands_run_through_script_injection() -> None:
    surface = FakeSurface({HIGHLIGHT_JS: {"count": 2}})

    async def _run() -> Any:
        bridge = AgentBridge(surface, port=0)
        return await bridge.forward("1", "highlightElement", {"selector": "h1"})

    assert asyncio.run(_run()) == {"count": 2}
    assert surface.injections[0].tab_id == "1"
    assert surface.injections[0].args[0] == "h1"


def test_agent_mutation_push_reaches_the_push_consumer() -> None:
    page = FakePage(
        {
            OBSERVE_MUTATIONS_JS: {"ok": True},
            COLLECT_MUTATIONS_JS: lambda oid, disconnect: [{"type": "childList", "target": "ul"}],
        }
    )

    async def _run() -> tuple[Any, Any]:
        pushed: asyncio.Queue = asyncio.Queue()

        async def on_push(tab_id: str, name: str, data: dict[str, Any]) -> None:
            await pushed.put((tab_id, name, data))

        bridge = AgentBridge(FakeSurface(), port=0, on_push=on_push)
        await bridge.start()
        agent = PageAgent("8", page, port=bridge.port)
        try:
            await agent.start()
            out = await bridge.forward("8", "observeMutations", {"maxMutations": 1})
            event = await asyncio.wait_for(pushed.get(), timeout=3.0)
        finally:
            await agent.stop()
            await bridge.stop()
        return out, event

    out, event = asyncio.run(_run())
    assert out["observing"] is True
    assert event == ("8", "mutations", {"observerId": out["observerId"], "mutations": [{"type": "childList", "target": "ul"}]})


@pytest.mark.skipif(sys.platform == "win32", reason="unix sockets")
def test_unix_socket_transport(tmp_path) -> None:
    path = str(tmp_path / "agents.sock")
    page = FakePage({HIGHLIGHT_JS: {"count": 1}})

    async def _run() -> Any:
        bridge = AgentBridge(FakeSurface(), socket_path=path)
        await bridge.start()
        agent = PageAgent("2", page, socket_path=path)
        try:
            assert bridge.address == f"unix:{path}"
            assert await agent.start()
            return await bridge.forward("2", "highlightElement", {"selector": "p"})
        finally:
            with contextlib.suppress(Exception):
                await agent.stop()
            await bridge.stop()

    assert asyncio.run(_run()) == {"count": 1}
