"""
Browser Control Surface over the Chrome DevTools Protocol.

Tabs are DevTools page targets, listed and managed through the HTTP
``/json/*`` endpoints. Everything else goes over a per-target WebSocket
(websocket-client), whose blocking calls run in worker threads via
``asyncio.to_thread`` so the event loop is never blocked.

Frame ids follow the extension convention: the main frame is 0 and
subframes are numbered in frame-tree order.
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
import time
from contextlib import suppress
from typing import Any
from urllib.error import URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

import websocket

from .errors import SurfaceError
from .surface import WORLD_MAIN, FrameResult, ScriptInjection

logger = logging.getLogger("tab_bridge.cdp")

ISOLATED_WORLD_NAME = "tab_bridge"


class CdpTimeoutError(SurfaceError):
    """No response for a CDP command within the connection timeout; the socket stays usable."""


def _http_json(url: str, *, method: str = "GET", timeout: float = 2.0) -> Any:
    """Fetch JSON from a DevTools HTTP endpoint."""
    try:
        with urlopen(Request(url, method=method), timeout=timeout) as resp:
            body = resp.read().decode()
    except URLError as exc:
        raise SurfaceError(f"DevTools endpoint unavailable: {exc}") from exc
    try:
        return json.loads(body) if body.strip().startswith(("{", "[")) else body
    except json.JSONDecodeError as exc:
        raise SurfaceError(f"Invalid DevTools response: {exc}") from exc


class CdpConnection:
    """Low-level CDP WebSocket connection (one target)."""

    def __init__(self, ws_url: str, timeout: float = 5.0):
        self.ws = websocket.create_connection(ws_url, timeout=timeout, suppress_origin=True)
        self.ws_url = ws_url
        self.timeout = timeout
        self.lock = threading.Lock()
        self._next_id = 1

    def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Send CDP command and wait for response."""
        msg_id = self._next_id
        self._next_id += 1
        msg: dict[str, Any] = {"id": msg_id, "method": method}
        if params:
            msg["params"] = params
        try:
            self.ws.send(json.dumps(msg))
        except Exception as exc:  # noqa: BLE001
            raise SurfaceError(str(exc)) from exc
        return self._recv_until(msg_id)

    def _recv_until(self, expected_id: int) -> dict[str, Any]:
        deadline = time.time() + self.timeout
        while True:
            remaining = deadline - time.time()
            if remaining <= 0:
                raise CdpTimeoutError("CDP response timed out")
            try:
                self.ws.settimeout(min(0.5, remaining))
                raw = self.ws.recv()
            except websocket.WebSocketTimeoutException:
                continue
            except Exception as exc:  # noqa: BLE001
                raise SurfaceError(str(exc)) from exc
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                continue
            # Events carry no id; they are not needed here.
            if not isinstance(data, dict) or data.get("id") != expected_id:
                continue
            if "error" in data:
                err = data["error"]
                raise SurfaceError(str(err.get("message") if isinstance(err, dict) else err))
            return data.get("result", {})

    def close(self) -> None:
        with suppress(Exception):
            self.ws.close()


def _cookie_out(cookie: dict[str, Any]) -> dict[str, Any]:
    domain = str(cookie.get("domain") or "")
    expires = cookie.get("expires")
    session = bool(cookie.get("session")) or expires in (None, -1)
    out = {
        "name": cookie.get("name"),
        "value": cookie.get("value"),
        "domain": domain,
        "hostOnly": not domain.startswith("."),
        "path": cookie.get("path") or "/",
        "secure": bool(cookie.get("secure")),
        "httpOnly": bool(cookie.get("httpOnly")),
        "sameSite": str(cookie.get("sameSite") or "unspecified").lower(),
        "session": session,
    }
    if not session:
        out["expirationDate"] = expires
    return out


class CdpBrowser:
    """``BrowserControlSurface`` implementation backed by a DevTools endpoint."""

    def __init__(self, host: str = "127.0.0.1", port: int = 9222, *, timeout: float = 5.0) -> None:
        self.host = host
        self.port = int(port)
        self.timeout = float(timeout)
        self._conns: dict[str, CdpConnection] = {}
        self._conns_lock = threading.Lock()
        self._active: str | None = None

    @classmethod
    def from_config(cls, config: Any) -> CdpBrowser:
        return cls(config.cdp_host, config.cdp_port)

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    # ─────────────────────────────────────────────────────────────────────────
    # Sync plumbing (runs in worker threads)
    # ─────────────────────────────────────────────────────────────────────────

    def _targets(self) -> list[dict[str, Any]]:
        data = _http_json(f"{self.base_url}/json/list")
        return [t for t in data if isinstance(t, dict) and t.get("type") == "page"] if isinstance(data, list) else []

    def _target(self, tab_id: str) -> dict[str, Any]:
        for target in self._targets():
            if str(target.get("id")) == tab_id:
                return target
        raise SurfaceError(f"No tab with id: {tab_id}")

    def _conn(self, tab_id: str) -> CdpConnection:
        with self._conns_lock:
            conn = self._conns.get(tab_id)
        if conn is not None:
            return conn
        ws_url = self._target(tab_id).get("webSocketDebuggerUrl")
        if not ws_url:
            raise SurfaceError(f"Tab {tab_id} is already attached to another DevTools client")
        try:
            conn = CdpConnection(str(ws_url), timeout=self.timeout)
        except Exception as exc:  # noqa: BLE001
            raise SurfaceError(f"Cannot attach to tab {tab_id}: {exc}") from exc
        with self._conns_lock:
            existing = self._conns.setdefault(tab_id, conn)
        if existing is not conn:
            conn.close()
        return existing

    def _drop(self, tab_id: str) -> None:
        with self._conns_lock:
            conn = self._conns.pop(tab_id, None)
        if conn is not None:
            conn.close()

    def _send(self, tab_id: str, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        conn = self._conn(tab_id)
        try:
            with conn.lock:
                return conn.send(method, params)
        except CdpTimeoutError:
            raise
        except SurfaceError:
            self._drop(tab_id)
            raise

    def _tab_info(self, target: dict[str, Any], index: int, status: str | None = None) -> dict[str, Any]:
        tab_id = str(target.get("id"))
        return {
            "id": tab_id,
            "url": target.get("url"),
            "title": target.get("title"),
            "active": tab_id == self._active,
            "windowId": None,
            "index": index,
            "pinned": False,
            "audible": False,
            "mutedInfo": {"muted": False},
            "status": status,
        }

    def _frame_tree(self, tab_id: str) -> list[dict[str, Any]]:
        tree = self._send(tab_id, "Page.getFrameTree").get("frameTree") or {}
        frames: list[dict[str, Any]] = []

        def walk(node: dict[str, Any], parent: int) -> None:
            frame = node.get("frame") or {}
            number = len(frames)
            frames.append(
                {
                    "frameId": number,
                    "parentFrameId": parent,
                    "url": frame.get("url"),
                    "frameType": "outermost_frame" if parent < 0 else "sub_frame",
                    "documentId": frame.get("loaderId"),
                    "documentLifecycle": "active",
                    "errorOccurred": bool(frame.get("unreachableUrl")),
                    "_cdpFrameId": frame.get("id"),
                }
            )
            for child in node.get("childFrames") or []:
                walk(child, number)

        walk(tree, -1)
        return frames

    def _evaluate_in_frame(self, tab_id: str, frame: dict[str, Any], injection: ScriptInjection) -> FrameResult:
        expression = f"({injection.function})(...{json.dumps(injection.args)})"
        params: dict[str, Any] = {"expression": expression, "returnByValue": True, "awaitPromise": True}
        # The main world of the top frame is the default context; every other case gets an isolated world.
        if not (injection.world == WORLD_MAIN and frame["frameId"] == 0):
            world = self._send(
                tab_id,
                "Page.createIsolatedWorld",
                {"frameId": frame["_cdpFrameId"], "worldName": ISOLATED_WORLD_NAME},
            )
            params["contextId"] = world.get("executionContextId")
        res = self._send(tab_id, "Runtime.evaluate", params)
        details = res.get("exceptionDetails")
        if details:
            exc = details.get("exception") or {}
            text = exc.get("description") or details.get("text") or "Script error"
            return FrameResult(frame_id=frame["frameId"], error=str(text), document_id=frame.get("documentId"))
        return FrameResult(
            frame_id=frame["frameId"],
            result=(res.get("result") or {}).get("value"),
            document_id=frame.get("documentId"),
        )

    def _execute_script_sync(self, injection: ScriptInjection) -> list[FrameResult]:
        frames = self._frame_tree(injection.tab_id)
        if injection.all_frames:
            targets = frames
        elif injection.frame_ids:
            wanted = set(injection.frame_ids)
            targets = [f for f in frames if f["frameId"] in wanted]
            if not targets:
                raise SurfaceError(f"No frame with id {injection.frame_ids} in tab {injection.tab_id}")
        else:
            targets = frames[:1]
        return [self._evaluate_in_frame(injection.tab_id, frame, injection) for frame in targets]

    def _ready_state(self, tab_id: str) -> str:
        try:
            res = self._send(tab_id, "Runtime.evaluate", {"expression": "document.readyState", "returnByValue": True})
        except SurfaceError as exc:
            logger.debug("readyState probe failed for %s: %s", tab_id, exc)
            return "loading"
        return "complete" if (res.get("result") or {}).get("value") == "complete" else "loading"

    def _active_tab(self) -> str:
        targets = self._targets()
        if not targets:
            raise SurfaceError("No open tab")
        ids = [str(t.get("id")) for t in targets]
        return self._active if self._active in ids else ids[0]

    def _history_step(self, tab_id: str, step: int) -> None:
        history = self._send(tab_id, "Page.getNavigationHistory")
        entries = history.get("entries") or []
        index = int(history.get("currentIndex") or 0) + step
        if index < 0 or index >= len(entries):
            raise SurfaceError("Cannot go back" if step < 0 else "Cannot go forward")
        self._send(tab_id, "Page.navigateToHistoryEntry", {"entryId": entries[index]["id"]})

    # ─────────────────────────────────────────────────────────────────────────
    # BrowserControlSurface
    # ─────────────────────────────────────────────────────────────────────────

    async def list_tabs(self) -> list[dict[str, Any]]:
        targets = await asyncio.to_thread(self._targets)
        return [self._tab_info(t, i) for i, t in enumerate(targets)]

    async def get_tab(self, tab_id: str) -> dict[str, Any]:
        def _get() -> dict[str, Any]:
            targets = self._targets()
            for i, target in enumerate(targets):
                if str(target.get("id")) == tab_id:
                    return self._tab_info(target, i, self._ready_state(tab_id))
            raise SurfaceError(f"No tab with id: {tab_id}")

        return await asyncio.to_thread(_get)

    async def create_tab(
        self,
        url: str | None,
        *,
        active: bool = True,
        window_id: Any = None,
        index: int | None = None,
        pinned: bool | None = None,
    ) -> dict[str, Any]:
        def _create() -> dict[str, Any]:
            target = _http_json(f"{self.base_url}/json/new?{quote(url or 'about:blank', safe='')}", method="PUT")
            if not isinstance(target, dict) or not target.get("id"):
                raise SurfaceError("DevTools did not create a tab")
            if active:
                _http_json(f"{self.base_url}/json/activate/{target['id']}")
                self._active = str(target["id"])
            return self._tab_info(target, len(self._targets()) - 1)

        return await asyncio.to_thread(_create)

    async def close_tab(self, tab_id: str) -> None:
        def _close() -> None:
            self._target(tab_id)
            self._drop(tab_id)
            _http_json(f"{self.base_url}/json/close/{tab_id}")
            if self._active == tab_id:
                self._active = None

        await asyncio.to_thread(_close)

    async def update_tab(self, tab_id: str, *, url: str | None = None, active: bool | None = None) -> dict[str, Any]:
        def _update() -> dict[str, Any]:
            if url:
                res = self._send(tab_id, "Page.navigate", {"url": url})
                if res.get("errorText"):
                    raise SurfaceError(str(res["errorText"]))
            if active:
                _http_json(f"{self.base_url}/json/activate/{tab_id}")
                self._active = tab_id
            return self._tab_info(self._target(tab_id), 0)

        return await asyncio.to_thread(_update)

    async def reload_tab(self, tab_id: str, *, bypass_cache: bool = False) -> None:
        await asyncio.to_thread(self._send, tab_id, "Page.reload", {"ignoreCache": bool(bypass_cache)})

    async def go_back(self, tab_id: str) -> None:
        await asyncio.to_thread(self._history_step, tab_id, -1)

    async def go_forward(self, tab_id: str) -> None:
        await asyncio.to_thread(self._history_step, tab_id, 1)

    async def execute_script(self, injection: ScriptInjection) -> list[FrameResult]:
        return await asyncio.to_thread(self._execute_script_sync, injection)

    async def get_all_frames(self, tab_id: str) -> list[dict[str, Any]]:
        frames = await asyncio.to_thread(self._frame_tree, tab_id)
        return [{k: v for k, v in f.items() if not k.startswith("_")} for f in frames]

    async def get_cookies(
        self, *, url: str | None = None, domain: str | None = None, name: str | None = None
    ) -> list[dict[str, Any]]:
        def _get() -> list[dict[str, Any]]:
            tab_id = self._active_tab()
            if url:
                cookies = self._send(tab_id, "Network.getCookies", {"urls": [url]}).get("cookies") or []
            else:
                cookies = self._send(tab_id, "Network.getAllCookies").get("cookies") or []
            out = []
            for cookie in cookies:
                if name and cookie.get("name") != name:
                    continue
                if domain and not str(cookie.get("domain") or "").lstrip(".").endswith(domain.lstrip(".")):
                    continue
                out.append(_cookie_out(cookie))
            return out

        return await asyncio.to_thread(_get)

    async def set_cookie(self, cookie: dict[str, Any]) -> dict[str, Any] | None:
        def _set() -> dict[str, Any] | None:
            tab_id = self._active_tab()
            params = {k: cookie[k] for k in ("url", "name", "value", "domain", "path", "secure", "httpOnly") if k in cookie}
            params.setdefault("value", "")
            if cookie.get("expirationDate") is not None:
                params["expires"] = cookie["expirationDate"]
            res = self._send(tab_id, "Network.setCookie", params)
            if res.get("success") is False:
                raise SurfaceError(f"Failed to set cookie {cookie.get('name')}")
            stored = self._send(tab_id, "Network.getCookies", {"urls": [cookie["url"]]}).get("cookies") or []
            for item in stored:
                if item.get("name") == cookie.get("name"):
                    return _cookie_out(item)
            return None

        return await asyncio.to_thread(_set)

    async def remove_cookie(self, *, url: str, name: str) -> None:
        def _remove() -> None:
            self._send(self._active_tab(), "Network.deleteCookies", {"name": name, "url": url})

        await asyncio.to_thread(_remove)

    async def capture_visible_tab(self, window_id: Any, *, format: str = "png", quality: int = 100) -> str:
        fmt = "jpeg" if str(format).lower() in ("jpeg", "jpg") else "png"

        def _capture() -> str:
            params: dict[str, Any] = {"format": fmt}
            if fmt == "jpeg":
                params["quality"] = max(0, min(100, int(quality)))
            data = self._send(self._active_tab(), "Page.captureScreenshot", params).get("data") or ""
            return f"data:image/{fmt};base64,{data}"

        return await asyncio.to_thread(_capture)

    def close(self) -> None:
        with self._conns_lock:
            conns = list(self._conns.values())
            self._conns.clear()
        for conn in conns:
            conn.close()


__all__ = ["CdpBrowser", "CdpConnection", "CdpTimeoutError"]
