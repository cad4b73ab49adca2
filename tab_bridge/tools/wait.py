"""
Bounded polling waits.

Every wait is ``Waiting -> {Found, TimedOut}``: the condition check is called
every ``interval`` seconds until it returns exactly ``True`` or the deadline
passes. A single failed poll (tab mid-navigation, frame detached) counts as
"not yet", never as a fatal error.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from ..errors import RequestTimeout
from ..surface import ScriptInjection, first_result
from .scripts import ELEMENT_EXISTS_JS, IFRAME_READY_JS

if TYPE_CHECKING:
    from ..surface import BrowserControlSurface

logger = logging.getLogger("tab_bridge.wait")

DEFAULT_TIMEOUT_MS = 10_000
DEFAULT_IFRAME_TIMEOUT_MS = 5_000
POLL_INTERVAL_MS = 100

CheckFunc = Callable[[], Awaitable[Any]]


def _ms(value: Any, default: int) -> float:
    try:
        ms = float(value)
    except (TypeError, ValueError):
        return float(default)
    return ms if ms > 0 else float(default)


async def poll_until(
    check: CheckFunc,
    *,
    timeout_ms: Any = DEFAULT_TIMEOUT_MS,
    interval_ms: float = POLL_INTERVAL_MS,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> dict[str, Any]:
    """Poll ``check`` until it returns ``True``.

    Returns ``{"found": True, "elapsed": <ms>}`` on the first strict ``True`` and
    ``{"found": False, "elapsed": <timeout ms>}`` once the deadline passes.
    """
    timeout = _ms(timeout_ms, DEFAULT_TIMEOUT_MS)
    started = clock()
    attempts = 0
    while (clock() - started) * 1000.0 < timeout:
        attempts += 1
        try:
            value = await check()
        except Exception as exc:  # noqa: BLE001
            logger.debug("poll attempt %d failed: %s", attempts, exc)
            value = None
        if value is True:
            return {"found": True, "elapsed": int((clock() - started) * 1000.0)}
        await sleep(interval_ms / 1000.0)
    return {"found": False, "elapsed": int(timeout)}


def _script_check(surface: BrowserControlSurface, tab_id: str, function: str, *args: Any) -> CheckFunc:
    async def check() -> Any:
        results = await surface.execute_script(ScriptInjection(tab_id=tab_id, function=function, args=list(args)))
        return first_result(results)

    return check


async def wait_for_element(
    surface: BrowserControlSurface, tab_id: str, selector: str, *, timeout_ms: Any = DEFAULT_TIMEOUT_MS, **kw: Any
) -> dict[str, Any]:
    return await poll_until(_script_check(surface, tab_id, ELEMENT_EXISTS_JS, selector), timeout_ms=timeout_ms, **kw)


async def wait_for_iframe(
    surface: BrowserControlSurface,
    tab_id: str,
    selector: str,
    *,
    timeout_ms: Any = DEFAULT_IFRAME_TIMEOUT_MS,
    **kw: Any,
) -> dict[str, Any]:
    timeout_ms = _ms(timeout_ms, DEFAULT_IFRAME_TIMEOUT_MS)
    return await poll_until(_script_check(surface, tab_id, IFRAME_READY_JS, selector), timeout_ms=timeout_ms, **kw)


async def wait_for_navigation(
    surface: BrowserControlSurface,
    tab_id: str,
    *,
    url: str | None = None,
    timeout_ms: Any = DEFAULT_TIMEOUT_MS,
    **kw: Any,
) -> dict[str, Any]:
    """Wait until the tab reports ``complete`` (and, if given, its URL contains ``url``)."""

    async def check() -> bool:
        tab = await surface.get_tab(tab_id)
        if tab.get("status") != "complete":
            return False
        if url and url not in str(tab.get("url") or ""):
            return False
        return True

    return await poll_until(check, timeout_ms=timeout_ms, **kw)


async def wait_for_tab_load(
    surface: BrowserControlSurface, tab_id: str, *, timeout: float, **kw: Any
) -> dict[str, Any]:
    """Block until load-complete; unlike the driver-facing waits a timeout here is an error."""
    outcome = await wait_for_navigation(surface, tab_id, timeout_ms=timeout * 1000.0, **kw)
    if not outcome["found"]:
        raise RequestTimeout(f"Timed out waiting for tab {tab_id} to finish loading")
    return outcome


__all__ = [
    "DEFAULT_IFRAME_TIMEOUT_MS",
    "DEFAULT_TIMEOUT_MS",
    "POLL_INTERVAL_MS",
    "poll_until",
    "wait_for_element",
    "wait_for_iframe",
    "wait_for_navigation",
    "wait_for_tab_load",
]
