from __future__ import annotations

import asyncio
import time
from typing import Any

import pytest
from fakes import FakeSurface

from tab_bridge.errors import RequestTimeout
from tab_bridge.tools.scripts import ELEMENT_EXISTS_JS
from tab_bridge.tools.wait import poll_until, wait_for_element, wait_for_navigation, wait_for_tab_load


class _FakeClock:
    """Virtual time advanced only by ``sleep``."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _sequence(values: list[Any]):
    calls: list[int] = []

    async def check() -> Any:
        calls.append(1)
        value = values[min(len(calls), len(values)) - 1]
        if isinstance(value, Exception):
            raise value
        return value

    return check, calls


def test_only_strict_true_completes_the_wait() -> None:
    clock = _FakeClock()
    check, calls = _sequence([None, None, False, True])
    out = asyncio.run(poll_until(check, timeout_ms=10_000, sleep=clock.sleep, clock=clock))
    assert out["found"] is True
    assert len(calls) == 4
    assert out["elapsed"] == 300


def test_truthy_non_boolean_values_do_not_count() -> None:
    clock = _FakeClock()
    check, calls = _sequence([1, "true", {"found": True}, [1], True])
    out = asyncio.run(poll_until(check, sleep=clock.sleep, clock=clock))
    assert out["found"] is True
    assert len(calls) == 5


def test_poll_errors_are_treated_as_not_yet() -> None:
    clock = _FakeClock()
    check, calls = _sequence([RuntimeError("frame detached"), ValueError("navigating"), True])
    out = asyncio.run(poll_until(check, sleep=clock.sleep, clock=clock))
    assert out == {"found": True, "elapsed": 200}
    assert len(calls) == 3


def test_timeout_reports_not_found_with_elapsed_at_least_timeout() -> None:
    clock = _FakeClock()
    check, calls = _sequence([False])
    out = asyncio.run(poll_until(check, timeout_ms=500, sleep=clock.sleep, clock=clock))
    assert out["found"] is False
    assert out["elapsed"] >= 500
    assert len(calls) == 5
    assert all(s == pytest.approx(0.1) for s in clock.sleeps)


def test_timeout_on_the_real_clock_is_bounded() -> None:
    check, _ = _sequence([False])
    started = time.monotonic()
    out = asyncio.run(poll_until(check, timeout_ms=300))
    wall = time.monotonic() - started
    assert out == {"found": False, "elapsed": 300}
    assert 0.3 <= wall < 2.0


def test_invalid_timeout_falls_back_to_default() -> None:
    clock = _FakeClock()
    check, calls = _sequence([False])
    out = asyncio.run(poll_until(check, timeout_ms="soon", sleep=clock.sleep, clock=clock))
    assert out == {"found": False, "elapsed": 10_000}
    assert len(calls) >= 100


def test_wait_for_element_polls_the_page() -> None:
    answers = iter([None, False, True])
    surface = FakeSurface({ELEMENT_EXISTS_JS: lambda selector: next(answers)})
    clock = _FakeClock()
    out = asyncio.run(wait_for_element(surface, "1", "#late", sleep=clock.sleep, clock=clock))
    assert out["found"] is True
    assert [inj.args for inj in surface.injections] == [["#late"]] * 3


def test_wait_for_navigation_matches_status_and_url() -> None:
    surface = FakeSurface()
    surface.statuses = ["loading", "complete", "complete"]
    surface.tabs["1"]["url"] = "https://example.test/checkout"
    clock = _FakeClock()
    out = asyncio.run(wait_for_navigation(surface, "1", url="/checkout", sleep=clock.sleep, clock=clock))
    assert out["found"] is True
    assert surface.call_names().count("get_tab") == 2

    out = asyncio.run(wait_for_navigation(surface, "1", url="/elsewhere", timeout_ms=300, sleep=clock.sleep, clock=clock))
    assert out["found"] is False


def test_wait_for_tab_load_raises_on_timeout() -> None:
    surface = FakeSurface()
    surface.statuses = ["loading"] * 100
    clock = _FakeClock()
    with pytest.raises(RequestTimeout, match="tab 1"):
        asyncio.run(wait_for_tab_load(surface, "1", timeout=0.5, sleep=clock.sleep, clock=clock))
