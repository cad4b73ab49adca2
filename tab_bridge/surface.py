"""Browser Control Surface: the operations the dispatcher calls into.

The browser engine itself is an external collaborator; ``CdpBrowser`` in
``tab_bridge.cdp`` is the DevTools-backed implementation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from .errors import SurfaceError

WORLD_ISOLATED = "ISOLATED"
WORLD_MAIN = "MAIN"


@dataclass(slots=True)
class ScriptInjection:
    """One script-injection request: call ``function`` (JS source) with ``args`` in a tab."""

    tab_id: str
    function: str
    args: list[Any] = field(default_factory=list)
    world: str = WORLD_ISOLATED
    frame_ids: list[int] | None = None
    all_frames: bool = False


@dataclass(slots=True)
class FrameResult:
    frame_id: int
    result: Any = None
    error: str | None = None
    document_id: str | None = None


@runtime_checkable
class BrowserControlSurface(Protocol):
    async def list_tabs(self) -> list[dict[str, Any]]: ...

    async def get_tab(self, tab_id: str) -> dict[str, Any]: ...

    async def create_tab(
        self,
        url: str | None,
        *,
        active: bool = True,
        window_id: Any = None,
        index: int | None = None,
        pinned: bool | None = None,
    ) -> dict[str, Any]: ...

    async def close_tab(self, tab_id: str) -> None: ...

    async def update_tab(self, tab_id: str, *, url: str | None = None, active: bool | None = None) -> dict[str, Any]: ...

    async def reload_tab(self, tab_id: str, *, bypass_cache: bool = False) -> None: ...

    async def go_back(self, tab_id: str) -> None: ...

    async def go_forward(self, tab_id: str) -> None: ...

    async def execute_script(self, injection: ScriptInjection) -> list[FrameResult]: ...

    async def get_all_frames(self, tab_id: str) -> list[dict[str, Any]]: ...

    async def get_cookies(
        self, *, url: str | None = None, domain: str | None = None, name: str | None = None
    ) -> list[dict[str, Any]]: ...

    async def set_cookie(self, cookie: dict[str, Any]) -> dict[str, Any] | None: ...

    async def remove_cookie(self, *, url: str, name: str) -> None: ...

    async def capture_visible_tab(self, window_id: Any, *, format: str = "png", quality: int = 100) -> str: ...


def normalize_tab_id(tab_id: Any) -> str:
    return str(tab_id if tab_id is not None else "").strip()


def first_result(results: list[FrameResult] | None) -> Any:
    """Result of the first frame, or None when there is none. A frame error is raised."""
    if not results:
        return None
    first = results[0]
    if first is None:
        return None
    if first.error:
        raise SurfaceError(first.error)
    return first.result


__all__ = [
    "BrowserControlSurface",
    "FrameResult",
    "ScriptInjection",
    "WORLD_ISOLATED",
    "WORLD_MAIN",
    "first_result",
    "normalize_tab_id",
]
