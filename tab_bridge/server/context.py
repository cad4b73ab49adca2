from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ..config import BridgeConfig

if TYPE_CHECKING:
    from ..agent_bridge import AgentBridge
    from ..surface import BrowserControlSurface


@dataclass
class CommandContext:
    """Collaborators handed to every command handler."""

    surface: BrowserControlSurface
    config: BridgeConfig = field(default_factory=BridgeConfig)
    agents: AgentBridge | None = None
    # bridge.* commands; wired by BridgeService.
    status: Callable[[], dict[str, Any]] | None = None
    reconnect: Callable[[bool], Awaitable[Any]] | None = None
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    clock: Callable[[], float] = time.monotonic
