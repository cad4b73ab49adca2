"""
Command registry: command name -> handler.

Lookup failure is an ordinary outcome (``get`` returns None); the dispatcher
turns it into an ``Unknown command`` error envelope. The default registry is
frozen once built so handlers cannot change while frames are in flight.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .context import CommandContext

logger = logging.getLogger("tab_bridge.registry")

HandlerFunc = Callable[["CommandContext", dict[str, Any]], Awaitable[Any]]


@dataclass(frozen=True, slots=True)
class CommandSpec:
    name: str
    handler: HandlerFunc
    # Parameters validated before the handler runs.
    required: tuple[str, ...] = ()


class CommandRegistry:
    def __init__(self) -> None:
        self._commands: dict[str, CommandSpec] = {}
        self._frozen = False

    def register(self, name: str, handler: HandlerFunc, required: tuple[str, ...] = ()) -> None:
        if self._frozen:
            raise RuntimeError(f"Registry is frozen; cannot register {name}")
        if name in self._commands:
            logger.warning("Overriding handler for %s", name)
        self._commands[name] = CommandSpec(name=name, handler=handler, required=tuple(required))

    def register_many(self, handlers: dict[str, tuple]) -> None:
        """Register ``{name: (handler, required)}`` entries."""
        for name, entry in handlers.items():
            handler, required = entry
            self.register(name, handler, required)

    def freeze(self) -> CommandRegistry:
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, name: str) -> CommandSpec | None:
        return self._commands.get(name)

    def has(self, name: str) -> bool:
        return name in self._commands

    def names(self) -> list[str]:
        return sorted(self._commands)

    def __len__(self) -> int:
        return len(self._commands)

    def __contains__(self, name: object) -> bool:
        return name in self._commands


def create_default_registry() -> CommandRegistry:
    from .handlers import ALL_HANDLERS

    registry = CommandRegistry()
    registry.register_many(ALL_HANDLERS)
    return registry.freeze()


__all__ = ["CommandRegistry", "CommandSpec", "HandlerFunc", "create_default_registry"]
