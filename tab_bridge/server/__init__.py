"""Driver-facing command dispatch: handler registry, invocation pipeline and handlers."""

from .context import CommandContext
from .dispatch import CommandDispatcher
from .registry import CommandRegistry, CommandSpec, create_default_registry

__all__ = ["CommandContext", "CommandDispatcher", "CommandRegistry", "CommandSpec", "create_default_registry"]
