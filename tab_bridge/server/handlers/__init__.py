"""
Command handlers organized by domain.

All handlers follow the signature: async (ctx, params) -> result.
Each table maps a command name to ``(handler, required params)``.
"""

from .bridge import BRIDGE_HANDLERS
from .frames import FRAME_HANDLERS
from .page import PAGE_HANDLERS
from .scripting import SCRIPTING_HANDLERS
from .storage import COOKIE_HANDLERS, STORAGE_HANDLERS
from .tabs import TAB_HANDLERS
from .waits import WAIT_HANDLERS

ALL_HANDLERS: dict[str, tuple] = {
    **TAB_HANDLERS,
    **SCRIPTING_HANDLERS,
    **WAIT_HANDLERS,
    **COOKIE_HANDLERS,
    **STORAGE_HANDLERS,
    **FRAME_HANDLERS,
    **PAGE_HANDLERS,
    **BRIDGE_HANDLERS,
}

__all__ = [
    "ALL_HANDLERS",
    "BRIDGE_HANDLERS",
    "COOKIE_HANDLERS",
    "FRAME_HANDLERS",
    "PAGE_HANDLERS",
    "SCRIPTING_HANDLERS",
    "STORAGE_HANDLERS",
    "TAB_HANDLERS",
    "WAIT_HANDLERS",
]
