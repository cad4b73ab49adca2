"""Remote browser-automation bridge.

A driver talks to the bridge over a WebSocket; the bridge dispatches command
frames against browser tabs and, for DOM-level work, forwards them to page
agents over a second local transport.
"""

from __future__ import annotations

BRIDGE_PROTOCOL_VERSION = "1.0.0"

__all__ = ["BRIDGE_PROTOCOL_VERSION"]
