"""Error types surfaced across the bridge.

Every error's ``str()`` is the exact text placed in an ``error`` envelope.
"""

from __future__ import annotations


class BridgeError(Exception):
    pass


class ValidationError(BridgeError):
    """A required command parameter is missing or malformed."""


class ChannelClosedError(BridgeError):
    """The transport leg is not open (or was torn down while waiting)."""


class RequestTimeout(BridgeError):
    """No matching response arrived before the request deadline."""


class AgentTimeoutError(RequestTimeout):
    pass


class DuplicateRequestId(BridgeError):
    """A request id was reused while the previous request is still pending."""


class RemoteError(BridgeError):
    """The peer answered with an ``error`` envelope."""


class SurfaceError(BridgeError):
    """The Browser Control Surface rejected an operation."""


def require(params: dict, *names: str) -> None:
    """Raise ValidationError for the first missing (None/empty) parameter."""
    for name in names:
        value = params.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"{name} is required")


__all__ = [
    "AgentTimeoutError",
    "BridgeError",
    "ChannelClosedError",
    "DuplicateRequestId",
    "RemoteError",
    "RequestTimeout",
    "SurfaceError",
    "ValidationError",
    "require",
]
