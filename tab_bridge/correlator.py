"""Request/response correlation over a fire-and-forget frame transport."""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from .envelope import TYPE_ERROR, TYPE_RESPONSE
from .errors import ChannelClosedError, DuplicateRequestId, RemoteError, RequestTimeout

logger = logging.getLogger("tab_bridge.correlator")

SendFunc = Callable[[dict[str, Any]], Awaitable[Any]]


@dataclass(slots=True)
class PendingRequest:
    id: Any
    created_at: float
    future: asyncio.Future
    deadline: float | None = None


class RequestCorrelator:
    """Matches response envelopes to pending callers by request id.

    Ids come from ``id_factory`` (or ``<prefix><n>``); two correlators on
    different legs must use different prefixes so ids never collide.
    Reusing an id that is still pending raises DuplicateRequestId.
    """

    def __init__(self, *, prefix: str = "", id_factory: Callable[[], Any] | None = None) -> None:
        self._prefix = prefix
        self._counter = itertools.count(1)
        self._id_factory = id_factory
        self._pending: dict[Any, PendingRequest] = {}

    def next_id(self) -> Any:
        if self._id_factory is not None:
            return self._id_factory()
        return f"{self._prefix}{next(self._counter)}"

    def __len__(self) -> int:
        return len(self._pending)

    def is_pending(self, req_id: Any) -> bool:
        return req_id in self._pending

    async def issue(
        self,
        send: SendFunc,
        payload: dict[str, Any],
        *,
        timeout: float | None = None,
        request_id: Any = None,
    ) -> Any:
        """Send ``payload`` with a fresh id and wait for the matching response."""
        req_id = self.next_id() if request_id is None else request_id
        if req_id in self._pending:
            raise DuplicateRequestId(f"Request id already pending: {req_id}")

        loop = asyncio.get_running_loop()
        now = time.monotonic()
        pending = PendingRequest(
            id=req_id,
            created_at=now,
            future=loop.create_future(),
            deadline=(now + timeout) if timeout is not None else None,
        )
        self._pending[req_id] = pending
        try:
            await send({**payload, "id": req_id})
            if timeout is None:
                return await pending.future
            try:
                return await asyncio.wait_for(pending.future, timeout=max(0.0, float(timeout)))
            except asyncio.TimeoutError as exc:
                raise RequestTimeout(f"Timed out waiting for response to request {req_id}") from exc
        finally:
            if self._pending.get(req_id) is pending:
                del self._pending[req_id]

    def resolve(self, frame: dict[str, Any]) -> bool:
        """Deliver a response/error frame. Returns False when nothing was waiting for it."""
        req_id = frame.get("id")
        pending = self._pending.pop(req_id, None) if req_id is not None else None
        if pending is None:
            logger.debug("discarding frame for unknown request id %r", req_id)
            return False
        fut = pending.future
        if fut.done():
            return False
        if frame.get("type") == TYPE_ERROR:
            fut.set_exception(RemoteError(str(frame.get("error") or "Request failed")))
        elif frame.get("type") == TYPE_RESPONSE:
            fut.set_result(frame.get("result"))
        else:
            fut.set_exception(RemoteError(f"Unexpected frame type: {frame.get('type')!r}"))
        return True

    def reject_all(self, exc: BaseException | None = None) -> int:
        """Reject every pending waiter (channel teardown)."""
        pending = list(self._pending.values())
        self._pending.clear()
        for rec in pending:
            if not rec.future.done():
                rec.future.set_exception(exc or ChannelClosedError("Channel closed"))
        return len(pending)


__all__ = ["PendingRequest", "RequestCorrelator", "SendFunc"]
