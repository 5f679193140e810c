from __future__ import annotations

import asyncio
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


def _mark_retrieved(fut: "asyncio.Future[object]") -> None:
    # Nobody may be waiting on a failed flight; keep asyncio from warning about it.
    if not fut.cancelled():
        fut.exception()


class SingleFlight(Generic[T]):
    """
    At most one pending future; concurrent callers share its outcome.

    `begin()` installs the token synchronously, so a caller that checks
    `pending` and then calls `begin()` without awaiting in between can never
    race another caller into a second flight. Every terminal transition
    clears the token only if it is still the installed one: a forced refresh
    may replace the token while an older flight is still running.
    """

    def __init__(self) -> None:
        self._pending: Optional[asyncio.Future[T]] = None

    @property
    def pending(self) -> Optional[asyncio.Future[T]]:
        return self._pending

    def begin(self) -> asyncio.Future[T]:
        fut: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        fut.add_done_callback(_mark_retrieved)
        self._pending = fut
        return fut

    def complete(self, fut: asyncio.Future[T], value: T) -> None:
        if not fut.done():
            fut.set_result(value)
        self._release(fut)

    def fail(self, fut: asyncio.Future[T], exc: BaseException) -> None:
        if not fut.done():
            fut.set_exception(exc)
        self._release(fut)

    def cancel(self, fut: asyncio.Future[T]) -> None:
        fut.cancel()
        self._release(fut)

    def _release(self, fut: asyncio.Future[T]) -> None:
        if self._pending is fut:
            self._pending = None
