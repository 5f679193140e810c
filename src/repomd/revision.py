from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Protocol, Set

from .config import DEFAULT_REV_EXPIRY_S, LATEST
from .errors import ConfigurationError, ResolutionError
from .single_flight import SingleFlight

logger = logging.getLogger(__name__)


class RevisionSource(Protocol):
    project_id: str

    async def fetch_project_active_rev(self) -> str: ...

    async def fetch_project_details(self) -> Mapping[str, Any]: ...


class RevisionState(str, enum.Enum):
    EMPTY = "empty"
    RESOLVING = "resolving"
    FRESH = "fresh"
    STALE = "stale"


@dataclass(frozen=True)
class RevisionCacheEntry:
    value: Optional[str] = None
    timestamp: float = 0.0

    def is_expired(self, now: float, expiry_s: float) -> bool:
        return now - self.timestamp > expiry_s


def _active_rev_from_details(details: Any) -> str:
    if not isinstance(details, Mapping):
        raise ValueError("Invalid project details response format")
    rev = str(details.get("activeRev") or "").strip()
    if not rev:
        raise ValueError("No active revision found in project details")
    return rev


class RevisionResolver:
    """
    Resolves a project's "latest" pointer to a concrete revision id.

    Resolution tries the /rev endpoint first and falls back to the project
    details payload. Concurrent resolutions are coalesced into one flight.
    Reads through `resolve_latest` are stale-while-revalidate: an expired
    value is returned immediately and refreshed by a background task.
    """

    def __init__(
        self,
        api: RevisionSource,
        *,
        project_id: Optional[str] = None,
        expiry_s: float = DEFAULT_REV_EXPIRY_S,
        clock: Callable[[], float] = time.monotonic,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self._api = api
        self.project_id = project_id or getattr(api, "project_id", "") or "unknown"
        self.expiry_s = expiry_s
        self._clock = clock
        self._log = log or logger
        self._entry = RevisionCacheEntry()
        self._flight: SingleFlight[str] = SingleFlight()
        self._tasks: Set["asyncio.Task[None]"] = set()

    @property
    def cached_revision(self) -> Optional[str]:
        return self._entry.value

    @property
    def entry(self) -> RevisionCacheEntry:
        return self._entry

    @property
    def in_flight(self) -> bool:
        return self._flight.pending is not None

    def state(self) -> RevisionState:
        if self._entry.value is None:
            return RevisionState.RESOLVING if self.in_flight else RevisionState.EMPTY
        if self._entry.is_expired(self._clock(), self.expiry_s):
            return RevisionState.STALE
        return RevisionState.FRESH

    def seed(self, value: Optional[str]) -> None:
        value = (value or "").strip()
        if value:
            self._store(value)

    async def get_active_revision(self, force_refresh: bool = False, skip_fallback: bool = False) -> str:
        pending = self._flight.pending
        if pending is not None and not force_refresh:
            self._log.debug(f"Joining in-flight revision resolution for project {self.project_id}")
            return await asyncio.shield(pending)

        if not force_refresh and self.state() is RevisionState.FRESH:
            return self._entry.value  # type: ignore[return-value]

        fut = self._start_resolution(skip_fallback=skip_fallback)
        return await asyncio.shield(fut)

    async def resolve_latest(self, requested_revision: str = LATEST, active_revision: Optional[str] = None) -> str:
        if requested_revision != LATEST:
            return requested_revision
        if active_revision:
            return active_revision

        value = self._entry.value
        if value is not None:
            if self._entry.is_expired(self._clock(), self.expiry_s):
                self._revalidate_in_background()
            return value

        self._log.debug(f"Resolving latest revision for project {self.project_id}")
        rev = await self.get_active_revision()
        self._log.debug(f"Resolved 'latest' to revision: {rev}")
        return rev

    async def aclose(self) -> None:
        tasks = list(self._tasks)
        for t in tasks:
            t.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    def _store(self, value: str) -> None:
        self._entry = RevisionCacheEntry(value=value, timestamp=self._clock())

    def _revalidate_in_background(self) -> None:
        if self._flight.pending is not None:
            return
        self._log.debug(f"Stored revision {self._entry.value} expired, revalidating in background")
        fut = self._start_resolution(skip_fallback=False)
        fut.add_done_callback(self._on_background_done)

    def _on_background_done(self, fut: "asyncio.Future[str]") -> None:
        if fut.cancelled():
            return
        exc = fut.exception()
        if exc is not None:
            self._log.warning(f"Background revalidation error, keeping revision {self._entry.value}: {exc}")
            return
        self._log.debug(f"Background refresh complete, new rev: {fut.result()}")

    def _start_resolution(self, *, skip_fallback: bool) -> "asyncio.Future[str]":
        fut = self._flight.begin()
        task = asyncio.get_running_loop().create_task(self._drive(fut, skip_fallback=skip_fallback))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(lambda _t: self._release_if_abandoned(fut))
        return fut

    def _release_if_abandoned(self, fut: "asyncio.Future[str]") -> None:
        # A task cancelled before its first step never enters _drive.
        if not fut.done():
            self._flight.cancel(fut)

    async def _drive(self, fut: "asyncio.Future[str]", *, skip_fallback: bool) -> None:
        try:
            rev = await self._resolve_remote(skip_fallback=skip_fallback)
        except asyncio.CancelledError:
            self._flight.cancel(fut)
            raise
        except Exception as e:
            self._log.debug(f"Error getting active project revision: {e}")
            self._flight.fail(fut, e)
        else:
            # A forced refresh that replaced this flight owns the cache entry.
            if self._flight.pending is fut:
                self._store(rev)
            self._flight.complete(fut, rev)
        finally:
            if not fut.done():
                self._flight.cancel(fut)

    async def _resolve_remote(self, *, skip_fallback: bool) -> str:
        try:
            rev = await self._api.fetch_project_active_rev()
            rev = str(rev or "").strip()
            if not rev:
                raise ValueError("empty revision from /rev endpoint")
            return rev
        except ConfigurationError:
            raise
        except Exception as e:
            rev_error = e

        if skip_fallback:
            raise ResolutionError(
                f"Could not determine latest revision for project {self.project_id}. /rev endpoint error: {rev_error}",
                project_id=self.project_id,
                rev_error=rev_error,
            ) from rev_error

        self._log.warning(f"Failed to get revision from /rev endpoint, falling back to project details: {rev_error}")
        try:
            details = await self._api.fetch_project_details()
            return _active_rev_from_details(details)
        except ConfigurationError:
            raise
        except Exception as details_error:
            raise ResolutionError(
                f"Could not determine latest revision for project {self.project_id}. "
                f"/rev endpoint error: {rev_error}, project details error: {details_error}",
                project_id=self.project_id,
                rev_error=rev_error,
                details_error=details_error,
            ) from details_error
