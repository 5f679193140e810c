from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import pytest

from repomd.errors import ConfigurationError, ResolutionError
from repomd.revision import RevisionResolver, RevisionState


class _Clock:
    def __init__(self, t: float = 1000.0) -> None:
        self.t = t

    def __call__(self) -> float:
        return self.t


class FakeApi:
    """Scripted /rev and project-details responses; the last scripted item repeats."""

    def __init__(self, revs: Optional[List[Any]] = None, details: Optional[List[Any]] = None) -> None:
        self.project_id = "p1"
        self.revs = list(revs or [])
        self.details = list(details or [])
        self.rev_calls = 0
        self.details_calls = 0
        self.gate: Optional[asyncio.Event] = None
        # Per-call gates, consumed in call order before falling back to `gate`.
        self.gates: List[asyncio.Event] = []

    @staticmethod
    def _next(items: List[Any]) -> Any:
        if not items:
            raise AssertionError("unexpected call")
        item = items.pop(0) if len(items) > 1 else items[0]
        if isinstance(item, BaseException):
            raise item
        return item

    async def fetch_project_active_rev(self) -> str:
        self.rev_calls += 1
        gate = self.gates.pop(0) if self.gates else self.gate
        if gate is not None:
            await gate.wait()
        return self._next(self.revs)

    async def fetch_project_details(self) -> Dict[str, Any]:
        self.details_calls += 1
        return self._next(self.details)


async def _settle(resolver: RevisionResolver) -> None:
    while resolver.in_flight:
        await asyncio.sleep(0)
    # Let done-callbacks of the finished flight run.
    await asyncio.sleep(0)


def test_concurrent_callers_share_one_remote_call() -> None:
    api = FakeApi(revs=["rev-1"])

    async def main() -> List[str]:
        api.gate = asyncio.Event()
        resolver = RevisionResolver(api, expiry_s=60)
        tasks = [asyncio.create_task(resolver.get_active_revision()) for _ in range(10)]
        await asyncio.sleep(0)
        assert resolver.in_flight
        api.gate.set()
        return await asyncio.gather(*tasks)

    assert asyncio.run(main()) == ["rev-1"] * 10
    assert api.rev_calls == 1
    assert api.details_calls == 0


def test_concurrent_callers_share_one_failure() -> None:
    api = FakeApi(revs=[RuntimeError("rev down")], details=[RuntimeError("details down")])

    async def main() -> List[Any]:
        api.gate = asyncio.Event()
        resolver = RevisionResolver(api, expiry_s=60)
        tasks = [asyncio.create_task(resolver.get_active_revision()) for _ in range(5)]
        await asyncio.sleep(0)
        api.gate.set()
        return await asyncio.gather(*tasks, return_exceptions=True)

    results = asyncio.run(main())
    assert all(isinstance(r, ResolutionError) for r in results)
    assert len({id(r) for r in results}) == 1
    assert api.rev_calls == 1
    assert api.details_calls == 1


def test_failed_flight_releases_token_for_a_clean_retry() -> None:
    api = FakeApi(revs=[RuntimeError("rev down"), "rev-2"], details=[RuntimeError("details down")])

    async def main() -> str:
        resolver = RevisionResolver(api, expiry_s=60)
        with pytest.raises(ResolutionError):
            await resolver.get_active_revision()
        assert not resolver.in_flight
        return await resolver.get_active_revision()

    assert asyncio.run(main()) == "rev-2"
    assert api.rev_calls == 2


def test_fresh_cache_answers_without_network_until_forced() -> None:
    api = FakeApi(revs=["rev-1", "rev-2"])

    async def main() -> List[str]:
        resolver = RevisionResolver(api, expiry_s=60)
        a = await resolver.get_active_revision()
        b = await resolver.get_active_revision()
        c = await resolver.get_active_revision(force_refresh=True)
        return [a, b, c]

    assert asyncio.run(main()) == ["rev-1", "rev-1", "rev-2"]
    assert api.rev_calls == 2


def test_force_refresh_bypasses_an_in_flight_resolution() -> None:
    api = FakeApi(revs=["rev-1"])

    async def main() -> None:
        api.gate = asyncio.Event()
        resolver = RevisionResolver(api, expiry_s=60)
        first = asyncio.create_task(resolver.get_active_revision())
        await asyncio.sleep(0)
        second = asyncio.create_task(resolver.get_active_revision(force_refresh=True))
        await asyncio.sleep(0)
        api.gate.set()
        assert await first == "rev-1"
        assert await second == "rev-1"

    asyncio.run(main())
    assert api.rev_calls == 2


def test_superseded_flight_does_not_overwrite_newer_revision() -> None:
    # Values are handed out in completion order: the forced flight finishes first.
    api = FakeApi(revs=["rev-new", "rev-old"])

    async def main() -> RevisionResolver:
        slow = asyncio.Event()
        api.gates = [slow]
        resolver = RevisionResolver(api, expiry_s=60)
        first = asyncio.create_task(resolver.get_active_revision())
        await asyncio.sleep(0)
        assert await resolver.get_active_revision(force_refresh=True) == "rev-new"
        slow.set()
        assert await first == "rev-old"
        await _settle(resolver)
        return resolver

    resolver = asyncio.run(main())
    assert resolver.cached_revision == "rev-new"
    assert api.rev_calls == 2


def test_cancelled_waiter_does_not_cancel_the_shared_flight() -> None:
    api = FakeApi(revs=["rev-1"])

    async def main() -> str:
        api.gate = asyncio.Event()
        resolver = RevisionResolver(api, expiry_s=60)
        doomed = asyncio.create_task(resolver.get_active_revision())
        survivor = asyncio.create_task(resolver.get_active_revision())
        await asyncio.sleep(0)
        doomed.cancel()
        await asyncio.sleep(0)
        api.gate.set()
        return await survivor

    assert asyncio.run(main()) == "rev-1"
    assert api.rev_calls == 1


def test_fallback_to_project_details_when_rev_endpoint_fails() -> None:
    api = FakeApi(revs=[ConnectionError("NetworkError")], details=[{"activeRev": "rev-C"}])

    async def main() -> RevisionResolver:
        resolver = RevisionResolver(api, expiry_s=60)
        assert await resolver.resolve_latest("latest") == "rev-C"
        return resolver

    resolver = asyncio.run(main())
    assert resolver.cached_revision == "rev-C"
    assert api.details_calls == 1


def test_empty_rev_response_falls_back() -> None:
    api = FakeApi(revs=[""], details=[{"activeRev": "rev-D"}])
    resolver = RevisionResolver(api, expiry_s=60)
    assert asyncio.run(resolver.get_active_revision()) == "rev-D"


def test_skip_fallback_surfaces_rev_error_without_details_call() -> None:
    original = ConnectionError("rev endpoint unreachable")
    api = FakeApi(revs=[original], details=[{"activeRev": "never"}])
    resolver = RevisionResolver(api, expiry_s=60)

    with pytest.raises(ResolutionError) as e:
        asyncio.run(resolver.get_active_revision(skip_fallback=True))
    assert "rev endpoint unreachable" in str(e.value)
    assert e.value.rev_error is original
    assert e.value.details_error is None
    assert api.details_calls == 0


def test_both_paths_failing_reports_both_errors() -> None:
    api = FakeApi(revs=[RuntimeError("rev exploded")], details=[RuntimeError("details exploded")])
    resolver = RevisionResolver(api, expiry_s=60)

    with pytest.raises(ResolutionError) as e:
        asyncio.run(resolver.resolve_latest("latest"))
    msg = str(e.value)
    assert "p1" in msg
    assert "rev exploded" in msg
    assert "details exploded" in msg
    assert resolver.cached_revision is None


def test_details_without_active_rev_is_terminal() -> None:
    api = FakeApi(revs=[RuntimeError("rev exploded")], details=[{"name": "no rev here"}])
    resolver = RevisionResolver(api, expiry_s=60)

    with pytest.raises(ResolutionError, match="No active revision found"):
        asyncio.run(resolver.get_active_revision())


def test_configuration_error_is_not_retried_or_wrapped() -> None:
    api = FakeApi(revs=[ConfigurationError("No valid projectId provided for API request")])
    resolver = RevisionResolver(api, expiry_s=60)

    with pytest.raises(ConfigurationError):
        asyncio.run(resolver.get_active_revision())
    assert api.details_calls == 0


def test_pinned_revision_never_touches_the_network() -> None:
    api = FakeApi()
    clock = _Clock()
    resolver = RevisionResolver(api, expiry_s=1, clock=clock)
    resolver.seed("rev-A")
    clock.t += 10

    assert asyncio.run(resolver.resolve_latest("pinned-123")) == "pinned-123"
    assert asyncio.run(resolver.resolve_latest("pinned-123", None)) == "pinned-123"
    assert api.rev_calls == 0
    assert api.details_calls == 0


def test_supplied_active_revision_wins() -> None:
    api = FakeApi()
    resolver = RevisionResolver(api, expiry_s=60)
    assert asyncio.run(resolver.resolve_latest("latest", "rev-X")) == "rev-X"
    assert api.rev_calls == 0


def test_stale_value_served_while_revalidating() -> None:
    api = FakeApi(revs=["rev-B"])
    clock = _Clock(100.0)

    async def main() -> List[str]:
        api.gate = asyncio.Event()
        resolver = RevisionResolver(api, expiry_s=1, clock=clock)
        resolver.seed("rev-A")
        clock.t = 102.0
        first = await resolver.resolve_latest("latest")
        second = await resolver.resolve_latest("latest")
        assert resolver.state() is RevisionState.STALE
        assert resolver.in_flight
        api.gate.set()
        await _settle(resolver)
        clock.t = 103.0
        third = await resolver.resolve_latest("latest")
        return [first, second, third]

    assert asyncio.run(main()) == ["rev-A", "rev-A", "rev-B"]
    assert api.rev_calls == 1


def test_many_stale_readers_schedule_one_background_refresh() -> None:
    api = FakeApi(revs=["rev-B"])
    clock = _Clock(0.0)

    async def main() -> List[str]:
        api.gate = asyncio.Event()
        resolver = RevisionResolver(api, expiry_s=5, clock=clock)
        resolver.seed("rev-A")
        clock.t = 60.0
        reads = await asyncio.gather(*(resolver.resolve_latest("latest") for _ in range(8)))
        await asyncio.sleep(0)
        api.gate.set()
        await _settle(resolver)
        return reads

    assert asyncio.run(main()) == ["rev-A"] * 8
    assert api.rev_calls == 1


def test_background_revalidation_error_is_logged_not_raised(caplog) -> None:
    api = FakeApi(revs=[RuntimeError("rev down")], details=[RuntimeError("details down")])
    clock = _Clock(0.0)

    async def main() -> RevisionResolver:
        resolver = RevisionResolver(api, expiry_s=1, clock=clock)
        resolver.seed("rev-A")
        clock.t = 5.0
        assert await resolver.resolve_latest("latest") == "rev-A"
        await _settle(resolver)
        assert await resolver.resolve_latest("latest") == "rev-A"
        await _settle(resolver)
        return resolver

    with caplog.at_level(logging.WARNING, logger="repomd.revision"):
        resolver = asyncio.run(main())
    assert resolver.cached_revision == "rev-A"
    assert "Background revalidation error" in caplog.text
    assert api.rev_calls == 2


def test_empty_cache_blocks_on_resolution() -> None:
    api = FakeApi(revs=["rev-1"])

    async def main() -> RevisionResolver:
        api.gate = asyncio.Event()
        resolver = RevisionResolver(api, expiry_s=60)
        assert resolver.state() is RevisionState.EMPTY
        task = asyncio.create_task(resolver.resolve_latest("latest"))
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert not task.done()
        assert resolver.state() is RevisionState.RESOLVING
        api.gate.set()
        assert await task == "rev-1"
        assert resolver.state() is RevisionState.FRESH
        return resolver

    asyncio.run(main())


def test_aclose_cancels_background_revalidation() -> None:
    api = FakeApi(revs=["rev-B"])
    clock = _Clock(0.0)

    async def main() -> RevisionResolver:
        api.gate = asyncio.Event()
        resolver = RevisionResolver(api, expiry_s=1, clock=clock)
        resolver.seed("rev-A")
        clock.t = 10.0
        await resolver.resolve_latest("latest")
        await asyncio.sleep(0)
        assert resolver.in_flight
        await resolver.aclose()
        return resolver

    resolver = asyncio.run(main())
    assert not resolver.in_flight
    assert resolver.cached_revision == "rev-A"


def test_aclose_before_resolution_starts_releases_waiters_and_token() -> None:
    api = FakeApi(revs=["rev-1"])

    async def main() -> RevisionResolver:
        resolver = RevisionResolver(api, expiry_s=60)
        waiter = asyncio.create_task(resolver.resolve_latest("latest"))
        await asyncio.sleep(0)
        assert resolver.in_flight
        await resolver.aclose()
        done, _ = await asyncio.wait({waiter}, timeout=1)
        assert waiter in done
        assert waiter.cancelled()
        assert not resolver.in_flight
        assert await resolver.get_active_revision() == "rev-1"
        return resolver

    resolver = asyncio.run(main())
    assert resolver.cached_revision == "rev-1"
    assert api.rev_calls == 1
