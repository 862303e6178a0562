# ReelTrack test scripts
from __future__ import annotations

from conftest import FakeClock, FakeRemote, MemoryLibrary
from rt_platform.orchestrator._cache import TimedCache


def test_timed_cache_reloads_after_ttl() -> None:
    clock = FakeClock()
    cache: TimedCache[list[int]] = TimedCache(60, clock=clock)
    calls: list[int] = []

    def loader() -> list[int]:
        calls.append(1)
        return [len(calls)]

    assert cache.get(loader) == [1]
    clock.advance(seconds=59)
    assert cache.get(loader) == [1]
    clock.advance(seconds=2)
    assert cache.get(loader) == [2]
    assert len(calls) == 2


def test_timed_cache_invalidate() -> None:
    clock = FakeClock()
    cache: TimedCache[str] = TimedCache(300, clock=clock)
    cache.get(lambda: "a")
    cache.invalidate()
    assert cache.snapshot() == {"fetched_at": None, "ttl": 300.0, "fresh": False}
    assert cache.get(lambda: "b") == "b"
    assert cache.snapshot()["fetched_at"] == clock.now


def test_engine_watchlist_and_recommendations_are_cached(make_engine) -> None:
    remote = FakeRemote()
    eng = make_engine(remote, MemoryLibrary("main"))

    first = eng.watchlist("movie")
    again = eng.watchlist("movie")
    assert again is first
    assert remote.watchlist_calls == 1
    assert [r.title for r in eng.recommendations("movie")] == ["Suggested"]

    eng.watchlist_cache["movie"].invalidate()
    eng.watchlist("movie")
    assert remote.watchlist_calls == 2
