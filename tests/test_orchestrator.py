# ReelTrack test scripts
from __future__ import annotations

import threading
from pathlib import Path

from conftest import FakeClock, FakeRemote, MemoryLibrary, movie, remote_movie
from providers.library._mod_JSONLIB import JsonLibrary
from rt_platform.orchestrator import ItemStatus, OpKind


def test_second_pass_is_idempotent(make_engine) -> None:
    lib = MemoryLibrary("main", [
        movie("1", "Alpha", 2001, imdb="tt0000001", watched=1),
        movie("2", "Beta", 2002, tmdb="22"),
    ])
    remote = FakeRemote()
    eng = make_engine(remote, lib)

    first = eng.run_full_sync(["movie"])
    assert first.ok
    assert first.counts["added"] == 2
    assert first.counts["seen"] == 1

    remote.submits.clear()
    second = eng.run_full_sync(["movie"])
    assert second.ok
    assert remote.submits == []
    assert not any(second.counts.values())


def test_backfill_and_watched_correction(make_engine) -> None:
    lib = MemoryLibrary("main", [movie("1", "Alpha", 2001)])
    remote = FakeRemote(collection={"movie": [remote_movie("Alpha", 2001, imdb="tt0000001", plays=1)]})
    eng = make_engine(remote, lib)

    s = eng.run_full_sync(["movie"])

    assert s.ok
    assert lib.backfills == [("1", {"imdb": "tt0000001"})]
    assert lib.corrections == [("1", True)]
    assert s.counts["backfilled"] == 1 and s.counts["corrected"] == 1
    assert remote.submits == []


def test_cleanup_removes_orphans_with_single_source(make_engine) -> None:
    lib = MemoryLibrary("main", [movie("1", "Kept", 2000, imdb="tt0000100")])
    remote = FakeRemote(collection={"movie": [
        remote_movie("Kept", 2000, imdb="tt0000100"),
        remote_movie("Gone", 1999, imdb="tt0000999"),
    ]})
    eng = make_engine(remote, lib, keep_clean=True)

    s = eng.run_full_sync(["movie"])

    assert s.counts["removed"] == 1
    assert remote.titles(OpKind.REMOVE) == ["Gone"]


def test_already_exists_round_trip_blocks_cleanup(make_engine) -> None:
    lib = MemoryLibrary("main", [movie("1", "Beta", 2011, imdb="tt0000002")])
    remote = FakeRemote(
        collection={"movie": [remote_movie("Beta Remastered", 2011, imdb="tt0000003")]},
        statuses={"Beta": ItemStatus.ALREADY_EXISTS},
    )
    eng = make_engine(remote, lib, keep_clean=True)
    events: list[str] = []
    eng.emitter.cb = events.append

    first = eng.run_full_sync(["movie"])
    assert first.counts["existing"] == 1
    assert first.counts["removed"] == 0
    assert eng.existing["movie"].is_known_existing(lib.items["1"])
    # the reply recorded in this pass already closes the clean-up gate
    assert remote.titles(OpKind.REMOVE) == []
    assert any('"cleanup:blocked"' in e for e in events)

    remote.collection["movie"].append(remote_movie("Stray", 1990, imdb="tt0000004"))
    remote.submits.clear()
    events.clear()

    second = eng.run_full_sync(["movie"])
    assert second.ok
    assert remote.titles(OpKind.ADD) == []
    assert remote.titles(OpKind.REMOVE) == []
    assert any('"cleanup:blocked"' in e for e in events)


def test_failed_fetch_mutates_nothing(make_engine, clock: FakeClock) -> None:
    lib = MemoryLibrary("main", [movie("1", "Alpha", 2001)])
    remote = FakeRemote(fail_fetch=True)
    eng = make_engine(remote, lib)
    eng.existing["movie"].record_existing([movie("x", "Stale", 1980)])
    eng.skip["movie"].record_skipped([movie("y", "Skipped", 1981)])
    clock.advance(days=30)

    s = eng.run_full_sync(["movie"])

    assert not s.ok
    assert "Sync failed" in s.message
    assert remote.submits == []
    assert lib.corrections == [] and lib.backfills == []
    assert len(eng.existing["movie"]) == 1
    assert len(eng.skip["movie"]) == 1
    assert eng.registry_idle.is_set()


def test_not_found_items_are_skipped_until_cooldown(make_engine, clock: FakeClock) -> None:
    lib = MemoryLibrary("main", [movie("1", "Obscure", 1950)])
    remote = FakeRemote(statuses={"Obscure": ItemStatus.NOT_FOUND})
    eng = make_engine(remote, lib)

    assert eng.run_full_sync(["movie"]).counts["skipped"] == 1

    clock.advance(days=1)
    remote.submits.clear()
    eng.run_full_sync(["movie"])
    assert remote.submits == []

    clock.advance(days=7)
    eng.run_full_sync(["movie"])
    assert remote.titles(OpKind.ADD) == ["Obscure"]


def test_two_sources_disable_cleanup_and_pruning(make_engine) -> None:
    one = MemoryLibrary("one", [movie("1", "Kept", 2000, imdb="tt0000100")])
    two = MemoryLibrary("two", [movie("9", "Other", 2003, imdb="tt0000300")])
    remote = FakeRemote(collection={"movie": [
        remote_movie("Kept", 2000, imdb="tt0000100"),
        remote_movie("Other", 2003, imdb="tt0000300"),
        remote_movie("Gone", 1999, imdb="tt0000999"),
    ]})
    eng = make_engine(remote, one, two, keep_clean=True)
    eng.existing["movie"].record_existing([movie("z", "Absent", 1970)])

    s = eng.run_full_sync(["movie"])

    assert s.ok
    assert eng.source_count == 2
    assert remote.titles(OpKind.REMOVE) == []
    assert len(eng.existing["movie"]) == 1
    assert eng.state_store.load_state()["sources"] == 2


def test_single_source_prunes_stale_existing(make_engine) -> None:
    lib = MemoryLibrary("main", [movie("1", "Kept", 2000, imdb="tt0000100")])
    eng = make_engine(FakeRemote(), lib)
    eng.existing["movie"].record_existing([movie("z", "Absent", 1970)])

    eng.run_full_sync(["movie"])

    assert len(eng.existing["movie"]) == 0


def test_blocked_items_are_ignored(make_engine) -> None:
    lib = MemoryLibrary("main", [
        movie("1", "Home Video", 2015, paths=["/media/Personal/home.mkv"]),
        movie("2", "Feature", 2016, imdb="tt0000200"),
    ])
    remote = FakeRemote()
    eng = make_engine(remote, lib, blocked_folders=["/personal/"])

    eng.run_full_sync(["movie"])

    assert remote.titles(OpKind.ADD) == ["Feature"]


def test_local_correction_failure_does_not_abort(make_engine) -> None:
    lib = MemoryLibrary("main", [movie("1", "Alpha", 2001, imdb="tt0000001")], fail_corrections=True)
    remote = FakeRemote(collection={"movie": [remote_movie("Alpha", 2001, imdb="tt0000001", plays=1)]})
    eng = make_engine(remote, lib)

    s = eng.run_full_sync(["movie"])

    assert s.ok
    assert s.counts["local_failed"] == 1
    assert s.counts["corrected"] == 0


def test_transport_failure_on_push_counts_failed(make_engine) -> None:
    lib = MemoryLibrary("main", [movie("1", "Alpha", 2001, imdb="tt0000001")])
    remote = FakeRemote(fail_submit=True)
    eng = make_engine(remote, lib)

    s = eng.run_full_sync(["movie"])

    assert s.ok
    assert s.counts["failed"] == 1
    assert len(remote.submits) == 3
    assert len(eng.skip["movie"]) == 0


def test_overlapping_pass_is_refused(make_engine) -> None:
    gate, release = threading.Event(), threading.Event()
    remote = FakeRemote()

    def _hold() -> None:
        gate.set()
        release.wait(5)

    remote.on_fetch = _hold
    eng = make_engine(remote, MemoryLibrary("main"))
    fut = eng.start_full_sync(["movie"])
    assert gate.wait(5)

    refused = eng.run_full_sync(["movie"])
    assert not refused.ok
    assert refused.message == "Sync already in progress"

    release.set()
    assert fut.result(timeout=5).ok
    assert not eng.is_running


def test_cancel_stops_between_phases(make_engine) -> None:
    lib = MemoryLibrary("main", [movie("1", "Alpha", 2001, imdb="tt0000001")])
    remote = FakeRemote()
    eng = make_engine(remote, lib)
    remote.on_fetch = eng.cancel

    s = eng.run_full_sync(["movie"])

    assert s.cancelled and not s.ok
    assert remote.submits == []


def test_corrections_are_not_echoed_back(make_engine, tmp_path: Path) -> None:
    lib = JsonLibrary("main", tmp_path / "library.json")
    remote = FakeRemote(
        collection={"movie": [remote_movie("Alpha", 2001, imdb="tt0000001", plays=1)]},
        watched={"movie": [remote_movie("Beta", 2002, imdb="tt0000002", plays=1, unseen=True)]},
    )
    eng = make_engine(remote, lib)
    lib.insert(movie("1", "Alpha", 2001, imdb="tt0000001"))
    lib.insert(movie("2", "Beta", 2002, imdb="tt0000002", watched=2))
    eng.workers.write(lambda: None).result(timeout=5)
    remote.submits.clear()

    s = eng.run_full_sync(["movie"])
    eng.workers.write(lambda: None).result(timeout=5)

    assert s.counts["corrected"] == 2
    assert lib.get("1").watched and not lib.get("2").watched
    assert OpKind.SEEN not in [op.kind for op in remote.submits]
    assert OpKind.UNSEEN not in [op.kind for op in remote.submits]


def test_subscribers_receive_summary(make_engine) -> None:
    eng = make_engine(FakeRemote(), MemoryLibrary("main"))
    got = []
    eng.subscribe(got.append)
    s = eng.run_full_sync()
    assert got == [s]
    assert eng.status()["last_summary"]["ok"] is True


def test_registries_view_and_clear(make_engine) -> None:
    eng = make_engine(FakeRemote(), MemoryLibrary("main"))
    eng.skip["movie"].record_skipped([movie("1", "Obscure", 1950)])

    view = eng.registries()
    assert view["skipped"]["movie"]["items"] == [{"title": "Obscure", "year": "1950", "ext_id": ""}]
    assert eng.clear_registry("skipped", "movie") == 1
    assert eng.registries()["skipped"]["movie"]["items"] == []
