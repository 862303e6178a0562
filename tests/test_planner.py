# ReelTrack test scripts
from __future__ import annotations

from conftest import movie, remote_movie
from rt_platform.orchestrator import MatchTier
from rt_platform.orchestrator._planner import (
    CLEANUP_DISABLED,
    CLEANUP_EXISTING_PENDING,
    CLEANUP_MULTIPLE_SOURCES,
    CleanupGate,
    diff_collection,
    diff_watched,
    merge_remote,
    summarize,
    to_remote_rating,
)

OPEN = CleanupGate(enabled=True, source_count=1, already_exists_count=0)


def test_fallback_match_is_backfilled_not_pushed_or_removed() -> None:
    alpha = movie("1", "Alpha", 2001)
    remote = [remote_movie("Alpha", 2001, imdb="tt0000001")]

    d = diff_collection([alpha], remote, entity="movie", cleanup=OPEN)

    m = d.matches[alpha.ref]
    assert m.tier == MatchTier.FALLBACK_TITLE_YEAR
    assert m.backfill == {"imdb": "tt0000001"}
    assert d.backfills == [m]
    assert d.to_add == []
    assert d.to_remove == []


def test_unmatched_remote_is_removed_when_cleanup_allowed() -> None:
    remote = [remote_movie("Gone", 1999, imdb="tt0000999"), remote_movie("Kept", 2000, imdb="tt0000100")]
    d = diff_collection([movie("1", "Kept", 2000, imdb="tt0000100")], remote, entity="movie", cleanup=OPEN)
    assert [r.title for r in d.to_remove] == ["Gone"]
    assert d.unmatched_remote == 1
    assert d.cleanup_blocked is None


def test_cleanup_gate_reasons() -> None:
    assert CleanupGate(False, 1, 0).reason() == CLEANUP_DISABLED
    assert CleanupGate(True, 2, 0).reason() == CLEANUP_MULTIPLE_SOURCES
    assert CleanupGate(True, 1, 3).reason() == CLEANUP_EXISTING_PENDING
    assert CleanupGate(True, 1, 0).allowed


def test_pending_already_exists_blocks_every_removal() -> None:
    remote = [remote_movie(f"Orphan {i}", 2000 + i, imdb=f"tt000090{i}") for i in range(5)]
    gate = CleanupGate(enabled=True, source_count=1, already_exists_count=1)
    d = diff_collection([], remote, entity="movie", cleanup=gate)
    assert d.to_remove == []
    assert d.unmatched_remote == 5
    assert d.cleanup_blocked == CLEANUP_EXISTING_PENDING


def test_only_collection_members_are_added() -> None:
    owned = movie("1", "Owned", 2000, imdb="tt0000010")
    wishlisted = movie("2", "Wish", 2001, imdb="tt0000011")
    wishlisted.in_collection = False
    d = diff_collection([owned, wishlisted], [], entity="movie")
    assert [it.title for it in d.to_add] == ["Owned"]


def test_filtered_items_are_not_added() -> None:
    a, b = movie("1", "A", 2000, imdb="tt0000010"), movie("2", "B", 2001, imdb="tt0000011")
    d = diff_collection([a, b], [], entity="movie", is_filtered=lambda it: it.title == "B")
    assert [it.title for it in d.to_add] == ["A"]


def test_duplicates_collapse_on_canonical_key() -> None:
    a1 = movie("1", "A", 2000, imdb="tt0000010", source="one")
    a2 = movie("7", "A", 2000, imdb="tt0000010", source="two")
    d = diff_collection([a1, a2], [], entity="movie")
    assert len(d.to_add) == 1


def test_watched_only_remote_still_gets_collection_add() -> None:
    local = movie("1", "A", 2000, imdb="tt0000010", watched=1)
    remote = [remote_movie("A", 2000, imdb="tt0000010", plays=2, in_collection=False)]
    d = diff_collection([local], remote, entity="movie")
    assert [it.title for it in d.to_add] == ["A"]
    assert d.to_mark_local_watched == []


def test_remote_watched_marks_local_watched() -> None:
    local = movie("1", "A", 2000, imdb="tt0000010")
    remote = [remote_movie("A", 2000, imdb="tt0000010", plays=1)]
    d = diff_collection([local], remote, entity="movie")
    assert d.to_mark_local_watched == [local]
    assert d.corrections() == {local.ref: True}


def test_now_playing_is_not_auto_marked_watched() -> None:
    local = movie("1", "A", 2000, imdb="tt0000010")
    remote = [remote_movie("A", 2000, imdb="tt0000010", plays=1)]
    d = diff_collection([local], remote, entity="movie", now_playing=local.ref)
    assert d.to_mark_local_watched == []


def test_remote_unseen_wins_over_local_watched() -> None:
    local = movie("1", "A", 2000, imdb="tt0000010", watched=3)
    remote = [remote_movie("A", 2000, imdb="tt0000010", plays=1, unseen=True)]
    d = diff_collection([local], remote, entity="movie")
    assert d.to_mark_local_unwatched == [local]

    w = diff_watched([local], d.matches, d.corrections())
    assert w.to_mark_seen == []


def test_watched_diff_pushes_unseen_remote_plays() -> None:
    a = movie("1", "A", 2000, imdb="tt0000010", watched=1)
    b = movie("2", "B", 2001, imdb="tt0000011", watched=1)
    c = movie("3", "C", 2002, imdb="tt0000012", watched=1)
    remote = [remote_movie("A", 2000, imdb="tt0000010", plays=4), remote_movie("B", 2001, imdb="tt0000011")]
    d = diff_collection([a, b, c], remote, entity="movie")

    w = diff_watched([a, b, c], d.matches, is_filtered=lambda it: it.title == "C", now_playing=None)
    assert [it.title for it in w.to_mark_seen] == ["B"]


def test_merge_remote_folds_collection_and_watched() -> None:
    coll = [remote_movie("A", 2000, imdb="tt0000010")]
    watched = [
        remote_movie("A", 2000, imdb="tt0000010", tmdb="10", plays=2, in_collection=False),
        remote_movie("B", 2001, imdb="tt0000011", plays=1, in_collection=False),
    ]
    merged = {r.title: r for r in merge_remote(coll, watched)}
    assert merged["A"].in_collection and merged["A"].plays == 2
    assert merged["A"].ids == {"imdb": "tt0000010", "tmdb": "10"}
    assert not merged["B"].in_collection
    assert coll[0].ids == {"imdb": "tt0000010"}


def test_to_remote_rating_scales() -> None:
    assert to_remote_rating(4, 5) == 8
    assert to_remote_rating(3.5, 5) == 7
    assert to_remote_rating(7, 10) == 7
    assert to_remote_rating(12, 10) == 10
    assert to_remote_rating(0, 5) is None
    assert to_remote_rating(None) is None
    assert to_remote_rating("n/a") is None


def test_summarize_counts() -> None:
    local = movie("1", "A", 2000, imdb="tt0000010", watched=1)
    d = diff_collection([local], [], entity="movie")
    w = diff_watched([local], d.matches)
    s = summarize(d, w)
    assert s["to_add"] == 1 and s["to_mark_seen"] == 1 and s["matched"] == 0
