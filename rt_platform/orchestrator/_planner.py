# rt_platform/orchestrator/_planner.py
# diff engine: collection / watched diffs and local corrections.
# Copyright (c) 2025-2026 ReelTrack
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from ._matcher import RemoteIndex
from ._types import LocalItem, MatchResult, RemoteItem

CLEANUP_DISABLED = "disabled"
CLEANUP_MULTIPLE_SOURCES = "multiple_sources"
CLEANUP_EXISTING_PENDING = "already_exists_pending"


@dataclass
class CleanupGate:
    enabled: bool = False
    source_count: int = 1
    already_exists_count: int = 0

    def reason(self) -> Optional[str]:
        if not self.enabled:
            return CLEANUP_DISABLED
        if int(self.source_count) != 1:
            return CLEANUP_MULTIPLE_SOURCES
        if int(self.already_exists_count) > 0:
            return CLEANUP_EXISTING_PENDING
        return None

    @property
    def allowed(self) -> bool:
        return self.reason() is None


@dataclass
class CollectionDiff:
    to_add: List[LocalItem] = field(default_factory=list)
    to_remove: List[RemoteItem] = field(default_factory=list)
    to_mark_local_watched: List[LocalItem] = field(default_factory=list)
    to_mark_local_unwatched: List[LocalItem] = field(default_factory=list)
    backfills: List[MatchResult] = field(default_factory=list)
    matches: Dict[str, MatchResult] = field(default_factory=dict)
    cleanup_blocked: Optional[str] = None
    unmatched_remote: int = 0

    def corrections(self) -> Dict[str, bool]:
        out = {it.ref: True for it in self.to_mark_local_watched}
        out.update({it.ref: False for it in self.to_mark_local_unwatched})
        return out


@dataclass
class WatchedDiff:
    to_mark_seen: List[LocalItem] = field(default_factory=list)


def _never(_: LocalItem) -> bool:
    return False


# Remote merge
def merge_remote(collection: Iterable[RemoteItem], watched: Iterable[RemoteItem]) -> List[RemoteItem]:
    """Fold collection and watched fetches into one RemoteItem per canonical key."""
    out: Dict[str, RemoteItem] = {}
    for r in collection or []:
        k = r.key
        cur = out.get(k)
        if cur is None:
            out[k] = replace(r, in_collection=True, ids=dict(r.ids or {}))
        else:
            cur.in_collection = True
    for r in watched or []:
        k = r.key
        cur = out.get(k)
        if cur is None:
            out[k] = replace(r, in_collection=bool(r.in_collection), ids=dict(r.ids or {}))
            continue
        cur.plays = max(int(cur.plays or 0), int(r.plays or 0))
        cur.unseen = bool(cur.unseen or r.unseen)
        for ik, iv in (r.ids or {}).items():
            cur.ids.setdefault(ik, iv)
    return list(out.values())


# Collection diff
def diff_collection(
    local_items: Iterable[LocalItem],
    remote_items: Iterable[RemoteItem],
    *,
    entity: str,
    is_filtered: Callable[[LocalItem], bool] = _never,
    cleanup: CleanupGate | None = None,
    now_playing: Optional[str] = None,
) -> CollectionDiff:
    gate = cleanup or CleanupGate()
    index = RemoteIndex(remote_items, entity)
    out = CollectionDiff()
    to_add: Dict[str, LocalItem] = {}
    matched_remote: set[int] = set()

    for local in local_items:
        if local.entity != entity:
            continue
        m = index.match(local)
        out.matches[local.ref] = m

        if m.remote is not None:
            r = m.remote
            matched_remote.add(id(r))
            if m.backfill:
                out.backfills.append(m)
            if r.unseen and local.watched:
                out.to_mark_local_unwatched.append(local)
            elif r.watched and not local.watched and local.ref != now_playing:
                out.to_mark_local_watched.append(local)
            if r.in_collection:
                continue

        if not local.in_collection or is_filtered(local):
            continue
        to_add.setdefault(local.key, local)

    out.to_add = list(to_add.values())

    orphans = [r for r in index.items if r.in_collection and id(r) not in matched_remote]
    out.unmatched_remote = len(orphans)
    out.cleanup_blocked = gate.reason()
    if out.cleanup_blocked is None:
        out.to_remove = orphans
    return out


# Watched diff
def diff_watched(
    local_items: Iterable[LocalItem],
    matches: Mapping[str, MatchResult],
    corrections: Mapping[str, bool] | None = None,
    *,
    is_filtered: Callable[[LocalItem], bool] = _never,
    now_playing: Optional[str] = None,
) -> WatchedDiff:
    corr = corrections or {}
    seen: Dict[str, LocalItem] = {}
    for local in local_items:
        watched = corr.get(local.ref, local.watched)
        if not watched or local.ref == now_playing:
            continue
        m = matches.get(local.ref)
        r = m.remote if m is not None else None
        if r is not None and (int(r.plays or 0) > 0 or r.unseen):
            continue
        if is_filtered(local):
            continue
        seen.setdefault(local.key, local)
    return WatchedDiff(to_mark_seen=list(seen.values()))


# Ratings helpers
def to_remote_rating(value: Any, scale: int = 5) -> Optional[int]:
    """Local 5-star or 10-point rating to the remote 1..10 scale; None for unrated."""
    if value is None:
        return None
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    if f <= 0:
        return None
    if int(scale) == 5:
        f *= 2.0
    n = int(round(f))
    return max(1, min(10, n))


def summarize(diff: CollectionDiff, watched: WatchedDiff) -> Dict[str, int]:
    return {
        "to_add": len(diff.to_add),
        "to_remove": len(diff.to_remove),
        "to_mark_seen": len(watched.to_mark_seen),
        "local_watched": len(diff.to_mark_local_watched),
        "local_unwatched": len(diff.to_mark_local_unwatched),
        "backfills": len(diff.backfills),
        "matched": sum(1 for m in diff.matches.values() if m.matched),
    }
