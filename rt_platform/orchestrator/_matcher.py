# rt_platform/orchestrator/_matcher.py
# identity matching between local items and remote items.
# Copyright (c) 2025-2026 ReelTrack
from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from ..id_map import normalize_id, valid_imdb
from ._types import LocalItem, MatchResult, MatchTier, RemoteItem

# (key space, id key, read show-level ids?) in precedence order
_KEY_SPACES: dict[str, tuple[tuple[str, str, bool], ...]] = {
    "movie": (("imdb", "imdb", False), ("tmdb", "tmdb", False)),
    "episode": (("tvdb", "tvdb", True), ("imdb", "imdb", True)),
}

_PRIMARY: dict[str, tuple[str, bool]] = {
    "movie": ("imdb", False),
    "episode": ("tvdb", True),
}


def _se(item: Any) -> str:
    if getattr(item, "entity", "movie") != "episode":
        return ""
    try:
        return f"#s{int(item.season):02d}e{int(item.episode):02d}"
    except (TypeError, ValueError):
        return ""


def _id_value(item: Any, id_key: str, show_level: bool) -> str | None:
    src = item.show_ids if show_level else item.ids
    v = normalize_id(id_key, (src or {}).get(id_key))
    if id_key == "imdb" and not valid_imdb(v):
        return None
    return v


def _title_year(item: Any) -> str | None:
    t = str(getattr(item, "title", "") or "").strip().lower()
    if not t:
        return None
    y = getattr(item, "year", None)
    return f"{t}|{'' if y is None else str(y).strip()}{_se(item)}"


class RemoteIndex:
    """
    Lookup tables over one entity class of remote items, built once per pass.
    Title/year keys shared by more than one remote item are ambiguous and never match.
    """

    def __init__(self, remote_items: Iterable[RemoteItem], entity: str = "movie"):
        self.entity = entity
        self.items: list[RemoteItem] = [r for r in remote_items if r.entity == entity]
        self._by_id: dict[str, dict[str, RemoteItem]] = {space: {} for space, _, _ in _KEY_SPACES.get(entity, ())}
        self._by_ty: dict[str, RemoteItem] = {}
        self._ambiguous: set[str] = set()

        for r in self.items:
            se = _se(r)
            if entity == "episode" and not se:
                continue
            for space, id_key, show_level in _KEY_SPACES.get(entity, ()):
                v = _id_value(r, id_key, show_level)
                if v:
                    self._by_id[space].setdefault(f"{v}{se}", r)
            ty = _title_year(r)
            if ty:
                prev = self._by_ty.get(ty)
                if prev is not None and prev is not r:
                    self._ambiguous.add(ty)
                else:
                    self._by_ty[ty] = r

    def __len__(self) -> int:
        return len(self.items)

    def match(self, local: LocalItem) -> MatchResult:
        se = _se(local)
        if local.entity == "episode" and not se:
            return MatchResult(local=local)

        for space, id_key, show_level in _KEY_SPACES.get(local.entity, ()):
            v = _id_value(local, id_key, show_level)
            if not v:
                continue
            hit = self._by_id.get(space, {}).get(f"{v}{se}")
            if hit is not None:
                return MatchResult(local=local, remote=hit, key_space=space,
                                   tier=MatchTier.EXACT_ID, backfill=_backfill(local, hit))

        ty = _title_year(local)
        if ty and ty not in self._ambiguous:
            hit = self._by_ty.get(ty)
            if hit is not None:
                return MatchResult(local=local, remote=hit, key_space="title_year",
                                   tier=MatchTier.FALLBACK_TITLE_YEAR, backfill=_backfill(local, hit))

        return MatchResult(local=local)


def _backfill(local: LocalItem, remote: RemoteItem) -> dict[str, str]:
    id_key, show_level = _PRIMARY.get(local.entity, ("imdb", False))
    theirs = _id_value(remote, id_key, show_level)
    if theirs and not _id_value(local, id_key, show_level):
        return {id_key: theirs}
    return {}


def match(local: LocalItem, remote_set: Iterable[RemoteItem]) -> MatchResult:
    """Single-item convenience; builds a throwaway index."""
    return RemoteIndex(remote_set, local.entity).match(local)


__all__ = ["RemoteIndex", "match"]
