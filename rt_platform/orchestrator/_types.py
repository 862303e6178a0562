# rt_platform/orchestrator/_types.py
# types and protocols for the reconciliation engine.
# Copyright (c) 2025-2026 ReelTrack
from __future__ import annotations

from dataclasses import dataclass, field
from collections.abc import Mapping
from enum import Enum
from typing import Any, Protocol

from ..id_map import canonical_key, minimal as _minimal, normalize_id

ENTITY_CLASSES: tuple[str, ...] = ("movie", "episode")
PRIMARY_ID: dict[str, str] = {"movie": "imdb", "episode": "tvdb"}


class OpKind(str, Enum):
    ADD = "add"
    REMOVE = "remove"
    SEEN = "seen"
    UNSEEN = "unseen"
    RATE = "rate"


class ItemStatus(str, Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    FAILED = "failed"


class MatchTier(str, Enum):
    EXACT_ID = "exact_id"
    FALLBACK_TITLE_YEAR = "fallback_title_year"
    NONE = "none"


# --- errors -------------------------------------------------------------------

class SyncError(Exception):
    pass


class TransportError(SyncError):
    """No usable response from the remote service."""


class ProtocolError(SyncError):
    """Structured error returned by the remote service."""

    def __init__(self, reason: str, status: int | None = None, message: str | None = None):
        self.reason = reason
        self.status = status
        super().__init__(message or (f"{reason} (HTTP {status})" if status else reason))


# --- items --------------------------------------------------------------------

@dataclass
class LocalItem:
    local_id: str
    entity: str = "movie"
    title: str = ""
    year: int | None = None
    ids: dict[str, str] = field(default_factory=dict)
    show_ids: dict[str, str] = field(default_factory=dict)
    season: int | None = None
    episode: int | None = None
    watched_count: int = 0
    in_collection: bool = True
    paths: list[str] = field(default_factory=list)
    user_rating: float | None = None
    source: str = ""

    def as_mapping(self) -> dict[str, Any]:
        return {
            "type": self.entity, "title": self.title, "year": self.year,
            "ids": self.ids, "show_ids": self.show_ids,
            "season": self.season, "episode": self.episode,
        }

    def minimal(self) -> dict[str, Any]:
        return _minimal(self.as_mapping())

    @property
    def key(self) -> str:
        return canonical_key(self.as_mapping())

    @property
    def watched(self) -> bool:
        return int(self.watched_count or 0) > 0

    @property
    def ref(self) -> str:
        return f"{self.source}:{self.entity}:{self.local_id}"

    @property
    def primary_id(self) -> str | None:
        src = self.show_ids if self.entity == "episode" else self.ids
        return normalize_id(PRIMARY_ID.get(self.entity, "imdb"), (src or {}).get(PRIMARY_ID.get(self.entity, "imdb")))

    def label(self) -> str:
        if self.entity == "episode":
            return f"{self.title} S{int(self.season or 0):02d}E{int(self.episode or 0):02d}"
        return f"{self.title} ({self.year})" if self.year else self.title


@dataclass
class RemoteItem:
    entity: str = "movie"
    title: str = ""
    year: int | None = None
    ids: dict[str, str] = field(default_factory=dict)
    show_ids: dict[str, str] = field(default_factory=dict)
    season: int | None = None
    episode: int | None = None
    plays: int = 0
    in_collection: bool = False
    unseen: bool = False

    def as_mapping(self) -> dict[str, Any]:
        return {
            "type": self.entity, "title": self.title, "year": self.year,
            "ids": self.ids, "show_ids": self.show_ids,
            "season": self.season, "episode": self.episode,
        }

    def minimal(self) -> dict[str, Any]:
        return _minimal(self.as_mapping())

    @property
    def key(self) -> str:
        return canonical_key(self.as_mapping())

    @property
    def watched(self) -> bool:
        return int(self.plays or 0) > 0 and not self.unseen

    def label(self) -> str:
        if self.entity == "episode":
            return f"{self.title} S{int(self.season or 0):02d}E{int(self.episode or 0):02d}"
        return f"{self.title} ({self.year})" if self.year else self.title


@dataclass
class MatchResult:
    local: LocalItem
    remote: RemoteItem | None = None
    key_space: str | None = None
    tier: MatchTier = MatchTier.NONE
    backfill: dict[str, str] = field(default_factory=dict)

    @property
    def matched(self) -> bool:
        return self.remote is not None


@dataclass(frozen=True)
class RegistryRecord:
    title: str
    year: str = ""
    ext_id: str = ""
    season: int | None = None
    episode: int | None = None

    @classmethod
    def of(cls, item: LocalItem) -> "RegistryRecord":
        return cls(
            title=item.title or "",
            year="" if item.year is None else str(item.year),
            ext_id=item.primary_id or "",
            season=item.season if item.entity == "episode" else None,
            episode=item.episode if item.entity == "episode" else None,
        )

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "RegistryRecord":
        def _int(v: Any) -> int | None:
            try:
                return int(v) if v is not None else None
            except (TypeError, ValueError):
                return None
        return cls(
            title=str(d.get("title") or ""),
            year=str(d.get("year") or ""),
            ext_id=str(d.get("ext_id") or ""),
            season=_int(d.get("season")),
            episode=_int(d.get("episode")),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"title": self.title, "year": self.year, "ext_id": self.ext_id}
        if self.season is not None:
            out["season"] = self.season
            out["episode"] = self.episode
        return out

    def matches(self, item: LocalItem) -> bool:
        return self == RegistryRecord.of(item)


# --- operations ---------------------------------------------------------------

@dataclass
class SyncOperation:
    entity: str
    kind: OpKind
    items: list[Any] = field(default_factory=list)

    def payload(self) -> list[dict[str, Any]]:
        out: list[dict[str, Any]] = []
        for it in self.items:
            m = it.minimal() if hasattr(it, "minimal") else dict(it)
            rating = getattr(it, "rating", None)
            if rating is not None:
                m["rating"] = rating
            out.append(m)
        return out


@dataclass
class ItemOutcome:
    item: Any
    status: ItemStatus
    reason: str | None = None


@dataclass
class OperationResult:
    ok: bool
    status: str = "ok"
    reason: str | None = None
    items: list[ItemOutcome] | None = None


@dataclass
class RatedItem:
    """A local item carrying the remote-scale rating for a rate operation."""
    item: LocalItem
    rating: int

    def minimal(self) -> dict[str, Any]:
        return self.item.minimal()

    @property
    def key(self) -> str:
        return self.item.key


# --- summary ------------------------------------------------------------------

@dataclass
class SyncSummary:
    ok: bool
    message: str = ""
    cancelled: bool = False
    counts: dict[str, int] = field(default_factory=dict)
    by_entity: dict[str, dict[str, int]] = field(default_factory=dict)
    started_at: float | None = None
    finished_at: float | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "cancelled": self.cancelled,
            "message": self.message,
            "counts": dict(self.counts),
            "by_entity": {k: dict(v) for k, v in self.by_entity.items()},
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }


# --- collaborators --------------------------------------------------------------

class RemoteClient(Protocol):
    def fetch_collection(self, entity: str) -> list[RemoteItem]: ...
    def fetch_watched(self, entity: str) -> list[RemoteItem]: ...
    def submit(self, op: SyncOperation) -> OperationResult: ...
    def fetch_watchlist(self, entity: str) -> list[RemoteItem]: ...
    def fetch_recommendations(self, entity: str) -> list[RemoteItem]: ...


class LocalLibrary(Protocol):
    name: str
    def list_all(self, entity: str) -> list[LocalItem]: ...
    def list_watched(self, entity: str) -> list[LocalItem]: ...
    def apply_watched_correction(self, item: LocalItem, watched: bool) -> None: ...
    def apply_identifier_backfill(self, item: LocalItem, ids: Mapping[str, str]) -> None: ...
