# ReelTrack test scripts
from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Iterator

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

os.environ.setdefault("RT_NO_BOOTSTRAP", "1")

from rt_platform.orchestrator._types import (  # noqa: E402
    ItemOutcome, ItemStatus, LocalItem, OperationResult, OpKind, RemoteItem,
    SyncOperation, TransportError,
)

T0 = 1_700_000_000.0
DAY = 86400.0


@pytest.fixture()
def config_base(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setenv("CONFIG_BASE", str(tmp_path))
    return tmp_path


class FakeClock:
    def __init__(self, now: float = T0):
        self.now = float(now)

    def __call__(self) -> float:
        return self.now

    def advance(self, days: float = 0.0, seconds: float = 0.0) -> None:
        self.now += days * DAY + seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


def movie(local_id: str, title: str, year: int | None = None, *, imdb: str | None = None,
          tmdb: str | None = None, watched: int = 0, paths: list[str] | None = None,
          source: str = "main", rating: float | None = None) -> LocalItem:
    ids = {k: v for k, v in (("imdb", imdb), ("tmdb", tmdb)) if v}
    return LocalItem(local_id=local_id, entity="movie", title=title, year=year, ids=ids,
                     watched_count=watched, paths=list(paths or [f"/media/movies/{title}.mkv"]),
                     source=source, user_rating=rating)


def remote_movie(title: str, year: int | None = None, *, imdb: str | None = None, tmdb: str | None = None,
                 plays: int = 0, in_collection: bool = True, unseen: bool = False) -> RemoteItem:
    ids = {k: v for k, v in (("imdb", imdb), ("tmdb", tmdb)) if v}
    return RemoteItem(entity="movie", title=title, year=year, ids=ids, plays=plays,
                      in_collection=in_collection, unseen=unseen)


def _as_remote(it: Any) -> RemoteItem:
    base = getattr(it, "item", it)
    return RemoteItem(entity=base.entity, title=base.title, year=base.year, ids=dict(base.ids),
                      show_ids=dict(base.show_ids), season=base.season, episode=base.episode,
                      in_collection=True)


@dataclass
class FakeRemote:
    """In-memory remote service. statuses maps an item title to a forced outcome."""
    collection: dict[str, list[RemoteItem]] = field(default_factory=dict)
    watched: dict[str, list[RemoteItem]] = field(default_factory=dict)
    statuses: dict[str, ItemStatus] = field(default_factory=dict)
    fail_fetch: bool = False
    fail_submit: bool = False
    on_fetch: Callable[[], None] | None = None
    submits: list[SyncOperation] = field(default_factory=list)
    watchlist_calls: int = 0

    def fetch_collection(self, entity: str) -> list[RemoteItem]:
        if self.on_fetch:
            self.on_fetch()
        if self.fail_fetch:
            raise TransportError("connection refused")
        return [replace(r, ids=dict(r.ids)) for r in self.collection.get(entity, [])]

    def fetch_watched(self, entity: str) -> list[RemoteItem]:
        if self.fail_fetch:
            raise TransportError("connection refused")
        return [replace(r, ids=dict(r.ids), in_collection=False)
                for r in self.watched.get(entity, [])]

    def fetch_watchlist(self, entity: str) -> list[RemoteItem]:
        self.watchlist_calls += 1
        return [remote_movie("Queued", 2020, imdb="tt7777777", in_collection=False)]

    def fetch_recommendations(self, entity: str) -> list[RemoteItem]:
        return [remote_movie("Suggested", 2021, imdb="tt8888888", in_collection=False)]

    def submit(self, op: SyncOperation) -> OperationResult:
        self.submits.append(op)
        if self.fail_submit:
            raise TransportError("timeout")
        outcomes = []
        for it in op.items:
            title = getattr(getattr(it, "item", it), "title", "")
            status = self.statuses.get(title, ItemStatus.OK)
            outcomes.append(ItemOutcome(it, status))
            if status != ItemStatus.OK:
                continue
            r = _as_remote(it)
            coll = self.collection.setdefault(op.entity, [])
            if op.kind == OpKind.ADD:
                coll.append(r)
            elif op.kind == OpKind.REMOVE:
                self.collection[op.entity] = [x for x in coll if x.key != r.key]
            elif op.kind == OpKind.SEEN:
                r.plays, r.in_collection = 1, False
                self.watched.setdefault(op.entity, []).append(r)
            elif op.kind == OpKind.UNSEEN:
                self.watched[op.entity] = [x for x in self.watched.get(op.entity, []) if x.key != r.key]
        return OperationResult(ok=True, items=outcomes)

    def kinds(self) -> list[str]:
        return [op.kind.value for op in self.submits]

    def titles(self, kind: OpKind) -> list[str]:
        return [getattr(getattr(it, "item", it), "title", "") for op in self.submits if op.kind == kind for it in op.items]


class MemoryLibrary:
    """Minimal LocalLibrary; fail_corrections makes local mutations raise."""

    def __init__(self, name: str, items: list[LocalItem] | None = None, *, fail_corrections: bool = False):
        self.name = name
        self.items = {it.local_id: replace(it, source=name) for it in (items or [])}
        self.fail_corrections = fail_corrections
        self.corrections: list[tuple[str, bool]] = []
        self.backfills: list[tuple[str, dict[str, str]]] = []

    def list_all(self, entity: str) -> list[LocalItem]:
        return [replace(it) for it in self.items.values() if it.entity == entity]

    def list_watched(self, entity: str) -> list[LocalItem]:
        return [it for it in self.list_all(entity) if it.watched]

    def apply_watched_correction(self, item: LocalItem, watched: bool) -> None:
        if self.fail_corrections:
            raise RuntimeError("database locked")
        self.corrections.append((item.local_id, watched))
        self.items[item.local_id].watched_count = 1 if watched else 0

    def apply_identifier_backfill(self, item: LocalItem, ids: dict[str, str]) -> None:
        if self.fail_corrections:
            raise RuntimeError("database locked")
        self.backfills.append((item.local_id, dict(ids)))
        self.items[item.local_id].ids.update(ids)


@pytest.fixture()
def make_engine(tmp_path: Path, clock: FakeClock) -> Iterator[Callable[..., Any]]:
    from rt_platform.orchestrator.facade import Orchestrator

    made: list[Any] = []

    def _make(remote: FakeRemote, *sources: Any, keep_clean: bool = False, **sync: Any) -> Orchestrator:
        cfg = {
            "sync": {"keep_remote_clean": keep_clean, "entity_classes": ["movie", "episode"],
                     "incremental_wait_sec": 1, "workers": 2, **sync},
            "trakt": {"batch_size": 100},
            "cache": {"ttl_sec": 300},
        }
        eng = Orchestrator(cfg, remote, state_path=tmp_path / "state", clock=clock, retry_sleep=0.0)
        for src in sources:
            eng.register_source(src)
        made.append(eng)
        return eng

    yield _make
    for eng in made:
        eng.shutdown(wait=True)
