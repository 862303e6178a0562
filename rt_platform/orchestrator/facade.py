# rt_platform/orchestrator/facade.py
# sync engine facade: full reconciliation passes, sources, caches, registries.
# Copyright (c) 2025-2026 ReelTrack
from __future__ import annotations

import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from pathlib import Path
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

from _logging import log
from .. import config_base
from .. import strings as S
from ._types import (
    ENTITY_CLASSES, LocalItem, LocalLibrary, MatchResult, OpKind, RemoteClient,
    RemoteItem, SyncError, SyncOperation, SyncSummary,
)
from ._state_store import StateStore
from ._logging import Emitter
from ._unresolved import SkipRegistry
from ._existing import AlreadyExistsRegistry
from ._blocklist import BlockList
from ._planner import (
    CLEANUP_EXISTING_PENDING, CleanupGate, CollectionDiff, WatchedDiff,
    diff_collection, diff_watched, merge_remote, summarize,
)
from ._applier import ApplyReport, apply_operation
from ._workers import Workers
from ._cache import TimedCache
from ._events import IncrementalSync

__all__ = ["Orchestrator"]

_COUNT_KEYS = ("added", "seen", "removed", "corrected", "backfilled",
               "skipped", "existing", "failed", "local_failed")


class _Cancelled(Exception):
    pass


@dataclass
class Orchestrator:
    config: Mapping[str, Any]
    client: RemoteClient
    on_progress: Callable[[str], None] | None = None
    state_path: Path | None = None
    clock: Callable[[], float] = time.time
    retry_sleep: float = 0.5

    sources: dict[str, LocalLibrary] = field(init=False, default_factory=dict)
    skip: dict[str, SkipRegistry] = field(init=False, default_factory=dict)
    existing: dict[str, AlreadyExistsRegistry] = field(init=False, default_factory=dict)
    last_summary: SyncSummary | None = field(init=False, default=None)
    now_playing: str | None = field(init=False, default=None)

    def __post_init__(self) -> None:
        self.cfg: dict[str, Any] = dict(self.config or {})
        self.sync_cfg: dict[str, Any] = dict(self.cfg.get("sync") or {})
        self.trakt_cfg: dict[str, Any] = dict(self.cfg.get("trakt") or {})
        self.debug = bool((self.cfg.get("runtime") or {}).get("debug", False))

        self.emitter = Emitter(self.on_progress)
        self.emit = self.emitter.emit

        self.entities: tuple[str, ...] = tuple(
            e for e in (self.sync_cfg.get("entity_classes") or ENTITY_CLASSES) if e in ENTITY_CLASSES
        ) or ENTITY_CLASSES
        self.keep_remote_clean = bool(self.sync_cfg.get("keep_remote_clean", False))
        self.chunk_size = int(self.trakt_cfg.get("batch_size") or 100)
        self.incremental_wait_sec = float(self.sync_cfg.get("incremental_wait_sec", 10))
        self.rating_scale = int(self.sync_cfg.get("rating_scale") or 5)

        self.state_store = StateStore(Path(self.state_path) if self.state_path else config_base.state_dir())
        cooldown = float(self.sync_cfg.get("skip_cooldown_days", 7))
        for e in ENTITY_CLASSES:
            self.skip[e] = SkipRegistry(self.state_store, e, cooldown_days=cooldown, clock=self.clock)
            self.existing[e] = AlreadyExistsRegistry(self.state_store, e)
        self.blocklist = BlockList.from_config(self.cfg)

        ttl = float((self.cfg.get("cache") or {}).get("ttl_sec", 300))
        self.watchlist_cache: dict[str, TimedCache[list[RemoteItem]]] = {
            e: TimedCache(ttl, clock=self.clock) for e in ENTITY_CLASSES
        }
        self.recommendations_cache: dict[str, TimedCache[list[RemoteItem]]] = {
            e: TimedCache(ttl, clock=self.clock) for e in ENTITY_CLASSES
        }

        self._run_lock = threading.Lock()
        self._running = False
        self._cancel = threading.Event()
        self.registry_idle = threading.Event()
        self.registry_idle.set()
        self._self_lock = threading.Lock()
        self._self_mutations: set[tuple[str, bool]] = set()
        self._subscribers: list[Callable[[SyncSummary], None]] = []

        self.workers = Workers(int(self.sync_cfg.get("workers") or 4))
        self.events = IncrementalSync(self)

    # --- sources --------------------------------------------------------------

    @property
    def source_count(self) -> int:
        return len(self.sources)

    def register_source(self, library: LocalLibrary) -> None:
        self.sources[library.name] = library
        subscribe = getattr(library, "subscribe", None)
        if callable(subscribe):
            subscribe(self.events)
        self.state_store.update_state(sources=self.source_count)
        log(f"local source registered: {library.name} ({self.source_count} active)", module="SYNC")

    def unregister_source(self, name: str) -> bool:
        lib = self.sources.pop(name, None)
        if lib is None:
            return False
        unsubscribe = getattr(lib, "unsubscribe", None)
        if callable(unsubscribe):
            unsubscribe(self.events)
        self.state_store.update_state(sources=self.source_count)
        return True

    def source_for(self, item: LocalItem) -> LocalLibrary | None:
        lib = self.sources.get(item.source)
        if lib is None and len(self.sources) == 1:
            lib = next(iter(self.sources.values()))
        return lib

    # --- flags ----------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        with self._run_lock:
            return self._running

    def cancel(self) -> None:
        self._cancel.set()

    def set_now_playing(self, item: LocalItem | None) -> None:
        self.now_playing = item.ref if item is not None else None

    def subscribe(self, callback: Callable[[SyncSummary], None]) -> None:
        self._subscribers.append(callback)

    def consume_self_mutation(self, item: LocalItem, watched: bool) -> bool:
        token = (item.ref, bool(watched))
        with self._self_lock:
            if token in self._self_mutations:
                self._self_mutations.discard(token)
                return True
            return False

    def is_blocked(self, item: LocalItem) -> bool:
        return self.blocklist.is_blocked(item)

    # --- full pass ------------------------------------------------------------

    def start_full_sync(self, entities: Sequence[str] | None = None) -> Future:
        return self.workers.submit(self.run_full_sync, entities)

    def run_full_sync(self, entities: Sequence[str] | None = None) -> SyncSummary:
        with self._run_lock:
            if self._running:
                msg = S.get_string(S.SYNC_ALREADY_RUNNING)
                log(msg, level="WARN", module="SYNC")
                return SyncSummary(ok=False, message=msg)
            self._running = True
            self._cancel.clear()
        try:
            summary = self._run(entities)
        finally:
            self.registry_idle.set()
            with self._run_lock:
                self._running = False
        self.last_summary = summary
        self._notify(summary)
        return summary

    def _check_cancel(self, phase: str) -> None:
        if self._cancel.is_set():
            self.emit("run:cancelled", phase=phase)
            raise _Cancelled(phase)

    def _run(self, entities: Sequence[str] | None) -> SyncSummary:
        started = float(self.clock())
        ents = [e for e in (entities or self.entities) if e in ENTITY_CLASSES]
        counts = {k: 0 for k in _COUNT_KEYS}
        by_entity: dict[str, dict[str, int]] = {e: {k: 0 for k in _COUNT_KEYS} for e in ents}

        def bump(e: str, key: str, n: int = 1) -> None:
            counts[key] += n
            by_entity[e][key] += n

        self.emit("run:start", entities=ents, sources=self.source_count)
        log(S.get_string(S.SYNC_STARTED), module="SYNC")
        with self._self_lock:
            self._self_mutations.clear()
        self.events.reset()

        try:
            # 1) local snapshot
            local_all: dict[str, list[LocalItem]] = {}
            local_watched: dict[str, list[LocalItem]] = {}
            for e in ents:
                local_all[e], local_watched[e] = self._snapshot_local(e)
            self.emit("snapshot:done", local={e: len(v) for e, v in local_all.items()})
            self._check_cancel("snapshot")

            # 2) remote fetch; any failure aborts with nothing mutated
            remote: dict[str, list[RemoteItem]] = {}
            for e in ents:
                collection = self.client.fetch_collection(e)
                watched = self.client.fetch_watched(e)
                remote[e] = merge_remote(collection, watched)
                log(f"{e}: {len(collection)} in remote collection, {len(watched)} watched remotely", module="SYNC")
            self.emit("fetch:done", remote={e: len(v) for e, v in remote.items()})
            self._check_cancel("fetch")

            # 3) registry maintenance
            self.registry_idle.clear()
            now = float(self.clock())
            for e in ents:
                if self.skip[e].maybe_expire(now):
                    self.emit("registry:skip_expired", entity=e)
                pruned = self.existing[e].prune_stale(local_all[e], self.source_count)
                if pruned:
                    log(S.get_string(S.EXISTING_PRUNED, count=len(pruned)), module="REGISTRY")

            # 4) diff
            plans: dict[str, tuple[CollectionDiff, WatchedDiff]] = {}
            existing_total = sum(len(r) for r in self.existing.values())
            gate = CleanupGate(self.keep_remote_clean, self.source_count, existing_total)
            for e in ents:
                is_filtered = self._filter_for(e)
                cdiff = diff_collection(local_all[e], remote[e], entity=e, is_filtered=is_filtered,
                                        cleanup=gate, now_playing=self.now_playing)
                if cdiff.cleanup_blocked == CLEANUP_EXISTING_PENDING and cdiff.unmatched_remote:
                    log(S.get_string(S.CLEANUP_BLOCKED, count=existing_total), level="WARN", module="SYNC")
                    self.emit("cleanup:blocked", entity=e, existing=existing_total,
                              unmatched=cdiff.unmatched_remote)

                # corrections first, so the watched diff sees the corrected state
                self._apply_corrections(e, cdiff, bump)
                candidates = {it.ref: it for it in local_watched[e]}
                for it in cdiff.to_mark_local_watched:
                    candidates.setdefault(it.ref, it)
                wdiff = diff_watched(candidates.values(), cdiff.matches, cdiff.corrections(),
                                     is_filtered=is_filtered, now_playing=self.now_playing)
                plans[e] = (cdiff, wdiff)
                self.emit("plan:done", entity=e, **summarize(cdiff, wdiff))
            self._check_cancel("diff")

            # 5) pushes, then registry bookkeeping for what was committed
            for e in ents:
                cdiff, wdiff = plans[e]
                add_rep = self._push(e, OpKind.ADD, cdiff.to_add)
                seen_rep = self._push(e, OpKind.SEEN, wdiff.to_mark_seen)
                if seen_rep.ok:
                    self.watchlist_cache[e].invalidate()
                self.skip[e].record_skipped([*add_rep.not_found, *seen_rep.not_found])
                self.existing[e].record_existing([*add_rep.already_exists, *seen_rep.already_exists])
                bump(e, "added", len(add_rep.ok))
                bump(e, "seen", len(seen_rep.ok))
                bump(e, "skipped", len(add_rep.not_found) + len(seen_rep.not_found))
                bump(e, "existing", len(add_rep.already_exists) + len(seen_rep.already_exists))
                bump(e, "failed", len(add_rep.failed) + len(seen_rep.failed))
            self.registry_idle.set()
            self._check_cancel("push")

            # 6) clean-up; already-exists replies from step 5 close the gate as well
            existing_total = sum(len(r) for r in self.existing.values())
            gate = CleanupGate(self.keep_remote_clean, self.source_count, existing_total)
            for e in ents:
                cdiff, _ = plans[e]
                if not cdiff.to_remove:
                    continue
                if not gate.allowed:
                    log(S.get_string(S.CLEANUP_BLOCKED, count=existing_total), level="WARN", module="SYNC")
                    self.emit("cleanup:blocked", entity=e, existing=existing_total,
                              unmatched=len(cdiff.to_remove))
                    continue
                rem_rep = self._push(e, OpKind.REMOVE, cdiff.to_remove)
                bump(e, "removed", len(rem_rep.ok))
                bump(e, "failed", len(rem_rep.failed) + len(rem_rep.not_found))
        except _Cancelled as c:
            msg = S.get_string(S.SYNC_CANCELLED)
            log(f"{msg} after {c}", level="WARN", module="SYNC")
            return SyncSummary(ok=False, cancelled=True, message=msg, counts=counts, by_entity=by_entity,
                               started_at=started, finished_at=float(self.clock()))
        except SyncError as ex:
            msg = S.get_string(S.SYNC_FAILED, error=str(ex))
            log(msg, level="ERROR", module="SYNC")
            self.emit("run:failed", error=str(ex))
            return SyncSummary(ok=False, message=msg, counts=counts, by_entity=by_entity,
                               started_at=started, finished_at=float(self.clock()))

        if any(counts.values()):
            msg = S.get_string(S.SYNC_DONE, added=counts["added"], seen=counts["seen"],
                               removed=counts["removed"], corrected=counts["corrected"],
                               skipped=counts["skipped"], existing=counts["existing"],
                               failed=counts["failed"] + counts["local_failed"])
        else:
            msg = S.get_string(S.SYNC_NO_CHANGES)
        log(msg, level="SUCCESS", module="SYNC", extra={"counts": counts})
        finished = float(self.clock())
        self.state_store.update_state(
            sources=self.source_count,
            last_sync={"started_at": started, "finished_at": finished, "counts": counts},
        )
        self.emit("run:done", counts=counts, duration=round(finished - started, 3))
        return SyncSummary(ok=True, message=msg, counts=counts, by_entity=by_entity,
                           started_at=started, finished_at=finished)

    # --- pass helpers -----------------------------------------------------------

    def _snapshot_local(self, entity: str) -> tuple[list[LocalItem], list[LocalItem]]:
        all_items: list[LocalItem] = []
        watched: list[LocalItem] = []
        for name, lib in list(self.sources.items()):
            try:
                got = list(lib.list_all(entity) or [])
                got_w = list(lib.list_watched(entity) or [])
            except Exception as e:
                raise SyncError(f"local source {name} unavailable: {e}") from e
            for it in (*got, *got_w):
                if not it.source:
                    it.source = name
            all_items.extend(got)
            watched.extend(got_w)
        return self.blocklist.apply(all_items, self.emit), self.blocklist.apply(watched, self.emit)

    def _filter_for(self, entity: str) -> Callable[[LocalItem], bool]:
        skip = self.skip[entity]
        existing = self.existing[entity]

        def is_filtered(item: LocalItem) -> bool:
            return skip.should_skip(item) or existing.is_known_existing(item)
        return is_filtered

    def _apply_corrections(self, entity: str, cdiff: CollectionDiff, bump: Callable[..., None]) -> None:
        for m in cdiff.backfills:
            if self._backfill(m):
                bump(entity, "backfilled")
            else:
                bump(entity, "local_failed")
        for it in cdiff.to_mark_local_watched:
            bump(entity, "corrected" if self._correct(it, True) else "local_failed")
        for it in cdiff.to_mark_local_unwatched:
            bump(entity, "corrected" if self._correct(it, False) else "local_failed")

    def _backfill(self, m: MatchResult) -> bool:
        lib = self.source_for(m.local)
        if lib is None:
            return False
        try:
            lib.apply_identifier_backfill(m.local, dict(m.backfill))
        except Exception as e:
            log(f"could not store ids {m.backfill} for {m.local.label()}: {e}", level="WARN", module="SYNC")
            return False
        log(f"adopted {m.backfill} for {m.local.label()}", module="MATCH")
        return True

    def _correct(self, item: LocalItem, watched: bool) -> bool:
        lib = self.source_for(item)
        if lib is None:
            return False
        token = (item.ref, bool(watched))
        with self._self_lock:
            self._self_mutations.add(token)
        try:
            lib.apply_watched_correction(item, watched)
        except Exception as e:
            with self._self_lock:
                self._self_mutations.discard(token)
            log(f"could not mark {item.label()} as {'watched' if watched else 'unwatched'}: {e}",
                level="WARN", module="SYNC")
            return False
        log(f"marked {item.label()} as {'watched' if watched else 'unwatched'} locally", module="SYNC")
        return True

    def _push(self, entity: str, kind: OpKind, items: Iterable[Any]) -> ApplyReport:
        items = list(items)
        if not items:
            return ApplyReport()
        for it in items:
            log(f"sending {kind.value}: {it.label()}", module="SYNC")
        op = SyncOperation(entity=entity, kind=kind, items=items)
        fut = self.workers.write(apply_operation, op, client=self.client, chunk_size=self.chunk_size,
                                 emit=self.emit, base_sleep=self.retry_sleep)
        return fut.result()

    def _notify(self, summary: SyncSummary) -> None:
        for cb in list(self._subscribers):
            try:
                cb(summary)
            except Exception as e:
                log(f"subscriber failed: {e}", level="WARN", module="SYNC")

    # --- downstream data ------------------------------------------------------

    def watchlist(self, entity: str = "movie") -> list[RemoteItem]:
        return self.watchlist_cache[entity].get(lambda: list(self.client.fetch_watchlist(entity)))

    def recommendations(self, entity: str = "movie") -> list[RemoteItem]:
        return self.recommendations_cache[entity].get(lambda: list(self.client.fetch_recommendations(entity)))

    # --- registries / status ------------------------------------------------------

    def registries(self) -> dict[str, Any]:
        return {
            "skipped": {
                e: {"last_skip_sync": int(r.last_skip_sync), "items": [x.to_dict() for x in r.records()]}
                for e, r in self.skip.items()
            },
            "already_exists": {e: [x.to_dict() for x in r.records()] for e, r in self.existing.items()},
        }

    def clear_registry(self, name: str, entity: str) -> int:
        table: Mapping[str, Any] = {"skipped": self.skip, "already_exists": self.existing}.get(name) or {}
        reg = table.get(entity)
        if reg is None:
            raise KeyError(f"{name}/{entity}")
        n = reg.clear()
        log(f"cleared {n} record(s) from {name}/{entity}", module="REGISTRY")
        return n

    def status(self) -> dict[str, Any]:
        return {
            "running": self.is_running,
            "sources": self.source_count,
            "entities": list(self.entities),
            "keep_remote_clean": self.keep_remote_clean,
            "registries": {
                "skipped": {e: len(r) for e, r in self.skip.items()},
                "already_exists": {e: len(r) for e, r in self.existing.items()},
            },
            "last_summary": self.last_summary.as_dict() if self.last_summary else None,
        }

    def shutdown(self, wait: bool = True) -> None:
        self.cancel()
        self.workers.shutdown(wait=wait)
