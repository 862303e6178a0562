# rt_platform/orchestrator/_events.py
# single-item sync driven by local library notifications.
# Copyright (c) 2025-2026 ReelTrack
from __future__ import annotations

import threading
from concurrent.futures import Future
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from _logging import log
from ._applier import ApplyReport, apply_operation
from ._planner import to_remote_rating
from ._types import LocalItem, OpKind, RatedItem, SyncOperation

if TYPE_CHECKING:  # pragma: no cover
    from .facade import Orchestrator

_WATCHED_FIELDS = {"watched_count", "watched", "watchedcount"}
_RATING_FIELDS = {"user_rating", "rating", "userrating"}


class IncrementalSync:
    """
    Reacts to insert/update/delete notifications for one item at a time.
    Every remote write goes through the engine's FIFO write lane; registry
    bookkeeping happens on the worker pool afterwards.
    """

    def __init__(self, engine: "Orchestrator"):
        self.engine = engine
        self._lock = threading.Lock()
        self._memo: dict[tuple[str, str], Any] = {}

    # listener aliases used by library sources
    def on_inserted(self, item: LocalItem) -> Future | None:
        return self.on_local_insert(item)

    def on_updated(self, item: LocalItem, changed_fields: Iterable[str] = ()) -> Future | None:
        return self.on_local_update(item, changed_fields)

    def on_deleted(self, item: LocalItem) -> Future | None:
        return self.on_local_delete(item)

    # --- memo -------------------------------------------------------------------

    def _remember(self, item: LocalItem, what: str, value: Any) -> bool:
        """Store value; False when it was already the last value pushed."""
        k = (item.key, what)
        with self._lock:
            if k in self._memo and self._memo[k] == value:
                return False
            self._memo[k] = value
            return True

    def _forget(self, item: LocalItem, what: str) -> None:
        with self._lock:
            self._memo.pop((item.key, what), None)

    def reset(self) -> None:
        """Drop the memo; a full pass re-reads both sides anyway."""
        with self._lock:
            self._memo.clear()

    def _ignored(self, item: LocalItem) -> bool:
        if item.entity not in self.engine.entities:
            return True
        if self.engine.is_blocked(item):
            log(f"{item.label()} is in a blocked folder/file, ignoring", level="DEBUG", module="EVENTS")
            return True
        return False

    # --- notifications ----------------------------------------------------------

    def on_local_insert(self, item: LocalItem) -> Future | None:
        if self._ignored(item) or not item.in_collection:
            return None
        if not self._remember(item, "collection", True):
            return None
        log(f"new local item {item.label()}, adding to remote collection", module="EVENTS")
        return self._push(item, OpKind.ADD, item, memo="collection", record=True)

    def on_local_update(self, item: LocalItem, changed_fields: Iterable[str] = ()) -> Future | None:
        if self._ignored(item):
            return None
        fields = {str(f).strip().lower() for f in (changed_fields or ())}
        last: Future | None = None

        if fields & _WATCHED_FIELDS:
            watched = item.watched
            if self.engine.consume_self_mutation(item, watched):
                self._remember(item, "watched", watched)
                log(f"{item.label()} changed by sync, not pushing", level="DEBUG", module="EVENTS")
            elif watched and item.ref == self.engine.now_playing:
                log(f"{item.label()} is playing, leaving watched state to the scrobbler", level="DEBUG", module="EVENTS")
            elif self._remember(item, "watched", watched):
                kind = OpKind.SEEN if watched else OpKind.UNSEEN
                log(f"{item.label()} marked {'watched' if watched else 'unwatched'} locally", module="EVENTS")
                last = self._push(item, kind, item, memo="watched", record=watched)

        if fields & _RATING_FIELDS:
            rating = to_remote_rating(item.user_rating, self.engine.rating_scale)
            if rating is not None and self._remember(item, "rating", rating):
                log(f"rating {item.label()} {rating}/10", module="EVENTS")
                last = self._push(item, OpKind.RATE, RatedItem(item, rating), memo="rating", record=False)

        return last

    def on_local_delete(self, item: LocalItem) -> Future | None:
        if self._ignored(item):
            return None
        self._forget(item, "collection")
        if not self.engine.keep_remote_clean or self.engine.source_count != 1:
            log(f"{item.label()} removed locally; remote clean-up not allowed", level="DEBUG", module="EVENTS")
            return None
        log(f"{item.label()} removed locally, removing from remote collection", module="EVENTS")
        return self._push(item, OpKind.REMOVE, item, memo=None, record=False)

    # --- plumbing -----------------------------------------------------------------

    def _push(self, item: LocalItem, kind: OpKind, payload: Any, *, memo: str | None, record: bool) -> Future:
        eng = self.engine
        op = SyncOperation(entity=item.entity, kind=kind, items=[payload])
        done: Future = Future()

        def _write() -> ApplyReport:
            return apply_operation(op, client=eng.client, chunk_size=1, emit=eng.emit, base_sleep=eng.retry_sleep)

        def _finish(report: ApplyReport) -> None:
            if report.failed and memo:
                self._forget(item, memo)
            if kind == OpKind.SEEN and report.ok:
                eng.watchlist_cache[item.entity].invalidate()
            done.set_result(report)

        def _after_write(wf: Future) -> None:
            exc = None if wf.cancelled() else wf.exception()
            if wf.cancelled() or exc is not None:
                if memo:
                    self._forget(item, memo)
                if wf.cancelled():
                    done.cancel()
                else:
                    done.set_exception(exc)
                return
            report: ApplyReport = wf.result()
            if not record:
                _finish(report)
                return

            def _on_recorded(rf: Future) -> None:
                rexc = None if rf.cancelled() else rf.exception()
                if rexc is not None:
                    log(f"recording result for {item.label()} failed: {rexc}", level="ERROR", module="EVENTS")
                _finish(report)

            eng.workers.submit(self._record, item.entity, report, on_done=_on_recorded)

        eng.workers.write(_write, on_done=_after_write)
        return done

    def _record(self, entity: str, report: ApplyReport) -> None:
        eng = self.engine
        if not (report.not_found or report.already_exists):
            return
        if not eng.registry_idle.wait(timeout=eng.incremental_wait_sec):
            log("full sync still writing registries, recording anyway", level="DEBUG", module="EVENTS")
        eng.skip[entity].record_skipped(report.not_found)
        eng.existing[entity].record_existing(report.already_exists)
