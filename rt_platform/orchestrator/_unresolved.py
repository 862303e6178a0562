# rt_platform/orchestrator/_unresolved.py
# skip registry: items the remote reported as not found / invalid.
# Copyright (c) 2025-2026 ReelTrack
from __future__ import annotations

import threading
import time
from typing import Any, Callable, Iterable

from _logging import log
from .. import strings as S
from ._state_store import StateStore
from ._types import LocalItem, RegistryRecord

DEFAULT_COOLDOWN_DAYS = 7


class SkipRegistry:
    """
    Items that failed remote matching. The whole list is dropped once it is
    older than the cooldown; entries do not age individually.
    """

    def __init__(self, store: StateStore, entity: str, *,
                 cooldown_days: float = DEFAULT_COOLDOWN_DAYS,
                 clock: Callable[[], float] = time.time):
        self.store = store
        self.entity = entity
        self.cooldown_sec = float(cooldown_days) * 86400.0
        self.clock = clock
        self._lock = threading.RLock()
        self._records: set[RegistryRecord] = set()
        self._last_skip_sync: float = 0.0
        self._load()

    # --- persistence ----------------------------------------------------------

    def _load(self) -> None:
        raw: Any = self.store.read(self.store.skipped(self.entity), {})
        if not isinstance(raw, dict):
            raw = {}
        items = raw.get("items") or []
        self._records = {RegistryRecord.from_dict(d) for d in items if isinstance(d, dict)}
        try:
            self._last_skip_sync = float(raw.get("last_skip_sync") or 0.0)
        except (TypeError, ValueError):
            self._last_skip_sync = 0.0
        if not self._last_skip_sync:
            self._last_skip_sync = float(self.clock())

    def _save(self) -> None:
        data = {
            "last_skip_sync": int(self._last_skip_sync),
            "items": [r.to_dict() for r in sorted(self._records, key=lambda r: (r.title, r.year, r.ext_id))],
        }
        self.store.write(self.store.skipped(self.entity), data)

    # --- public ---------------------------------------------------------------

    @property
    def last_skip_sync(self) -> float:
        with self._lock:
            return self._last_skip_sync

    def should_skip(self, item: LocalItem) -> bool:
        rec = RegistryRecord.of(item)
        with self._lock:
            return rec in self._records

    def record_skipped(self, items: Iterable[LocalItem]) -> int:
        added = 0
        with self._lock:
            for it in items:
                rec = RegistryRecord.of(it)
                if rec in self._records:
                    continue
                self._records.add(rec)
                added += 1
                log(f"skipping {it.label()} until the skip list expires", level="DEBUG", module="REGISTRY")
            if added:
                self._save()
        return added

    def maybe_expire(self, now: float | None = None) -> bool:
        """Clear everything once the list is older than the cooldown. Returns True when it cleared."""
        now = float(self.clock() if now is None else now)
        with self._lock:
            if now - self._last_skip_sync <= self.cooldown_sec:
                return False
            count = len(self._records)
            self._records.clear()
            self._last_skip_sync = now
            self._save()
        if count:
            log(f"{self.entity}: " + S.get_string(S.SKIP_EXPIRED, days=int(self.cooldown_sec // 86400), count=count),
                level="INFO", module="REGISTRY")
        return True

    def records(self) -> list[RegistryRecord]:
        with self._lock:
            return sorted(self._records, key=lambda r: (r.title, r.year, r.ext_id))

    def clear(self) -> int:
        with self._lock:
            n = len(self._records)
            self._records.clear()
            self._last_skip_sync = float(self.clock())
            self._save()
            return n

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
