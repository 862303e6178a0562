# rt_platform/orchestrator/_existing.py
# already-exists registry: items the remote already holds under another identity.
# Copyright (c) 2025-2026 ReelTrack
from __future__ import annotations

import threading
from typing import Any, Iterable

from _logging import log
from ._state_store import StateStore
from ._types import LocalItem, RegistryRecord


class AlreadyExistsRegistry:
    def __init__(self, store: StateStore, entity: str):
        self.store = store
        self.entity = entity
        self._lock = threading.RLock()
        self._records: set[RegistryRecord] = set()
        self._load()

    def _load(self) -> None:
        raw: Any = self.store.read(self.store.already_exists(self.entity), {})
        items = (raw.get("items") if isinstance(raw, dict) else None) or []
        self._records = {RegistryRecord.from_dict(d) for d in items if isinstance(d, dict)}

    def _save(self) -> None:
        data = {"items": [r.to_dict() for r in self._sorted()]}
        self.store.write(self.store.already_exists(self.entity), data)

    def _sorted(self) -> list[RegistryRecord]:
        return sorted(self._records, key=lambda r: (r.title, r.year, r.ext_id, r.season or 0, r.episode or 0))

    def is_known_existing(self, item: LocalItem) -> bool:
        rec = RegistryRecord.of(item)
        with self._lock:
            return rec in self._records

    def record_existing(self, items: Iterable[LocalItem]) -> int:
        added = 0
        with self._lock:
            for it in items:
                rec = RegistryRecord.of(it)
                if rec in self._records:
                    continue
                self._records.add(rec)
                added += 1
                log(f"{it.label()} already exists remotely, not resending", level="INFO", module="REGISTRY")
            if added:
                self._save()
        return added

    def prune_stale(self, local_items: Iterable[LocalItem], source_count: int) -> list[RegistryRecord]:
        """
        Drop records with no counterpart in the current local candidate set.
        No-op unless exactly one local source feeds the engine.
        """
        if int(source_count) != 1:
            return []
        present = {RegistryRecord.of(it) for it in local_items}
        with self._lock:
            stale = [r for r in self._sorted() if r not in present]
            if not stale:
                return []
            for r in stale:
                self._records.discard(r)
            self._save()
        for r in stale:
            log(f"removing {r.title} ({r.year}) from already-exists list", level="DEBUG", module="REGISTRY")
        return stale

    def records(self) -> list[RegistryRecord]:
        with self._lock:
            return self._sorted()

    def clear(self) -> int:
        with self._lock:
            n = len(self._records)
            self._records.clear()
            self._save()
            return n

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
