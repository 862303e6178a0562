# /providers/library/_mod_JSONLIB.py
# ReelTrack local library source backed by a JSON document
# Copyright (c) 2025-2026 ReelTrack
from __future__ import annotations

__VERSION__ = "1.0.0"
__all__ = ["JsonLibrary", "item_from_dict", "item_to_dict"]

import json
import threading
from dataclasses import asdict, replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional

from _logging import log
from rt_platform.id_map import merge_ids
from rt_platform.orchestrator._types import LocalItem

_FIELDS = ("entity", "title", "year", "ids", "show_ids", "season", "episode",
           "watched_count", "in_collection", "paths", "user_rating")


def item_from_dict(local_id: str, d: Mapping[str, Any], source: str) -> LocalItem:
    def _int(v: Any) -> Optional[int]:
        try:
            return int(v) if v is not None else None
        except (TypeError, ValueError):
            return None
    return LocalItem(
        local_id=str(local_id),
        entity="episode" if str(d.get("entity") or d.get("type") or "movie").lower().startswith("ep") else "movie",
        title=str(d.get("title") or ""),
        year=_int(d.get("year")),
        ids={k: str(v) for k, v in (d.get("ids") or {}).items() if v},
        show_ids={k: str(v) for k, v in (d.get("show_ids") or {}).items() if v},
        season=_int(d.get("season")),
        episode=_int(d.get("episode")),
        watched_count=int(d.get("watched_count") or 0),
        in_collection=bool(d.get("in_collection", True)),
        paths=[str(p) for p in (d.get("paths") or []) if p],
        user_rating=d.get("user_rating"),
        source=source,
    )


def item_to_dict(item: LocalItem) -> Dict[str, Any]:
    d = asdict(item)
    return {k: d[k] for k in _FIELDS}


class JsonLibrary:
    """
    Local library stored as {"items": {local_id: {...}}}.
    insert/update/delete notify subscribed listeners (on_inserted / on_updated / on_deleted).
    """

    def __init__(self, name: str, path: Path | str):
        self.name = str(name)
        self.path = Path(path)
        self._lock = threading.RLock()
        self._listeners: List[Any] = []
        self._items: Dict[str, Dict[str, Any]] = {}
        self._load()

    # --- storage --------------------------------------------------------------

    def _load(self) -> None:
        if not self.path.exists():
            self._items = {}
            return
        try:
            raw = json.loads(self.path.read_text("utf-8"))
        except Exception as e:
            log(f"{self.name}: library file unreadable: {e}", level="ERROR", module="LIBRARY")
            raise
        items = raw.get("items") if isinstance(raw, dict) else None
        self._items = {str(k): dict(v) for k, v in (items or {}).items() if isinstance(v, dict)}

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps({"items": self._items}, ensure_ascii=False, indent=2), "utf-8")
        tmp.replace(self.path)

    def get(self, local_id: str) -> Optional[LocalItem]:
        with self._lock:
            d = self._items.get(str(local_id))
            return item_from_dict(local_id, d, self.name) if d is not None else None

    # --- LocalLibrary -------------------------------------------------------------

    def list_all(self, entity: str) -> List[LocalItem]:
        with self._lock:
            items = [item_from_dict(k, v, self.name) for k, v in self._items.items()]
        return [it for it in items if it.entity == entity]

    def list_watched(self, entity: str) -> List[LocalItem]:
        return [it for it in self.list_all(entity) if it.watched]

    def apply_watched_correction(self, item: LocalItem, watched: bool) -> None:
        with self._lock:
            d = self._items.get(item.local_id)
            if d is None:
                raise KeyError(f"{self.name}: no item {item.local_id}")
            d["watched_count"] = max(1, int(d.get("watched_count") or 0)) if watched else 0
            self._save()
            updated = item_from_dict(item.local_id, d, self.name)
        self._fire("on_updated", updated, ["watched_count"])

    def apply_identifier_backfill(self, item: LocalItem, ids: Mapping[str, str]) -> None:
        with self._lock:
            d = self._items.get(item.local_id)
            if d is None:
                raise KeyError(f"{self.name}: no item {item.local_id}")
            field = "show_ids" if item.entity == "episode" else "ids"
            d[field] = merge_ids(d.get(field) or {}, ids)
            self._save()

    # --- mutations ----------------------------------------------------------------

    def insert(self, item: LocalItem) -> LocalItem:
        item = replace(item, source=self.name)
        with self._lock:
            self._items[item.local_id] = item_to_dict(item)
            self._save()
        self._fire("on_inserted", item)
        return item

    def update(self, local_id: str, **changes: Any) -> LocalItem:
        with self._lock:
            d = self._items.get(str(local_id))
            if d is None:
                raise KeyError(f"{self.name}: no item {local_id}")
            changed = [k for k, v in changes.items() if k in _FIELDS and d.get(k) != v]
            for k in changed:
                d[k] = changes[k]
            if changed:
                self._save()
            item = item_from_dict(local_id, d, self.name)
        if changed:
            self._fire("on_updated", item, changed)
        return item

    def delete(self, local_id: str) -> Optional[LocalItem]:
        with self._lock:
            d = self._items.pop(str(local_id), None)
            if d is None:
                return None
            self._save()
            item = item_from_dict(local_id, d, self.name)
        self._fire("on_deleted", item)
        return item

    # --- listeners ----------------------------------------------------------------

    def subscribe(self, listener: Any) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def unsubscribe(self, listener: Any) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _fire(self, event: str, item: LocalItem, *args: Iterable[str]) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for ls in listeners:
            fn = getattr(ls, event, None)
            if not callable(fn):
                continue
            try:
                fn(item, *args)
            except Exception as e:
                log(f"{self.name}: listener {event} failed: {e}", level="WARN", module="LIBRARY")
