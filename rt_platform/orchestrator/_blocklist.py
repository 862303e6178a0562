# rt_platform/orchestrator/_blocklist.py
# folder / filename block list for local items.
# Copyright (c) 2025-2026 ReelTrack
from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from ._types import LocalItem


class BlockList:
    def __init__(self, folders: Iterable[str] = (), filenames: Iterable[str] = ()):
        self.folders = [str(f).strip().lower() for f in (folders or ()) if str(f or "").strip()]
        self.filenames = {str(f).strip() for f in (filenames or ()) if str(f or "").strip()}

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any]) -> "BlockList":
        s = (cfg.get("sync") or {}) if isinstance(cfg, Mapping) else {}
        return cls(s.get("blocked_folders") or (), s.get("blocked_filenames") or ())

    def __bool__(self) -> bool:
        return bool(self.folders or self.filenames)

    def is_blocked(self, item: LocalItem) -> bool:
        paths = [p for p in (item.paths or []) if p]
        if not paths:
            return False
        if any(p in self.filenames for p in paths):
            return True
        first = paths[0].lower()
        return any(f in first for f in self.folders)

    def apply(self, items: Iterable[LocalItem], emit=None) -> list[LocalItem]:
        out: list[LocalItem] = []
        dropped = 0
        for it in items:
            if self.is_blocked(it):
                dropped += 1
                continue
            out.append(it)
        if dropped and emit:
            emit("blocklist", dropped=dropped, kept=len(out))
        return out
