# rt_platform/orchestrator/_state_store.py
# durable JSON state for registries and pass bookkeeping.
# Copyright (c) 2025-2026 ReelTrack
from __future__ import annotations

import json
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from _logging import log


@dataclass
class StateStore:
    base_path: Path
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.base_path = Path(self.base_path)

    @property
    def state(self) -> Path:
        return self.base_path / "state.json"

    def skipped(self, entity: str) -> Path:
        return self.base_path / f"skipped.{entity}.json"

    def already_exists(self, entity: str) -> Path:
        return self.base_path / f"already_exists.{entity}.json"

    def _read(self, p: Path, default: Any) -> Any:
        if not p.exists():
            return default
        try:
            return json.loads(p.read_text("utf-8"))
        except Exception as e:
            log(f"state file {p.name} unreadable, using defaults: {e}", level="WARN", module="REGISTRY")
            return default

    def _write_atomic(self, p: Path, data: Any) -> bool:
        try:
            p.parent.mkdir(parents=True, exist_ok=True)
            tmp = p.with_suffix(f"{p.suffix}.{os.getpid()}.{threading.get_ident()}.tmp")
            tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), "utf-8")
            tmp.replace(p)
            return True
        except Exception as e:
            log(f"failed to persist {p.name}: {e}", level="ERROR", module="REGISTRY")
            return False

    def read(self, p: Path, default: Any) -> Any:
        return self._read(p, default)

    def write(self, p: Path, data: Any) -> bool:
        return self._write_atomic(p, data)

    # --- state.json -----------------------------------------------------------

    def load_state(self) -> dict[str, Any]:
        st = self._read(self.state, {})
        return st if isinstance(st, dict) else {}

    def update_state(self, **fields: Any) -> dict[str, Any]:
        with self._lock:
            st = self.load_state()
            st.update(fields)
            self._write_atomic(self.state, st)
            return st
