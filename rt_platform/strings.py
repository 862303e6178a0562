# rt_platform/strings.py
# ReelTrack - message catalogue (key -> default text) with JSON overrides.
# Copyright (c) 2025-2026 ReelTrack
from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from _logging import log

# ============================================================================
# String keys
# ============================================================================

SYNC_STARTED = "sync.started"
SYNC_DONE = "sync.done"
SYNC_NO_CHANGES = "sync.no_changes"
SYNC_FAILED = "sync.failed"
SYNC_CANCELLED = "sync.cancelled"
SYNC_ALREADY_RUNNING = "sync.already_running"
CLEANUP_BLOCKED = "cleanup.blocked_existing"
SKIP_EXPIRED = "registry.skip_expired"
EXISTING_PRUNED = "registry.existing_pruned"

DEFAULTS: Dict[str, str] = {
    SYNC_STARTED: "Starting library sync",
    SYNC_DONE: ("Sync complete: {added} added, {seen} marked seen, {removed} removed, "
                "{corrected} corrected locally, {skipped} skipped, {existing} already existing, {failed} failed"),
    SYNC_NO_CHANGES: "Sync complete: no changes",
    SYNC_FAILED: "Sync failed: {error}",
    SYNC_CANCELLED: "Sync cancelled",
    SYNC_ALREADY_RUNNING: "Sync already in progress",
    CLEANUP_BLOCKED: ("DISABLING CLEAN LIBRARY: {count} item(s) are recorded as already existing remotely; "
                      "fix their identifiers locally or clear the already-exists registry to re-enable clean-up"),
    SKIP_EXPIRED: "Skip list older than {days} day(s), retrying {count} skipped item(s)",
    EXISTING_PRUNED: "Removed {count} stale already-exists record(s)",
}

_lock = threading.Lock()
_overrides: Dict[str, str] = {}


def load_overrides(path: Path | str | None) -> int:
    """Replace the override table from a JSON object {key: text}. Unknown keys are ignored."""
    data: Mapping[str, Any] = {}
    if path:
        p = Path(path)
        if p.exists():
            try:
                raw = json.loads(p.read_text("utf-8"))
                data = raw if isinstance(raw, Mapping) else {}
            except Exception as e:
                log(f"strings override {p} unreadable: {e}", level="WARN", module="STRINGS")
    table = {str(k): str(v) for k, v in data.items() if k in DEFAULTS and v is not None}
    with _lock:
        _overrides.clear()
        _overrides.update(table)
    return len(table)


def get_string(key: str, default: Optional[str] = None, **fmt: Any) -> str:
    with _lock:
        text = _overrides.get(key)
    if text is None:
        text = DEFAULTS.get(key, default if default is not None else key)
    if fmt:
        try:
            return text.format(**fmt)
        except (KeyError, IndexError, ValueError):
            return DEFAULTS.get(key, text).format(**fmt)
    return text


__all__ = ["DEFAULTS", "load_overrides", "get_string"]
