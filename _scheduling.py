# _scheduling.py
# ReelTrack - periodic full-sync scheduler.
# Copyright (c) 2025-2026 ReelTrack
from __future__ import annotations

import random
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from _logging import log

DEFAULT_SCHEDULING: Dict[str, Any] = {
    "enabled": False,
    "every_n_hours": 24,
    "jitter_seconds": 0,
}

_NEVER = timedelta(days=365 * 100)
_MAX_NAP = 30.0
_BUSY_RETRY = timedelta(minutes=1)


def merge_defaults(s: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(DEFAULT_SCHEDULING)
    if isinstance(s, dict):
        out.update({k: v for k, v in s.items() if v is not None})
    return out


def _int(v: Any, default: int) -> int:
    try:
        return int(v)
    except (TypeError, ValueError):
        return default


def compute_next_run(now: datetime, sch: Dict[str, Any]) -> datetime:
    """Minute-aligned now + every_n_hours, plus up to jitter_seconds; far future when disabled."""
    if not sch.get("enabled"):
        return now + _NEVER
    hours = max(1, _int(sch.get("every_n_hours") or 24, 24))
    due = now.replace(second=0, microsecond=0) + timedelta(hours=hours)
    jitter = max(0, _int(sch.get("jitter_seconds"), 0))
    if jitter:
        due += timedelta(seconds=random.randint(0, jitter))
    return due


def _iso(dt: Optional[datetime]) -> str:
    if dt is None:
        return ""
    try:
        return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    except (OverflowError, OSError, ValueError):
        return ""


class SyncScheduler:
    """
    Background thread that fires run_sync_fn on the configured interval.
    A tick that lands while a pass is already running is retried a minute later.
    refresh() re-reads the config and replans immediately.
    """

    def __init__(
        self,
        load_config: Callable[[], Dict[str, Any]],
        run_sync_fn: Callable[[], bool],
        is_sync_running_fn: Optional[Callable[[], bool]] = None,
        *,
        now_fn: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.load_config = load_config
        self.run_sync_fn = run_sync_fn
        self.is_sync_running_fn = is_sync_running_fn or (lambda: False)
        self.now_fn = now_fn

        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._wake = threading.Event()
        self._lock = threading.Lock()
        self._next: Optional[datetime] = None
        self._last_run: Optional[datetime] = None
        self._last_ok: Optional[bool] = None
        self._last_error = ""
        self._skipped_busy = 0

    def _cfg(self) -> Dict[str, Any]:
        return merge_defaults((self.load_config() or {}).get("scheduling") or {})

    # --- control ----------------------------------------------------------------

    @property
    def alive(self) -> bool:
        return bool(self._thread and self._thread.is_alive())

    def start(self) -> None:
        if self.alive:
            return
        self._stop.clear()
        self._wake.clear()
        self._thread = threading.Thread(target=self._loop, name="SyncScheduler", daemon=True)
        self._thread.start()
        log("scheduler started", level="DEBUG", module="SCHED")

    def stop(self) -> None:
        self._stop.set()
        self._wake.set()
        t = self._thread
        if t and t.is_alive():
            t.join(timeout=3.0)

    def refresh(self) -> None:
        self._wake.set()
        if not self.alive:
            self.start()

    def trigger_once(self) -> bool:
        """Run one pass now unless one is already in flight. Returns the pass outcome."""
        if self.is_sync_running_fn():
            with self._lock:
                self._skipped_busy += 1
            log("sync already running, skipping scheduled run", level="INFO", module="SCHED")
            return False
        ok, err = False, ""
        try:
            ok = bool(self.run_sync_fn())
        except Exception as e:
            err = str(e)
            log(f"scheduled sync failed: {e}", level="ERROR", module="SCHED")
        with self._lock:
            self._last_run = self.now_fn()
            self._last_ok = ok
            self._last_error = err
        return ok

    def status(self) -> Dict[str, Any]:
        with self._lock:
            nxt, last = self._next, self._last_run
            st: Dict[str, Any] = {
                "running": self.alive,
                "last_run_ok": self._last_ok,
                "last_run_iso": _iso(last),
                "next_run_iso": _iso(nxt) if nxt is not None and nxt - self.now_fn() < _NEVER / 2 else "",
                "skipped_busy": self._skipped_busy,
                "last_error": self._last_error,
            }
        st["config"] = self._cfg()
        return st

    # --- loop -------------------------------------------------------------------

    def _plan(self, sch: Dict[str, Any]) -> datetime:
        nxt = compute_next_run(self.now_fn(), sch)
        with self._lock:
            self._next = nxt
        if sch.get("enabled"):
            log(f"next sync at {nxt:%Y-%m-%d %H:%M}", level="DEBUG", module="SCHED")
        return nxt

    def _nap(self, seconds: float) -> bool:
        """Sleep up to seconds; True when woken by refresh()/stop()."""
        woke = self._wake.wait(timeout=max(0.05, seconds))
        self._wake.clear()
        return woke

    def _loop(self) -> None:
        sch = self._cfg()
        nxt = self._plan(sch)
        while not self._stop.is_set():
            if self.now_fn() >= nxt and sch.get("enabled"):
                if self.is_sync_running_fn():
                    self.trigger_once()
                    nxt = self.now_fn() + _BUSY_RETRY
                    with self._lock:
                        self._next = nxt
                else:
                    self.trigger_once()
                    sch = self._cfg()
                    nxt = self._plan(sch)
                continue
            remaining = (nxt - self.now_fn()).total_seconds()
            if self._nap(min(_MAX_NAP, remaining)):
                sch = self._cfg()
                nxt = self._plan(sch)
