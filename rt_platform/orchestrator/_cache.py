# rt_platform/orchestrator/_cache.py
# time-boxed caches for watchlist / recommendation data.
# Copyright (c) 2025-2026 ReelTrack
from __future__ import annotations

import threading
import time
from typing import Any, Callable, Generic, Optional, TypeVar

T = TypeVar("T")


class TimedCache(Generic[T]):
    """
    One cached value with an explicit lifetime.
    get(loader) reloads when the value is missing, stale or invalidated.
    """

    def __init__(self, ttl: float = 300.0, *, clock: Callable[[], float] = time.time):
        self.ttl = float(ttl)
        self.clock = clock
        self.value: Optional[T] = None
        self.fetched_at: Optional[float] = None
        self._lock = threading.Lock()

    def fresh(self) -> bool:
        with self._lock:
            return self._fresh_locked()

    def _fresh_locked(self) -> bool:
        if self.fetched_at is None:
            return False
        return (self.clock() - self.fetched_at) < self.ttl

    def get(self, loader: Callable[[], T]) -> T:
        with self._lock:
            if self._fresh_locked():
                return self.value  # type: ignore[return-value]
        value = loader()
        with self._lock:
            self.value = value
            self.fetched_at = self.clock()
        return value

    def invalidate(self) -> None:
        with self._lock:
            self.value = None
            self.fetched_at = None

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {"fetched_at": self.fetched_at, "ttl": self.ttl, "fresh": self._fresh_locked()}
