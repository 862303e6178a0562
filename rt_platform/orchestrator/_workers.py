# rt_platform/orchestrator/_workers.py
# worker pool + single FIFO lane for remote writes.
# Copyright (c) 2025-2026 ReelTrack
from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

from _logging import log


class Workers:
    """
    General pool for passes and registry bookkeeping, plus one single-thread
    lane through which every remote write is funnelled in submission order.
    """

    def __init__(self, size: int = 4, *, name: str = "rt"):
        self.pool = ThreadPoolExecutor(max_workers=max(1, int(size)), thread_name_prefix=f"{name}-worker")
        self.lane = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"{name}-write")
        self._closed = False

    @staticmethod
    def _wrap(fn: Callable[..., Any], on_done: Callable[[Future], None] | None, fut: Future) -> Future:
        if on_done:
            fut.add_done_callback(on_done)
        fut.add_done_callback(_log_failure)
        return fut

    def submit(self, fn: Callable[..., Any], *args: Any,
               on_done: Callable[[Future], None] | None = None, **kw: Any) -> Future:
        return self._wrap(fn, on_done, self.pool.submit(fn, *args, **kw))

    def write(self, fn: Callable[..., Any], *args: Any,
              on_done: Callable[[Future], None] | None = None, **kw: Any) -> Future:
        return self._wrap(fn, on_done, self.lane.submit(fn, *args, **kw))

    def shutdown(self, wait: bool = True) -> None:
        if self._closed:
            return
        self._closed = True
        self.lane.shutdown(wait=wait, cancel_futures=not wait)
        self.pool.shutdown(wait=wait, cancel_futures=not wait)


def _log_failure(fut: Future) -> None:
    if fut.cancelled():
        return
    exc = fut.exception()
    if exc is not None:
        log(f"background task failed: {exc!r}", level="ERROR", module="SYNC")
