# rt_platform/orchestrator/_logging.py
# progress events for the sync engine, serialized as JSON lines.
# Copyright (c) 2025-2026 ReelTrack
from __future__ import annotations
import json
from typing import Any, Callable

from _logging import log


class Emitter:
    def __init__(self, cb: Callable[[str], None] | None):
        self.cb = cb

    def emit(self, event: str, **data: Any) -> None:
        if not self.cb:
            return
        try:
            payload = {"event": event}
            payload.update(data)
            self.cb(json.dumps(payload, separators=(",", ":"), default=str))
        except Exception as e:
            log(f"progress callback failed on {event}: {e}", level="DEBUG", module="SYNC")

    def __call__(self, event: str, **data: Any) -> None:
        self.emit(event, **data)

    def info(self, line: str) -> None:
        if not self.cb:
            return
        try:
            self.cb(line)
        except Exception as e:
            log(f"progress callback failed: {e}", level="DEBUG", module="SYNC")

    def dbg(self, msg: str, **fields: Any) -> None:
        if fields:
            self.emit("debug", msg=msg, **fields)
        else:
            self.info(f"[DEBUG] {msg}")
