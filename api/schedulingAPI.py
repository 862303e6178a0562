# /api/schedulingAPI.py
# ReelTrack - Scheduling API
# Copyright (c) 2025-2026 ReelTrack
from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException

router = APIRouter(prefix="/api/scheduling", tags=["scheduling"])


def _scheduler() -> Any:
    import sys, importlib
    m = sys.modules.get("reeltrack") or importlib.import_module("reeltrack")
    sch = getattr(m, "SCHEDULER", None)
    if sch is None:
        raise HTTPException(status_code=503, detail="scheduler not configured")
    return sch


@router.get("/status")
def scheduling_status() -> dict[str, Any]:
    return _scheduler().status()


@router.post("/replan_now")
def replan_now() -> dict[str, Any]:
    sch = _scheduler()
    sch.refresh()
    return {"ok": True, **sch.status()}
