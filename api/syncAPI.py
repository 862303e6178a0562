# /api/syncAPI.py
# ReelTrack - sync engine API: status, trigger, cancel, registries
# Copyright (c) 2025-2026 ReelTrack
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from _logging import log
from rt_platform.orchestrator import SyncError

__all__ = ["router", "RunRequest", "_is_sync_running"]

router = APIRouter(prefix="/api/sync", tags=["synchronization"])

_REGISTRIES = ("skipped", "already_exists")


class RunRequest(BaseModel):
    wait: bool = False
    entities: Optional[list[str]] = None


def _engine() -> Any:
    import sys, importlib
    m = sys.modules.get("reeltrack") or importlib.import_module("reeltrack")
    eng = getattr(m, "ENGINE", None)
    if eng is None:
        raise HTTPException(status_code=503, detail="sync engine not configured")
    return eng


def _is_sync_running() -> bool:
    try:
        return bool(_engine().is_running)
    except HTTPException:
        return False


@router.get("/status")
def sync_status() -> dict[str, Any]:
    return _engine().status()


@router.post("/run")
def sync_run(req: Optional[RunRequest] = None) -> dict[str, Any]:
    req = req or RunRequest()
    eng = _engine()
    if eng.is_running:
        return {"ok": False, "started": False, "running": True, "message": "sync already running"}
    if req.wait:
        summary = eng.run_full_sync(req.entities)
        return {"started": True, **summary.as_dict()}
    eng.start_full_sync(req.entities)
    log("full sync started from API", module="SYNC")
    return {"ok": True, "started": True, "running": True}


@router.post("/cancel")
def sync_cancel() -> dict[str, Any]:
    eng = _engine()
    running = eng.is_running
    if running:
        eng.cancel()
    return {"ok": True, "cancelled": running}


@router.get("/registries")
def sync_registries() -> dict[str, Any]:
    return _engine().registries()


@router.delete("/registries/{name}/{entity}")
def sync_clear_registry(name: str, entity: str) -> dict[str, Any]:
    if name not in _REGISTRIES:
        raise HTTPException(status_code=404, detail=f"unknown registry: {name}")
    try:
        n = _engine().clear_registry(name, entity)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"unknown entity: {entity}")
    return {"ok": True, "cleared": n}


def _downstream(kind: str, entity: str) -> dict[str, Any]:
    eng = _engine()
    if entity not in eng.entities:
        raise HTTPException(status_code=404, detail=f"unknown entity: {entity}")
    try:
        items = eng.watchlist(entity) if kind == "watchlist" else eng.recommendations(entity)
    except SyncError as e:
        log(f"{kind} fetch failed: {e}", level="WARN", module="SYNC")
        raise HTTPException(status_code=502, detail=str(e))
    return {"entity": entity, "count": len(items), "items": [it.minimal() for it in items]}


@router.get("/watchlist/{entity}")
def sync_watchlist(entity: str) -> dict[str, Any]:
    return _downstream("watchlist", entity)


@router.get("/recommendations/{entity}")
def sync_recommendations(entity: str) -> dict[str, Any]:
    return _downstream("recommendations", entity)
