from __future__ import annotations

from fastapi import FastAPI

from .schedulingAPI import router as scheduling_router
from .syncAPI import router as sync_router, _is_sync_running

__all__ = ["scheduling_router", "sync_router", "_is_sync_running", "register"]


def register(app: FastAPI) -> None:
    app.include_router(sync_router)
    app.include_router(scheduling_router)
