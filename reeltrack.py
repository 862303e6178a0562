# /reeltrack.py
# ReelTrack - local library / Trakt reconciliation engine
# Copyright (c) 2025-2026 ReelTrack
from __future__ import annotations
from typing import Any, Dict, Optional

import sys
sys.modules.setdefault("reeltrack", sys.modules[__name__])
import os
import threading
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI

from _logging import log
from _scheduling import SyncScheduler
from api import register as register_api
from rt_platform import strings
from rt_platform.config_base import CONFIG_BASE, load_config
from rt_platform.orchestrator import Orchestrator
from providers.library._mod_JSONLIB import JsonLibrary
from providers.sync._mod_TRAKT import TraktClient

ENGINE: Optional[Orchestrator] = None
SCHEDULER: Optional[SyncScheduler] = None
_BOOT_LOCK = threading.Lock()


def _progress(line: str) -> None:
    log(line, level="DEBUG", module="PROGRESS")


def bootstrap(cfg: Optional[Dict[str, Any]] = None) -> Orchestrator:
    """Build the engine, its local sources and the scheduler from config."""
    global ENGINE, SCHEDULER
    with _BOOT_LOCK:
        if ENGINE is not None:
            return ENGINE
        cfg = cfg or load_config()
        log.configure(cfg)
        strings.load_overrides(CONFIG_BASE() / "strings.json")

        engine = Orchestrator(cfg, TraktClient(cfg), on_progress=_progress)
        for src in ((cfg.get("library") or {}).get("sources") or []):
            name, path = str(src.get("name") or "").strip(), src.get("path")
            if not name or not path:
                log(f"ignoring library source without name/path: {src}", level="WARN", module="LIBRARY")
                continue
            engine.register_source(JsonLibrary(name, Path(path)))

        def _run() -> bool:
            return engine.run_full_sync().ok

        SCHEDULER = SyncScheduler(load_config, _run, lambda: engine.is_running)
        if (cfg.get("scheduling") or {}).get("enabled"):
            SCHEDULER.start()
        ENGINE = engine
        return engine


def shutdown() -> None:
    global ENGINE, SCHEDULER
    if SCHEDULER is not None:
        SCHEDULER.stop()
    if ENGINE is not None:
        ENGINE.shutdown(wait=False)
    ENGINE, SCHEDULER = None, None


@asynccontextmanager
async def _lifespan(app: FastAPI):
    if os.getenv("RT_NO_BOOTSTRAP") is None:
        bootstrap()
    try:
        yield
    finally:
        shutdown()


def build_app() -> FastAPI:
    application = FastAPI(title="ReelTrack", lifespan=_lifespan)
    register_api(application)
    return application


app = build_app()


# Entry point
def main(host: str = "0.0.0.0", port: int = 8788) -> None:
    cfg = load_config()
    debug = bool((cfg.get("runtime") or {}).get("debug"))
    print("\nReelTrack engine running:")
    print(f"  Local:   http://127.0.0.1:{port}")
    print(f"  Bind:    {host}:{port}")
    print(f"  Config:  {CONFIG_BASE() / 'config.json'} (JSON)\n")
    uvicorn.run(app, host=host, port=port, log_level=("debug" if debug else "warning"))


if __name__ == "__main__":
    main()
