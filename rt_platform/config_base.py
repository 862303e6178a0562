# rt_platform/config_base.py
from __future__ import annotations

import copy
import json
import os
from pathlib import Path
from typing import Any, Dict

# ------------------------------------------------------------
# Base dir resolution
# ------------------------------------------------------------
def CONFIG_BASE() -> Path:
    """
    Determine the base directory for config and state files.

    Priority:
      1) $CONFIG_BASE if set
      2) /config (when running in a container that mounts /config)
      3) Project root (one level up from this package)
    """
    env = os.getenv("CONFIG_BASE")
    if env:
        return Path(env)

    if Path("/app").exists():
        return Path("/config")

    return Path(__file__).resolve().parents[1]


def config_file() -> Path:
    return CONFIG_BASE() / "config.json"


def state_dir() -> Path:
    return CONFIG_BASE() / ".rt_state"


# Default config structure
DEFAULT_CFG: Dict[str, Any] = {
    # --- Remote tracking service ---------------------------------------------
    "trakt": {
        "base_url": "https://api.trakt.tv",             # API root
        "client_id": "",                                # From your Trakt app
        "client_secret": "",                            # From your Trakt app
        "access_token": "",                             # OAuth2 access token
        "timeout": 15,                                  # HTTP timeout (seconds)
        "max_retries": 3,                               # Retry budget for API calls (429/5xx backoff)
        "batch_size": 100,                              # Items per write request
    },

    # --- Reconciliation ------------------------------------------------------
    "sync": {
        "keep_remote_clean": False,                     # Remove remote collection items no longer present locally
        "entity_classes": ["movie", "episode"],         # Entity classes covered by a full pass
        "skip_cooldown_days": 7,                        # Skip registry is cleared after this many days
        "blocked_folders": [],                          # Case-insensitive path fragments never synced
        "blocked_filenames": [],                        # Exact file paths never synced
        "incremental_wait_sec": 10,                     # Max wait for a running full pass before recording results
        "workers": 4,                                   # Worker pool size for passes and incremental syncs
        "rating_scale": 5,                              # Local rating scale (5 stars or 10 points)
    },

    # --- Downstream caches ---------------------------------------------------
    "cache": {
        "ttl_sec": 300,                                 # Watchlist / recommendations cache lifetime
    },

    # --- Local library sources -----------------------------------------------
    "library": {
        "sources": [],                                  # [{"name": "movies", "path": "/config/library.json"}]
    },

    # --- Scheduling ----------------------------------------------------------
    "scheduling": {
        "enabled": False,
        "every_n_hours": 24,
        "jitter_seconds": 0,
    },

    # --- Runtime -------------------------------------------------------------
    "runtime": {
        "debug": False,
        "log_level": "info",                            # debug | info | warn | error | off
        "log_file": "",                                 # Optional JSON-lines log file
    },
}


def _read_json(p: Path) -> Dict[str, Any]:
    with p.open("r", encoding="utf-8") as f:
        data = json.load(f)
    return data if isinstance(data, dict) else {}


def _write_json_atomic(p: Path, data: Dict[str, Any]) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    import time, threading, secrets
    suffix = f".{time.time_ns()}.{os.getpid()}.{threading.get_ident()}.{secrets.token_hex(4)}.tmp"
    tmp = p.with_suffix(suffix)

    with tmp.open("w", encoding="utf-8", newline="\n") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
        f.write("\n")
    tmp.replace(p)


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _deep_merge(out[k], v)  # type: ignore[assignment]
        else:
            out[k] = v
    return out


def _normalize_sync(sync: Dict[str, Any]) -> Dict[str, Any]:
    s = dict(sync or {})
    ents = [str(e).strip().lower().rstrip("s") for e in (s.get("entity_classes") or []) if e]
    s["entity_classes"] = [e for e in ("movie", "episode") if e in ents] or ["movie", "episode"]
    try:
        s["skip_cooldown_days"] = max(0, int(s.get("skip_cooldown_days", 7)))
    except (TypeError, ValueError):
        s["skip_cooldown_days"] = 7
    try:
        s["workers"] = max(1, int(s.get("workers", 4)))
    except (TypeError, ValueError):
        s["workers"] = 4
    s["rating_scale"] = 10 if str(s.get("rating_scale")) == "10" else 5
    return s


# ------------------------------------------------------------
# Public API
# ------------------------------------------------------------
def load_config() -> Dict[str, Any]:
    """Read config.json merged over the defaults."""
    p = config_file()
    user_cfg: Dict[str, Any] = {}
    if p.exists():
        try:
            user_cfg = _read_json(p)
        except Exception:
            user_cfg = {}

    cfg = _deep_merge(DEFAULT_CFG, user_cfg)
    cfg["sync"] = _normalize_sync(cfg.get("sync") or {})
    return cfg


def save_config(cfg: Dict[str, Any]) -> None:
    """Write config.json."""
    data = dict(cfg or {})
    if isinstance(data.get("sync"), dict):
        data["sync"] = _normalize_sync(data["sync"])
    _write_json_atomic(config_file(), data)
