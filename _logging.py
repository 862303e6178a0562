# _logging.py
# ReelTrack - module-tagged console logger with an optional JSON-lines sink.
# Copyright (c) 2025-2026 ReelTrack
from __future__ import annotations
import sys, datetime, json, os, threading, time
from typing import Any, Optional, TextIO, Mapping, Dict

RESET = "\033[0m"
DIM = "\033[90m"
RED = "\033[91m"
GREEN = "\033[92m"
YELLOW = "\033[33m"
BLUE = "\033[94m"
CYAN = "\033[96m"
MAGENTA = "\033[95m"

LEVELS = {"silent": 60, "off": 60, "error": 40, "warn": 30, "info": 20, "debug": 10}

LEVEL_COLORS: Dict[str, str] = {
    "DEBUG": YELLOW,
    "INFO": BLUE,
    "WARN": YELLOW,
    "ERROR": RED,
    "SUCCESS": GREEN,
}

# module tag -> color; unknown tags print uncolored
MODULE_COLORS: Dict[str, str] = {
    "SYNC": CYAN,
    "EVENTS": CYAN,
    "MATCH": MAGENTA,
    "REGISTRY": MAGENTA,
    "TRAKT": GREEN,
    "LIBRARY": BLUE,
    "SCHED": DIM,
}

# ── debug gate: RT_DEBUG env, else runtime.debug in config.json (re-read every 5s) ──
_CFG_CACHE: Dict[str, Any] | None = None
_CFG_TS: float = 0.0

def _truthy(v: Any) -> bool:
    return str(v or "").strip().lower() in ("1", "true", "yes", "y", "on")

def _debug_enabled() -> bool:
    global _CFG_CACHE, _CFG_TS
    if _truthy(os.getenv("RT_DEBUG")):
        return True
    now = time.time()
    if _CFG_CACHE is None or (now - _CFG_TS) > 5.0:
        try:
            from rt_platform.config_base import config_file
            with open(config_file(), "r", encoding="utf-8") as f:
                _CFG_CACHE = json.load(f)
        except (OSError, ValueError):
            _CFG_CACHE = {}
        _CFG_TS = now
    return bool((_CFG_CACHE.get("runtime") or {}).get("debug"))

def _color_default(stream: TextIO) -> bool:
    if os.getenv("NO_COLOR"):
        return False
    isatty = getattr(stream, "isatty", None)
    try:
        return bool(isatty and isatty())
    except ValueError:
        return False


class Logger:
    """
    log("text", level="WARN", module="SYNC", extra={...}) prints
    "[ts] [SYNC] WARN text"; bound loggers share the stream, sink and lock.
    """

    def __init__(
        self,
        stream: TextIO = sys.stdout,
        level: str = "info",
        use_color: Optional[bool] = None,
        show_time: bool = True,
        time_fmt: str = "%Y-%m-%d %H:%M:%S",
        *,
        _context: Optional[Dict[str, Any]] = None,
        _json_stream: Optional[TextIO] = None,
        _lock: Optional[threading.Lock] = None,
    ):
        self.stream = stream
        self.level_no = LEVELS.get(str(level).lower(), 20)
        self.use_color = _color_default(stream) if use_color is None else bool(use_color)
        self.show_time = show_time
        self.time_fmt = time_fmt
        self._context: Dict[str, Any] = dict(_context or {})
        self._json_stream = _json_stream
        self._lock = _lock or threading.Lock()

    # Configuration
    def set_level(self, level: str) -> None:
        self.level_no = LEVELS.get(str(level).lower(), self.level_no)

    def enable_color(self, on: bool = True) -> None:
        self.use_color = on

    def enable_json(self, file_path: str) -> None:
        with self._lock:
            if self._json_stream:
                self._json_stream.close()
            self._json_stream = open(file_path, "a", encoding="utf-8")

    def configure(self, cfg: Mapping[str, Any]) -> None:
        """Apply runtime.log_level / runtime.log_file; RT_LOG_LEVEL wins over config."""
        rt = (cfg.get("runtime") or {}) if isinstance(cfg, Mapping) else {}
        level = os.getenv("RT_LOG_LEVEL") or rt.get("log_level")
        if level:
            self.set_level(str(level))
        path = str(rt.get("log_file") or "").strip()
        if path:
            self.enable_json(path)

    @property
    def level_name(self) -> str:
        for k, v in LEVELS.items():
            if v == self.level_no:
                return k
        return "info"

    # Context
    def bind(self, **ctx: Any) -> "Logger":
        new_ctx = dict(self._context); new_ctx.update(ctx)
        child = Logger(
            stream=self.stream,
            level=self.level_name,
            use_color=self.use_color,
            show_time=self.show_time,
            time_fmt=self.time_fmt,
            _context=new_ctx,
            _json_stream=self._json_stream,
            _lock=self._lock,
        )
        child.level_no = self.level_no
        return child

    def child(self, module: str) -> "Logger":
        return self.bind(module=module)

    # Output
    def _paint(self, text: str, color: Optional[str]) -> str:
        return f"{color}{text}{RESET}" if (color and self.use_color) else text

    def _line(self, label: str, msg: str) -> str:
        mod = str(self._context.get("module") or "").strip().upper()
        parts = []
        if self.show_time:
            parts.append(self._paint(f"[{datetime.datetime.now().strftime(self.time_fmt)}]", DIM))
        if mod:
            parts.append(self._paint(f"[{mod}]", MODULE_COLORS.get(mod)))
        parts.append(self._paint(label, LEVEL_COLORS.get(label)))
        parts.append(msg)
        return " ".join(parts)

    def _emit(self, severity: str, label: str, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None:
        if self.level_no > LEVELS.get(severity, 20):
            return
        if severity == "debug" and not _debug_enabled():
            return
        msg = " ".join(str(p) for p in parts)
        line = self._line(label, msg)
        with self._lock:
            self.stream.write(line + "\n")
            self.stream.flush()
            if self._json_stream:
                rec: Dict[str, Any] = {
                    "ts": datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="milliseconds"),
                    "level": label,
                    "module": self._context.get("module"),
                    "msg": msg,
                }
                if extra:
                    rec["extra"] = dict(extra)
                self._json_stream.write(json.dumps(rec, ensure_ascii=False, default=str) + "\n")
                self._json_stream.flush()

    def debug(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None:
        self._emit("debug", "DEBUG", *parts, extra=extra)

    def info(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None:
        self._emit("info", "INFO", *parts, extra=extra)

    def warn(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None:
        self._emit("warn", "WARN", *parts, extra=extra)

    def error(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None:
        self._emit("error", "ERROR", *parts, extra=extra)

    def success(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None:
        self._emit("info", "SUCCESS", *parts, extra=extra)

    _BY_LEVEL = {"debug": "debug", "warn": "warn", "warning": "warn", "error": "error", "success": "success"}

    def __call__(
        self,
        message: str,
        *,
        level: str = "INFO",
        module: Optional[str] = None,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        target = self.bind(module=module) if module else self
        name = self._BY_LEVEL.get(str(level or "INFO").lower(), "info")
        getattr(target, name)(message, extra=extra)


log = Logger(level=str(os.getenv("RT_LOG_LEVEL") or "info"))

__all__ = ["Logger", "log", "LEVELS", "LEVEL_COLORS", "MODULE_COLORS"]
