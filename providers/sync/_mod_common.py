# /providers/sync/_mod_common.py
# ReelTrack shared HTTP plumbing for remote modules: counted sessions, retries, response helpers
# Copyright (c) 2025-2026 ReelTrack
from __future__ import annotations

import json
import os
import time
from collections import Counter
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional
from urllib.parse import urlparse

import requests

from _logging import log

__VERSION__ = "1.0.0"
__all__ = [
    "RetryPolicy",
    "HitSession",
    "make_emitter",
    "build_session",
    "label_trakt",
    "parse_rate_limit",
    "safe_json",
    "request_with_retries",
]

EmitFn = Callable[[str, Mapping[str, Any]], None]
LabelFn = Callable[[str, str, Mapping[str, Any]], str]


def make_emitter(ctx: Any) -> EmitFn:
    """Adapt an Emitter, a bare callable or None into emit(event, payload)."""
    target = getattr(ctx, "emit", None)
    if not callable(target):
        target = ctx if callable(ctx) else None

    def _emit(event: str, payload: Mapping[str, Any]) -> None:
        if target is None:
            return
        target(event, **dict(payload))

    return _emit


def _segments(url: str) -> list[str]:
    return [s for s in (urlparse(url).path or "/").split("/") if s]


def label_trakt(method: str, url: str, kw: Mapping[str, Any]) -> str:
    """Feature label for a Trakt endpoint, e.g. history:add, collection:index."""
    segs = _segments(url)
    if not segs:
        return "unknown"
    if segs[0] != "sync":
        return segs[0].lower()
    feature = segs[1] if len(segs) > 1 else "sync"
    if feature not in ("collection", "history", "ratings", "watchlist"):
        return feature
    if method.upper() == "GET":
        return f"{feature}:index"
    return f"{feature}:{'remove' if segs[-1] == 'remove' else 'add'}"


class HitSession(requests.Session):
    """requests.Session that counts calls per feature and optionally emits api:hit events."""

    def __init__(self, provider: str, emit: EmitFn, label: Optional[LabelFn] = None,
                 emit_hits: Optional[bool] = None):
        super().__init__()
        self.provider = provider
        self.hits: Counter[str] = Counter()
        self._emit = emit
        self._label = label or (lambda m, u, kw: "/".join(_segments(u)[:2]).lower() or "unknown")
        self._emit_hits = bool(os.getenv("RT_API_HITS")) if emit_hits is None else bool(emit_hits)

    def request(self, method: str, url: str, **kwargs: Any) -> requests.Response:  # type: ignore[override]
        feature = self._label(method, url, kwargs)
        self.hits[feature] += 1
        try:
            return super().request(method, url, **kwargs)
        finally:
            if self._emit_hits:
                self._emit("api:hit", {"provider": self.provider, "feature": feature})


def build_session(provider: str, ctx: Any, *, feature_label: Optional[LabelFn] = None,
                  emit_hits: Optional[bool] = None) -> HitSession:
    return HitSession(provider, make_emitter(ctx), feature_label, emit_hits)


def parse_rate_limit(h: Mapping[str, Any]) -> dict[str, Optional[int]]:
    def _pick(name: str) -> Optional[int]:
        raw = h.get(f"X-RateLimit-{name}") or h.get(f"RateLimit-{name}")
        try:
            return int(raw) if raw is not None else None
        except (TypeError, ValueError):
            return None
    return {"limit": _pick("Limit"), "remaining": _pick("Remaining"), "reset": _pick("Reset")}


def safe_json(resp: requests.Response) -> Any:
    """Decoded body, or {} for empty / non-JSON bodies."""
    text = resp.text or ""
    if not text.strip():
        return {}
    try:
        return json.loads(text)
    except ValueError:
        return {}


@dataclass(frozen=True)
class RetryPolicy:
    attempts: int = 3
    retry_on: tuple[int, ...] = (429, 500, 502, 503, 504)
    backoff_base: float = 0.5

    def delay(self, attempt: int, resp: Optional[requests.Response] = None) -> float:
        wait = self.backoff_base * (2 ** attempt)
        if resp is not None and resp.status_code == 429:
            try:
                wait = max(wait, float(resp.headers.get("Retry-After") or 0))
            except ValueError:
                pass
        return wait


def request_with_retries(
    session: requests.Session,
    method: str,
    url: str,
    *,
    timeout: float = 10.0,
    max_retries: int = 3,
    retry_on: tuple[int, ...] = (429, 500, 502, 503, 504),
    backoff_base: float = 0.5,
    **kwargs: Any,
) -> requests.Response:
    """
    Send with retries on connection errors and retryable statuses.
    Returns the last response when statuses keep failing; raises
    requests.RequestException when no response was ever received.
    """
    policy = RetryPolicy(max(1, int(max_retries)), tuple(retry_on), float(backoff_base))
    last_resp: Optional[requests.Response] = None
    last_exc: Optional[requests.RequestException] = None

    for attempt in range(policy.attempts):
        final = attempt == policy.attempts - 1
        try:
            resp = session.request(method, url, timeout=timeout, **kwargs)
        except requests.RequestException as e:
            last_exc = e
            log(f"{method} {url} failed (attempt {attempt + 1}/{policy.attempts}): {e}", level="DEBUG", module="TRAKT")
            if not final:
                time.sleep(policy.delay(attempt))
            continue
        if resp.status_code not in policy.retry_on or final:
            return resp
        last_resp = resp
        log(f"{method} {url} -> {resp.status_code}, retrying", level="DEBUG", module="TRAKT")
        time.sleep(policy.delay(attempt, resp))

    if last_resp is not None:
        return last_resp
    raise requests.RequestException(f"request failed after retries: {method} {url}: {last_exc}")
