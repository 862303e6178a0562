# /providers/sync/_mod_TRAKT.py
# ReelTrack remote module: Trakt collection / history / ratings over requests
# Copyright (c) 2025-2026 ReelTrack
from __future__ import annotations

__VERSION__ = "1.0.0"
__all__ = ["TraktClient", "TRAKT_BASE"]

from typing import Any, Callable, Dict, List, Mapping, Optional

import requests

from _logging import log
from rt_platform.id_map import coalesce_ids
from rt_platform.orchestrator._types import (
    ItemOutcome, ItemStatus, OperationResult, OpKind, ProtocolError, RemoteItem,
    SyncOperation, TransportError,
)

from ._mod_common import build_session, label_trakt, parse_rate_limit, request_with_retries, safe_json
from .trakt._common import (
    build_body, build_headers, episodes_from_show_row, movie_from_row, show_from_row, trakt_kind,
)

# --- Trakt constants -----------------------------------------------------------

TRAKT_BASE = "https://api.trakt.tv"

_WRITE_PATHS: Dict[OpKind, str] = {
    OpKind.ADD: "/sync/collection",
    OpKind.REMOVE: "/sync/collection/remove",
    OpKind.SEEN: "/sync/history",
    OpKind.UNSEEN: "/sync/history/remove",
    OpKind.RATE: "/sync/ratings",
}

_REASONS: Dict[int, str] = {
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    409: "already_exists",
    420: "limit_exceeded",
    422: "invalid",
    429: "rate_limited",
}


def _any_overlap(a: Mapping[str, Any], b: Mapping[str, Any]) -> bool:
    na, nb = coalesce_ids(a or {}), coalesce_ids(b or {})
    return any(na.get(k) and na.get(k) == nb.get(k) for k in ("imdb", "tmdb", "tvdb", "trakt"))


def _same_title_year(sent: Mapping[str, Any], echoed: Mapping[str, Any]) -> bool:
    t1 = str(sent.get("title") or "").strip().lower()
    t2 = str(echoed.get("title") or "").strip().lower()
    return bool(t1) and t1 == t2 and str(sent.get("year") or "") == str(echoed.get("year") or "")


def _echoes(sent: Mapping[str, Any], sent_ids: Mapping[str, Any], echoed: Mapping[str, Any]) -> bool:
    """True when a not_found entry refers to the sent item; id-less entries match on title/year."""
    ids = echoed.get("ids") if isinstance(echoed.get("ids"), Mapping) else {}
    if coalesce_ids(ids):
        return _any_overlap(sent_ids, ids)
    return _same_title_year(sent, echoed)


class TraktClient:
    def __init__(self, cfg: Mapping[str, Any], *, session: Optional[requests.Session] = None,
                 emit: Optional[Callable[..., None]] = None):
        t = dict((cfg.get("trakt") if isinstance(cfg.get("trakt"), Mapping) else cfg) or {})
        self.base = str(t.get("base_url") or TRAKT_BASE).rstrip("/")
        self.timeout = float(t.get("timeout") or 15)
        self.max_retries = int(t.get("max_retries") or 3)
        self.backoff = float(t.get("backoff_base", 0.5))
        self.headers = build_headers(t)
        self.session = session or build_session("TRAKT", emit, feature_label=label_trakt)
        self.session.headers.update(self.headers)

    # --- transport --------------------------------------------------------------

    def _request(self, method: str, path: str, **kw: Any) -> Any:
        url = f"{self.base}{path}"
        try:
            resp = request_with_retries(
                self.session, method, url,
                timeout=self.timeout, max_retries=self.max_retries, backoff_base=self.backoff, **kw,
            )
        except requests.RequestException as e:
            raise TransportError(f"{method} {path}: {e}") from e

        rl = parse_rate_limit(resp.headers)
        if rl.get("remaining") is not None and int(rl["remaining"] or 0) < 10:
            log(f"rate limit nearly exhausted ({rl['remaining']} left)", level="WARN", module="TRAKT")

        if resp.status_code >= 500:
            raise TransportError(f"{method} {path}: HTTP {resp.status_code}")
        if not (200 <= resp.status_code < 300):
            reason = _REASONS.get(resp.status_code, f"http_{resp.status_code}")
            raise ProtocolError(reason, resp.status_code, f"{method} {path}: HTTP {resp.status_code}")
        log(f"{method} {path} -> {resp.status_code}", level="DEBUG", module="TRAKT")
        return safe_json(resp)

    def _get_list(self, path: str) -> List[Mapping[str, Any]]:
        data = self._request("GET", path)
        return [r for r in data if isinstance(r, Mapping)] if isinstance(data, list) else []

    # --- reads --------------------------------------------------------------------

    def fetch_collection(self, entity: str) -> List[RemoteItem]:
        rows = self._get_list(f"/sync/collection/{trakt_kind(entity)}")
        if trakt_kind(entity) == "movies":
            return [movie_from_row(r, in_collection=True) for r in rows]
        return [ep for r in rows for ep in episodes_from_show_row(r, in_collection=True)]

    def fetch_watched(self, entity: str) -> List[RemoteItem]:
        rows = self._get_list(f"/sync/watched/{trakt_kind(entity)}")
        if trakt_kind(entity) == "movies":
            return [movie_from_row(r) for r in rows]
        return [ep for r in rows for ep in episodes_from_show_row(r)]

    def fetch_watchlist(self, entity: str) -> List[RemoteItem]:
        rows = self._get_list(f"/sync/watchlist/{trakt_kind(entity)}")
        if trakt_kind(entity) == "movies":
            return [movie_from_row(r) for r in rows]
        return [show_from_row(r) for r in rows]

    def fetch_recommendations(self, entity: str) -> List[RemoteItem]:
        rows = self._get_list(f"/recommendations/{trakt_kind(entity)}")
        if trakt_kind(entity) == "movies":
            return [movie_from_row(r) for r in rows]
        return [show_from_row(r) for r in rows]

    # --- writes -------------------------------------------------------------------

    def submit(self, op: SyncOperation) -> OperationResult:
        path = _WRITE_PATHS[op.kind]
        payload = op.payload()
        body = build_body(op.entity, payload)
        data = self._request("POST", path, json=body)
        return self._classify(op, payload, data if isinstance(data, Mapping) else {})

    def _classify(self, op: SyncOperation, payload: List[Dict[str, Any]], data: Mapping[str, Any]) -> OperationResult:
        nf = data.get("not_found") if isinstance(data.get("not_found"), Mapping) else {}

        def _entries(kind: str) -> List[Mapping[str, Any]]:
            return [x for x in (nf.get(kind) or []) if isinstance(x, Mapping)]

        nf_movies, nf_shows = _entries("movies"), _entries("shows")
        nf_episodes = _entries("seasons") + _entries("episodes")
        existing = data.get("existing") or {}
        existing_total = sum(int(v or 0) for v in existing.values()) if isinstance(existing, Mapping) else 0

        outcomes: List[ItemOutcome] = []
        for item, sent in zip(op.items, payload):
            if trakt_kind(op.entity) == "movies":
                missing = any(_echoes(sent, sent.get("ids") or {}, x) for x in nf_movies)
            else:
                missing = (any(_echoes(sent, sent.get("show_ids") or {}, x) for x in nf_shows)
                           or any(_any_overlap(sent.get("ids") or {}, x.get("ids") or {}) for x in nf_episodes))
            outcomes.append(ItemOutcome(item, ItemStatus.NOT_FOUND if missing else ItemStatus.OK))

        # Trakt only reports counts for existing items; attribute them when unambiguous
        pending = [o for o in outcomes if o.status == ItemStatus.OK]
        if existing_total and pending and (existing_total >= len(pending) or len(pending) == 1):
            for o in pending:
                o.status = ItemStatus.ALREADY_EXISTS
                o.reason = "existing"

        missing_n = sum(1 for o in outcomes if o.status == ItemStatus.NOT_FOUND)
        if missing_n:
            log(f"{op.kind.value} {op.entity}: {missing_n} item(s) not found on Trakt", level="INFO", module="TRAKT")
        return OperationResult(ok=True, status="ok", items=outcomes)
