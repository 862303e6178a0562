# /providers/sync/trakt/_common.py
# Trakt payload helpers: headers, ids, request bodies and response rows.

from __future__ import annotations
import os
from typing import Any, Dict, Iterable, List, Mapping

from rt_platform.id_map import coalesce_ids
from rt_platform.orchestrator._types import RemoteItem

# ── headers ───────────────────────────────────────────────────────────────────
UA = os.environ.get("RT_UA", "ReelTrack/1.0 (Trakt)")

def build_headers(arg1: Any, access_token: str | None = None) -> Dict[str, str]:
    client_id = ""
    token = ""
    if isinstance(arg1, Mapping) and access_token is None:
        t = (arg1.get("trakt") or arg1)
        client_id = str(t.get("client_id") or "").strip()
        token     = str(t.get("access_token") or "").strip()
    else:
        client_id = str(arg1 or "").strip()
        token     = str(access_token or "").strip()

    h = {
        "Accept": "application/json",
        "Content-Type": "application/json",
        "trakt-api-version": "2",
        "trakt-api-key": client_id,
        "User-Agent": UA,
    }
    if token:
        h["Authorization"] = f"Bearer {token}"
    return h

# ── ids ───────────────────────────────────────────────────────────────────────
_ALLOWED_ID_KEYS = ("imdb", "tmdb", "tvdb", "trakt")

def ids_for_trakt(ids: Mapping[str, Any] | None) -> Dict[str, Any]:
    norm = coalesce_ids(ids or {})
    out: Dict[str, Any] = {}
    for k in _ALLOWED_ID_KEYS:
        v = norm.get(k)
        if not v:
            continue
        out[k] = v if k == "imdb" else int(v)
    return out

def trakt_kind(entity: str) -> str:
    return "shows" if str(entity).lower() in ("episode", "episodes", "show", "shows") else "movies"

# ── request bodies ──────────────────────────────────────────────────────────────
def _movie_node(m: Mapping[str, Any]) -> Dict[str, Any]:
    node: Dict[str, Any] = {"title": m.get("title"), "ids": ids_for_trakt(m.get("ids"))}
    if m.get("year"):
        node["year"] = m.get("year")
    if m.get("rating") is not None:
        node["rating"] = m["rating"]
    return node

def build_movies_body(items: Iterable[Mapping[str, Any]]) -> Dict[str, Any]:
    return {"movies": [_movie_node(m) for m in items or []]}

def build_episodes_body(items: Iterable[Mapping[str, Any]]) -> Dict[str, Any]:
    """Group episodes under show → season → episode, the way Trakt expects them."""
    shows: Dict[str, Dict[str, Any]] = {}
    for it in items or []:
        sids = ids_for_trakt(it.get("show_ids"))
        title = it.get("title")
        key = repr(sorted(sids.items())) if sids else f"title:{str(title or '').lower()}|{it.get('year') or ''}"
        show = shows.get(key)
        if show is None:
            show = {"title": title, "ids": sids, "seasons": {}}
            if it.get("year"):
                show["year"] = it.get("year")
            shows[key] = show
        season = show["seasons"].setdefault(int(it.get("season") or 0), [])
        ep: Dict[str, Any] = {"number": int(it.get("episode") or 0)}
        if it.get("rating") is not None:
            ep["rating"] = it["rating"]
        season.append(ep)

    out: List[Dict[str, Any]] = []
    for show in shows.values():
        seasons = [{"number": n, "episodes": eps} for n, eps in sorted(show.pop("seasons").items())]
        out.append({**show, "seasons": seasons})
    return {"shows": out}

def build_body(entity: str, items: Iterable[Mapping[str, Any]]) -> Dict[str, Any]:
    if trakt_kind(entity) == "shows":
        return build_episodes_body(items)
    return build_movies_body(items)

# ── response rows ───────────────────────────────────────────────────────────────
def _int(v: Any) -> int | None:
    try:
        return int(v) if v is not None else None
    except (TypeError, ValueError):
        return None

def movie_from_row(row: Mapping[str, Any], *, in_collection: bool = False) -> RemoteItem:
    m = row.get("movie") or row
    return RemoteItem(
        entity="movie",
        title=str(m.get("title") or ""),
        year=_int(m.get("year")),
        ids=coalesce_ids(m.get("ids") or {}),
        plays=int(row.get("plays") or 0),
        in_collection=in_collection,
        unseen=bool(row.get("unseen") or False),
    )

def episodes_from_show_row(row: Mapping[str, Any], *, in_collection: bool = False) -> List[RemoteItem]:
    show = row.get("show") or {}
    title = str(show.get("title") or "")
    year = _int(show.get("year"))
    sids = coalesce_ids(show.get("ids") or {})
    out: List[RemoteItem] = []
    for season in row.get("seasons") or []:
        s_no = _int(season.get("number"))
        for ep in season.get("episodes") or []:
            out.append(RemoteItem(
                entity="episode",
                title=title,
                year=year,
                show_ids=dict(sids),
                season=s_no,
                episode=_int(ep.get("number")),
                plays=int(ep.get("plays") or 0),
                in_collection=in_collection,
                unseen=bool(ep.get("unseen") or False),
            ))
    return out

def show_from_row(row: Mapping[str, Any]) -> RemoteItem:
    s = row.get("show") or row
    return RemoteItem(
        entity="episode",
        title=str(s.get("title") or ""),
        year=_int(s.get("year")),
        show_ids=coalesce_ids(s.get("ids") or {}),
    )
