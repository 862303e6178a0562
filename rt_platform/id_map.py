# /rt_platform/id_map.py
# Common ID handling for movies and episodes.
# - Normalize/clean IDs from the local library and the remote service.
# - Validate the primary id (IMDb) so malformed values never match.
# - Merge multiple ID maps (fill-only, never clobber).
# - Generate canonical keys for deduplication/joins.
# - Minimal projection for logs/payloads (keep show_ids for episodes).

from __future__ import annotations
import re
from typing import Any, Dict, Mapping, Optional, Tuple
from itertools import chain

# Public policy: use these everywhere (matching, registries, logging).
ID_KEYS: Tuple[str, ...]       = ("imdb", "tmdb", "tvdb", "trakt", "slug")
KEY_PRIORITY: Tuple[str, ...]  = ("imdb", "tmdb", "tvdb", "trakt", "slug")

_IMDB_RX = re.compile(r"^tt\d{7,8}$")

__all__ = [
    "ID_KEYS", "KEY_PRIORITY",
    "proper_imdb", "valid_imdb", "normalize_id",
    "ids_from", "coalesce_ids", "merge_ids",
    "canonical_key", "title_year_key", "se_fragment",
    "minimal", "has_external_ids",
]

# --- tiny utils ---------------------------------------------------------------

_CLEAN_SENTINELS = {"none", "null", "nan", "undefined", "unknown", "0", ""}

def _norm_str(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    return s or None

def _norm_type(t: Any) -> str:
    x = (str(t or "")).strip().lower()
    if x in ("movies", "movie"): return "movie"
    if x in ("shows", "show", "series", "tv"): return "show"
    if x in ("episodes", "episode"): return "episode"
    return x or "movie"

def proper_imdb(val: Any) -> Optional[str]:
    """
    Bring an IMDb id into tt####### form.
    Bare digits and short tt-ids are zero-padded to seven digits; values
    without any digits are treated as absent.
    """
    s = _norm_str(val)
    if not s or s.lower() in _CLEAN_SENTINELS:
        return None
    s = s.lower()
    m = re.search(r"tt(\d+)", s)
    digits = m.group(1) if m else re.sub(r"\D+", "", s)
    if not digits or not digits.strip("0"):
        return None
    return "tt" + digits.zfill(7)

def valid_imdb(val: Any) -> bool:
    s = _norm_str(val)
    return bool(s and _IMDB_RX.match(s))

def normalize_id(key: str, val: Any) -> Optional[str]:
    """Normalize ids so local and remote values compare equal."""
    k = (key or "").lower().strip()
    s = _norm_str(val)
    if not s:
        return None
    if s.lower() in _CLEAN_SENTINELS:
        return None

    if k in ("tmdb", "tvdb", "trakt"):
        digits = re.sub(r"\D+", "", s)
        return digits.lstrip("0") or None

    if k == "imdb":
        return proper_imdb(s)

    if k == "slug":
        return s.lower()

    return s

# --- Collect / merge ----------------------------------------------------------

def coalesce_ids(*many: Mapping[str, Any]) -> Dict[str, str]:
    """Merge several 'ids' maps into one normalized dict (later maps win)."""
    out: Dict[str, str] = {}
    for ids in many:
        if not isinstance(ids, Mapping):
            continue
        for k in ID_KEYS:
            n = normalize_id(k, ids.get(k))
            if n:
                out[k] = n
    return out

def ids_from(item: Mapping[str, Any]) -> Dict[str, str]:
    """Pull IDs from item["ids"] and from top level fields (imdb/tmdb/...)."""
    base = item.get("ids") if isinstance(item.get("ids"), Mapping) else {}
    top = {k: item.get(k) for k in ID_KEYS if item.get(k) is not None}
    return coalesce_ids(top, base or {})

def merge_ids(old: Mapping[str, Any] | None, new: Mapping[str, Any] | None) -> Dict[str, str]:
    """Fill-only merge; keep existing ids; never clobber."""
    out: Dict[str, str] = {}
    old = dict(old or {})
    new = dict(new or {})
    for k, v in chain(old.items(), new.items()):
        if out.get(k):
            continue
        n = normalize_id(k, v)
        if n:
            out[k] = n
    return out

# --- Canonical keys -----------------------------------------------------------

def title_year_key(item: Mapping[str, Any]) -> Optional[str]:
    t = _norm_str(item.get("title"))
    y = _norm_str(item.get("year")) or ""
    typ = _norm_type(item.get("type"))
    if not t:
        return None
    return f"{typ}|title:{t.lower()}|year:{y}"

def _best_id_key(idmap: Mapping[str, str]) -> Optional[str]:
    for k in KEY_PRIORITY:
        v = idmap.get(k)
        if k == "imdb" and not valid_imdb(v):
            continue
        if v:
            return f"{k}:{v}".lower()
    return None

def _show_key(item: Mapping[str, Any]) -> Optional[str]:
    sids = item.get("show_ids") if isinstance(item.get("show_ids"), Mapping) else {}
    kid = _best_id_key(coalesce_ids(sids or {}))
    if kid:
        return kid
    t = _norm_str(item.get("show_title") or item.get("title"))
    if not t:
        return None
    return f"show|title:{t.lower()}|year:{_norm_str(item.get('year')) or ''}"

def se_fragment(item: Mapping[str, Any]) -> Optional[str]:
    s = item.get("season")
    e = item.get("episode")
    try:
        s = int(s) if s is not None else None
        e = int(e) if e is not None else None
    except Exception:
        return None
    if s is None or e is None:
        return None
    return f"#s{str(s).zfill(2)}e{str(e).zfill(2)}"

def canonical_key(item: Mapping[str, Any]) -> str:
    """
    One stable string per entity:
    - Movies: strongest valid id (by KEY_PRIORITY), else type|title|year.
    - Episodes: show key + S/E fragment.
    """
    typ = _norm_type(item.get("type"))
    if typ == "episode":
        show = _show_key(item)
        frag = se_fragment(item)
        if show and frag:
            return f"{show}{frag}".lower()
    idkey = _best_id_key(ids_from(item))
    if idkey:
        return idkey
    ty = title_year_key(item)
    return ty or "unknown:"

# --- Minimal projection (for logs/payloads) ----------------------------------

def minimal(item: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Minimal, but TV-safe: keep show_ids/show_title for episodes so the
    remote writer can build show/season/episode payloads.
    """
    ids = ids_from(item)
    typ = _norm_type(item.get("type"))
    out: Dict[str, Any] = {
        "type": typ,
        "title": item.get("title"),
        "year": item.get("year"),
        "ids": {k: ids[k] for k in ID_KEYS if k in ids},
    }
    for opt in ("season", "episode", "show_title", "rating", "watched_at"):
        if item.get(opt) is not None:
            out[opt] = item.get(opt)
    if typ == "episode":
        sids_raw = item.get("show_ids") if isinstance(item.get("show_ids"), Mapping) else None
        if sids_raw:
            sids = coalesce_ids(sids_raw)
            if sids:
                out["show_ids"] = {k: sids[k] for k in ID_KEYS if k in sids}
    return out

def has_external_ids(obj: Mapping[str, Any]) -> bool:
    ids = ids_from(obj) if "ids" in obj else obj
    return bool(valid_imdb(ids.get("imdb")) or ids.get("tmdb") or ids.get("tvdb"))
