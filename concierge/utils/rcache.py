# =============================================
# File: concierge/utils/rcache.py
# Purpose: Recent recommendation responses, keyed by query fingerprint (TTL, LRU-bounded)
# =============================================
from __future__ import annotations
import hashlib
import json
import os
import threading
import time
from collections import OrderedDict
from typing import Any, Dict, Optional, Tuple

_TTL = int(os.getenv("REC_CACHE_TTL_SECONDS", "120"))
_MAX = int(os.getenv("REC_CACHE_MAX_ENTRIES", "1000"))

# key -> (expires_at, response); most recently used last
_entries: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()
_lock = threading.Lock()


def _now() -> float:
    return time.time()


def normalize_query(q: str) -> str:
    return " ".join((q or "").lower().split())


def make_key(query: str, context: Optional[Dict[str, Any]] = None) -> str:
    """
    "recommendation:<sha256 prefix>" over the normalized query and, when given,
    the filtering context. Two phrasings that differ only in case or spacing
    share an entry; a different budget or category does not.
    """
    parts = [normalize_query(query)]
    if context:
        parts.append(json.dumps(context, sort_keys=True, default=str))
    return "recommendation:" + hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()[:24]


def get(key: str) -> Any | None:
    with _lock:
        hit = _entries.get(key)
        if hit is None:
            return None
        expires_at, value = hit
        if expires_at < _now():
            del _entries[key]
            return None
        _entries.move_to_end(key)
        return value


def set(key: str, value: Any, ttl: int | None = None) -> None:
    expires_at = _now() + (_TTL if ttl is None else ttl)
    with _lock:
        _entries[key] = (expires_at, value)
        _entries.move_to_end(key)
        while len(_entries) > _MAX:
            _entries.popitem(last=False)


def clear() -> None:
    with _lock:
        _entries.clear()
