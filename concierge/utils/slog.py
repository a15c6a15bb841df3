# =============================================
# File: concierge/utils/slog.py
# Purpose: One JSON line per finished HTTP request on the "concierge" logger
# =============================================
from __future__ import annotations
import hashlib
import json
import logging
import os
import uuid
from typing import Any, Dict, Optional

_logger = logging.getLogger("concierge")
if not _logger.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter("%(message)s"))
    _logger.addHandler(_handler)
    _logger.setLevel(getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO))
# caplog reads records from the root logger
_logger.propagate = True


def qhash(text: str) -> str:
    """10-char sha256 of the lowercased, whitespace-collapsed query. Shopper text itself is never logged."""
    norm = " ".join((text or "").lower().split())
    return hashlib.sha256(norm.encode("utf-8")).hexdigest()[:10]


def new_request_id() -> str:
    return uuid.uuid4().hex


def log_event(event: str, **fields: Any) -> None:
    _logger.info(json.dumps({"event": event, **fields}, ensure_ascii=False, default=str))


def recommend_context(query: str, outcome: str, response: Any) -> Dict[str, Any]:
    """Fields a /recommend call contributes to its request.completed line."""
    return {
        "qhash": qhash(query),
        "outcome": outcome,
        "cache_hit": outcome == "cache_hit",
        "success": response.success,
        "n_recommendations": len(response.recommendations),
        "awaiting_item_details": response.awaiting_item_details,
    }


def finalize_request_log(
    request_id: str,
    method: str,
    path: str,
    status: int,
    latency_ms: int,
    client_ip: Optional[str],
    ctx: Optional[Dict[str, Any]] = None,
) -> None:
    log_event(
        "request.completed",
        request_id=request_id,
        method=method,
        path=path,
        status=status,
        latency_ms=latency_ms,
        client_ip=client_ip or "",
        **(ctx or {}),
    )
