# =============================================
# File: concierge/utils/ratelimit.py
# Purpose: Sliding-window request limit per client (X-User-ID or client IP)
# =============================================
from __future__ import annotations
import math
import os
import threading
import time
from collections import deque
from typing import Deque, Dict


class RateLimitExceeded(RuntimeError):
    """Carries the number of seconds until the oldest request in the window ages out."""

    def __init__(self, key: str, retry_after: int) -> None:
        super().__init__(f"Rate limit exceeded for {key}")
        self.key = key
        self.retry_after = retry_after


_seen: Dict[str, Deque[float]] = {}
_lock = threading.Lock()


def _limits() -> tuple[int, int]:
    # read per call so monkeypatched env applies immediately
    return int(os.getenv("RL_MAX_REQS", "60")), int(os.getenv("RL_WINDOW_SECONDS", "60"))


def check_rate_limit(key: str) -> None:
    max_reqs, window_s = _limits()
    now = time.time()
    with _lock:
        stamps = _seen.get(key)
        if stamps is None:
            stamps = _seen[key] = deque()
        while stamps and now - stamps[0] > window_s:
            stamps.popleft()
        if len(stamps) >= max_reqs:
            raise RateLimitExceeded(key, max(1, math.ceil(stamps[0] + window_s - now)))
        stamps.append(now)


def reset_rate_limit() -> None:
    with _lock:
        _seen.clear()
