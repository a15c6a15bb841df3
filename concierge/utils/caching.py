# =============================================
# File: concierge/utils/caching.py
# Purpose: Single-value TTL holder for read-mostly config (prompts, AI settings)
# =============================================
from __future__ import annotations
import time
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")


class TTLValue(Generic[T]):
    """
    Holds one value for `ttl` seconds. A refresh swaps the whole value at once,
    so readers never see a half-updated object; two concurrent refreshes just
    both store the same upstream truth.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.time) -> None:
        self._ttl = ttl
        self._clock = clock
        self._slot: Optional[tuple[float, T]] = None

    def get(self) -> Optional[T]:
        slot = self._slot
        if slot is None:
            return None
        ts, val = slot
        if self._clock() - ts < self._ttl:
            return val
        return None

    def set(self, value: T) -> None:
        self._slot = (self._clock(), value)

    def clear(self) -> None:
        self._slot = None
