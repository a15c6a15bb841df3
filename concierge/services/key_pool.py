# =============================================
# File: concierge/services/key_pool.py
# Purpose: Multi-provider API key pool with per-key health, cooldowns and dynamic refresh
# =============================================
from __future__ import annotations
import math
import os
import threading
import time
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from loguru import logger

from concierge.services.errors import KeyPoolExhausted


class Provider(str, Enum):
    GROQ = "groq"      # fast / default, OpenAI-compatible
    GOOGLE = "google"  # fallback, Gemini REST


# Env slots per provider; several slots enable rotation without any dynamic store.
ENV_KEY_SLOTS: Dict[Provider, List[str]] = {
    Provider.GROQ: ["GROQ_API_KEY"] + [f"GROQ_API_KEY_{i}" for i in range(1, 11)],
    Provider.GOOGLE: ["GEMINI_API_KEY"] + [f"GEMINI_API_KEY_{i}" for i in range(1, 4)],
}

RATE_LIMIT_COOLDOWN_S = 60.0
ERROR_COOLDOWN_S = 30.0
INVALID_COOLDOWN_S = 365 * 24 * 3600.0
MAX_CONSECUTIVE_ERRORS = 3
DYNAMIC_REFRESH_S = 60.0

# Soft-disable thresholds: a key that keeps failing is skipped even without a cooldown.
SOFT_DISABLE_ERRORS = 10
SOFT_DISABLE_CONSECUTIVE = 5


@dataclass(frozen=True)
class KeyInfo:
    """A credential as supplied by env or the operator-managed store."""
    key: str
    provider: Provider
    id: Optional[str] = None


@dataclass
class KeyRecord:
    key: str
    id: Optional[str]
    provider: Provider
    index: int
    call_count: int = 0
    error_count: int = 0
    consecutive_errors: int = 0
    rate_limited: bool = False
    cooldown_until: Optional[float] = None
    last_used: Optional[float] = None


def mask_key(key: str) -> str:
    if len(key) <= 8:
        return "****"
    return key[:4] + "****" + key[-4:]


def _as_provider(value) -> Optional[Provider]:
    try:
        return Provider(value)
    except ValueError:
        return None


class KeyPool:
    """
    Process-wide credential pool. Construct once at the composition root and
    hand the same instance to every provider caller.

    Selection is sticky: the first healthy key (in stored order) is used until
    it degrades. Every mutation happens under one lock, so counters and flags
    are updated atomically per record.
    """

    def __init__(self, clock: Callable[[], float] = time.time, environ: Optional[Dict[str, str]] = None) -> None:
        self._clock = clock
        self._environ = environ
        self._lock = threading.Lock()
        self._keys: List[KeyRecord] = []
        self._static: List[KeyInfo] = []
        self._dynamic: List[KeyInfo] = []
        self._active_index: Dict[Provider, Optional[int]] = {p: None for p in Provider}
        self._next_index = 0
        self._initialized = False
        self._last_dynamic_load: Optional[float] = None

    # ---------- construction ----------

    def initialize(self) -> None:
        """Parse env slots once; later calls are no-ops."""
        with self._lock:
            if self._initialized:
                return
            env = self._environ if self._environ is not None else os.environ
            static: List[KeyInfo] = []
            seen = set()
            for provider, names in ENV_KEY_SLOTS.items():
                for name in names:
                    val = (env.get(name) or "").strip()
                    if not val or val in seen:
                        continue
                    seen.add(val)
                    static.append(KeyInfo(key=val, provider=provider, id=f"env-{provider.value}-{name}"))
            self._static = static
            self._rebuild()
            self._initialized = True
        if not self._keys:
            logger.warning("[KeyPool] No API keys configured from env; waiting for dynamic keys")
        else:
            logger.info(f"[KeyPool] Initialized with {len(self._keys)} key(s) from env")

    def load_dynamic_keys(self, records: Iterable[KeyInfo]) -> bool:
        """
        Merge keys from the operator store. Store keys win over env keys with the
        same secret. Returns False (and keeps all state) when the set is unchanged.
        """
        valid = [
            KeyInfo(key=r.key.strip(), provider=Provider(r.provider), id=r.id)
            for r in records
            if r.key and r.key.strip() and _as_provider(r.provider) is not None
        ]
        with self._lock:
            self._last_dynamic_load = self._clock()
            if [asdict(k) for k in valid] == [asdict(k) for k in self._dynamic]:
                return False
            self._dynamic = valid
            self._rebuild()
            total = len(self._keys)
        logger.info(f"[KeyPool] Loaded {len(valid)} dynamic key(s); {total} key(s) in pool")
        return True

    def _rebuild(self) -> None:
        # caller holds the lock
        merged: Dict[str, KeyInfo] = {}
        for info in self._dynamic:
            merged.setdefault(info.key, info)
        for info in self._static:
            merged.setdefault(info.key, info)

        existing = {rec.key: rec for rec in self._keys}
        rebuilt: List[KeyRecord] = []
        for info in merged.values():
            rec = existing.get(info.key)
            if rec is not None:
                rec.provider = info.provider
                rec.id = info.id
            else:
                rec = KeyRecord(key=info.key, id=info.id, provider=info.provider, index=self._next_index)
                self._next_index += 1
            rebuilt.append(rec)
        self._keys = rebuilt

    def needs_refresh(self) -> bool:
        if self._last_dynamic_load is None:
            return True
        return self._clock() - self._last_dynamic_load > DYNAMIC_REFRESH_S

    def invalidate_cache(self) -> None:
        """Force the next needs_refresh() to report True."""
        self._last_dynamic_load = None

    # ---------- selection ----------

    def _is_healthy(self, rec: KeyRecord, now: float) -> bool:
        if rec.cooldown_until is not None and rec.cooldown_until > now:
            return False
        if rec.rate_limited:
            return False
        if rec.error_count > SOFT_DISABLE_ERRORS and rec.consecutive_errors > SOFT_DISABLE_CONSECUTIVE:
            return False
        return True

    def get_active_key(self, provider: Provider | str) -> str:
        provider = Provider(provider)
        with self._lock:
            now = self._clock()
            candidates = [k for k in self._keys if k.provider == provider]
            if not candidates:
                raise KeyPoolExhausted(provider.value, f"No API keys configured for provider: {provider.value}")

            for rec in candidates:
                if self._is_healthy(rec, now):
                    self._active_index[provider] = rec.index
                    return rec.key

            # Self-healing: a key whose cooldown just ran out gets a clean slate.
            for rec in candidates:
                if rec.cooldown_until is not None and rec.cooldown_until <= now:
                    rec.cooldown_until = None
                    rec.rate_limited = False
                    rec.consecutive_errors = 0
                    self._active_index[provider] = rec.index
                    logger.info(f"[KeyPool] Key {rec.index} ({provider.value}) recovered from cooldown")
                    return rec.key

        raise KeyPoolExhausted(
            provider.value, f"All {provider.value} API keys are exhausted, rate-limited or in cooldown"
        )

    def has_keys(self, provider: Provider | str) -> bool:
        provider = Provider(provider)
        with self._lock:
            return any(k.provider == provider for k in self._keys)

    def key_count(self) -> int:
        return len(self._keys)

    # ---------- outcome bookkeeping ----------

    def _find(self, key: str) -> Optional[KeyRecord]:
        for rec in self._keys:
            if rec.key == key:
                return rec
        return None

    def mark_success(self, key: str) -> None:
        with self._lock:
            rec = self._find(key)
            if rec is None:
                return
            rec.call_count += 1
            rec.last_used = self._clock()
            rec.consecutive_errors = 0

    def mark_failed(self, key: str) -> None:
        with self._lock:
            rec = self._find(key)
            if rec is None:
                return
            rec.error_count += 1
            rec.consecutive_errors += 1
            rec.last_used = self._clock()
            if rec.consecutive_errors >= MAX_CONSECUTIVE_ERRORS:
                rec.cooldown_until = rec.last_used + ERROR_COOLDOWN_S
                logger.warning(
                    f"[KeyPool] Key {rec.index} ({rec.provider.value}) hit {rec.consecutive_errors} "
                    f"consecutive errors, cooling down {ERROR_COOLDOWN_S:.0f}s"
                )

    def mark_rate_limited(self, key: str) -> None:
        with self._lock:
            rec = self._find(key)
            if rec is None:
                return
            rec.rate_limited = True
            rec.last_used = self._clock()
            rec.cooldown_until = rec.last_used + RATE_LIMIT_COOLDOWN_S
            logger.warning(f"[KeyPool] Key {rec.index} ({rec.provider.value}) rate-limited, entering cooldown")

    def mark_invalid(self, key: str) -> None:
        with self._lock:
            rec = self._find(key)
            if rec is None:
                return
            rec.error_count = 999
            rec.consecutive_errors = 999
            rec.last_used = self._clock()
            rec.cooldown_until = rec.last_used + INVALID_COOLDOWN_S
            logger.error(f"[KeyPool] Key {rec.index} ({rec.provider.value}) marked INVALID/LEAKED")

    # ---------- diagnostics ----------

    def get_health_snapshot(self) -> Dict:
        """Read-only view for operators; never consulted for routing."""
        with self._lock:
            now = self._clock()
            keys = []
            for rec in self._keys:
                remaining = None
                if rec.cooldown_until is not None:
                    remaining = max(0, math.ceil(rec.cooldown_until - now))
                keys.append(
                    {
                        "index": rec.index,
                        "id": rec.id,
                        "provider": rec.provider.value,
                        "masked_key": mask_key(rec.key),
                        "call_count": rec.call_count,
                        "error_count": rec.error_count,
                        "consecutive_errors": rec.consecutive_errors,
                        "is_active": self._active_index.get(rec.provider) == rec.index,
                        "is_healthy": self._is_healthy(rec, now),
                        "rate_limited": rec.rate_limited,
                        "cooldown_remaining": remaining,
                        "last_used": rec.last_used,
                    }
                )
            return {
                "total_keys": len(self._keys),
                "active_index": {p.value: idx for p, idx in self._active_index.items()},
                "last_dynamic_load": self._last_dynamic_load,
                "keys": keys,
            }


def keys_from_rows(rows: Sequence[dict]) -> List[KeyInfo]:
    """Build KeyInfo from loosely-typed store rows, skipping unknown providers."""
    out: List[KeyInfo] = []
    for row in rows:
        provider = _as_provider(row.get("provider"))
        key = str(row.get("key") or "").strip()
        if provider is None or not key:
            continue
        out.append(KeyInfo(key=key, provider=provider, id=row.get("id")))
    return out
