# =============================================
# File: concierge/utils/metrics.py
# Purpose: Process-local counters for the recommendation pipeline, served by /metrics
# =============================================
from __future__ import annotations
from collections import Counter, defaultdict, deque
from typing import Any, Deque, Dict, List
import threading
import time

# /recommend latency buckets in ms; the last slot counts everything slower
LATENCY_BUCKETS_MS: List[int] = [50, 100, 200, 500, 1000, 2000, 5000, 10000]
SAMPLES_PER_ENDPOINT = 1000

_lock = threading.Lock()


class _Histogram:
    def __init__(self, bounds: List[int]):
        self.bounds = bounds
        self.counts = [0] * (len(bounds) + 1)

    def observe(self, value: float) -> None:
        for i, bound in enumerate(self.bounds):
            if value <= bound:
                self.counts[i] += 1
                return
        self.counts[-1] += 1

    def as_dict(self) -> Dict[str, Any]:
        return {"buckets": list(self.bounds) + ["+Inf"], "counts": list(self.counts)}


class _EndpointStats:
    """Rolling latency window per "METHOD /path"."""

    def __init__(self):
        self.count = 0
        self.samples: Deque[float] = deque(maxlen=SAMPLES_PER_ENDPOINT)

    def add(self, ms: float) -> None:
        self.count += 1
        self.samples.append(ms)

    def summary(self) -> Dict[str, float]:
        xs = sorted(self.samples)
        return {
            "count": float(self.count),
            "avg_latency_ms": sum(xs) / len(xs) if xs else 0.0,
            "p95_latency_ms": xs[int(0.95 * (len(xs) - 1))] if xs else 0.0,
        }


_COUNTER_NAMES = ("requests_total", "rate_limit_hits_total", "cache_hits_total")

_counters: Counter = Counter()
_outcomes: Counter = Counter()
_llm_calls: Dict[str, Counter] = defaultdict(Counter)
_latency = _Histogram(LATENCY_BUCKETS_MS)
_endpoints: Dict[str, _EndpointStats] = defaultdict(_EndpointStats)


def record_request(latency_ms: int) -> None:
    with _lock:
        _counters["requests_total"] += 1
        _latency.observe(int(latency_ms))


def record_outcome(outcome: str) -> None:
    """One per engine call: recommendations, ranking_fallback, missing_item, general_chat, cache_hit, rejected or error."""
    with _lock:
        _outcomes[outcome] += 1
        if outcome == "cache_hit":
            _counters["cache_hits_total"] += 1


def record_llm_call(provider: str, outcome: str) -> None:
    # outcome is one of success / rate_limited / failed / invalid
    with _lock:
        _llm_calls[provider][outcome] += 1


def record_rate_limit_hit() -> None:
    with _lock:
        _counters["rate_limit_hits_total"] += 1


def record_endpoint(method: str, path: str, latency_ms: float) -> None:
    with _lock:
        _endpoints[f"{method.upper()} {path}"].add(float(latency_ms))


def snapshot() -> Dict[str, Any]:
    with _lock:
        return {
            "counters": {name: _counters[name] for name in _COUNTER_NAMES},
            "outcomes": dict(_outcomes),
            "llm_calls": {p: dict(c) for p, c in _llm_calls.items()},
            "latency_ms": _latency.as_dict(),
            "performance": {
                "endpoints": {k: s.summary() for k, s in _endpoints.items()},
                "generated_at": time.time(),
            },
        }


def reset() -> None:
    global _latency
    with _lock:
        _counters.clear()
        _outcomes.clear()
        _llm_calls.clear()
        _endpoints.clear()
        _latency = _Histogram(LATENCY_BUCKETS_MS)
