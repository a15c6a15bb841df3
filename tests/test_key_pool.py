# =============================================
# File: tests/test_key_pool.py
# Purpose: Key selection, cooldowns, invalid keys, dynamic merge and the health snapshot
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import pytest

from concierge.services.errors import KeyPoolExhausted
from concierge.services.key_pool import (
    ERROR_COOLDOWN_S,
    RATE_LIMIT_COOLDOWN_S,
    KeyInfo,
    KeyPool,
    Provider,
    keys_from_rows,
    mask_key,
)

ENV = {
    "GROQ_API_KEY": "gsk_first_0000000001",
    "GROQ_API_KEY_1": "gsk_second_000000002",
    "GEMINI_API_KEY": "AIza_gemini_00000003",
}


def _pool(clock, env=None):
    pool = KeyPool(clock=clock, environ=dict(ENV if env is None else env))
    pool.initialize()
    return pool


def test_initialize_reads_env_slots_and_is_idempotent(clock):
    pool = _pool(clock)
    assert pool.key_count() == 3
    pool.initialize()
    assert pool.key_count() == 3
    assert pool.has_keys(Provider.GROQ) and pool.has_keys("google")


def test_duplicate_env_secret_counted_once(clock):
    pool = _pool(clock, {"GROQ_API_KEY": "gsk_same_00000000", "GROQ_API_KEY_2": "gsk_same_00000000"})
    assert pool.key_count() == 1


def test_selection_is_sticky_first_healthy(clock):
    pool = _pool(clock)
    assert pool.get_active_key("groq") == ENV["GROQ_API_KEY"]
    pool.mark_success(ENV["GROQ_API_KEY"])
    assert pool.get_active_key("groq") == ENV["GROQ_API_KEY"]


def test_rate_limited_key_skipped_until_cooldown_expires(clock):
    pool = _pool(clock)
    first, second = ENV["GROQ_API_KEY"], ENV["GROQ_API_KEY_1"]
    pool.mark_rate_limited(first)
    assert pool.get_active_key("groq") == second

    clock.advance(RATE_LIMIT_COOLDOWN_S - 1)
    assert pool.get_active_key("groq") == second

    # Both in cooldown: the expired one self-heals
    pool.mark_rate_limited(second)
    clock.advance(2)
    assert pool.get_active_key("groq") == first
    snap = {k["masked_key"]: k for k in pool.get_health_snapshot()["keys"]}
    assert snap[mask_key(first)]["rate_limited"] is False
    assert snap[mask_key(first)]["consecutive_errors"] == 0


def test_three_consecutive_failures_trigger_cooldown(clock):
    pool = _pool(clock)
    first = ENV["GROQ_API_KEY"]
    pool.mark_failed(first)
    pool.mark_failed(first)
    assert pool.get_active_key("groq") == first
    pool.mark_failed(first)
    assert pool.get_active_key("groq") == ENV["GROQ_API_KEY_1"]
    clock.advance(ERROR_COOLDOWN_S + 1)
    # cooldown over, and first key is first in order again
    pool.mark_rate_limited(ENV["GROQ_API_KEY_1"])
    assert pool.get_active_key("groq") == first


def test_success_resets_consecutive_errors(clock):
    pool = _pool(clock)
    first = ENV["GROQ_API_KEY"]
    pool.mark_failed(first)
    pool.mark_failed(first)
    pool.mark_success(first)
    pool.mark_failed(first)
    assert pool.get_active_key("groq") == first


def test_invalid_key_never_selected_again(clock):
    pool = _pool(clock)
    gem = ENV["GEMINI_API_KEY"]
    pool.mark_invalid(gem)
    with pytest.raises(KeyPoolExhausted):
        pool.get_active_key("google")
    clock.advance(24 * 3600)
    with pytest.raises(KeyPoolExhausted):
        pool.get_active_key("google")


def test_no_keys_for_provider_raises(clock):
    pool = _pool(clock, {"GROQ_API_KEY": "gsk_only_000000000"})
    with pytest.raises(KeyPoolExhausted) as ei:
        pool.get_active_key(Provider.GOOGLE)
    assert ei.value.provider == "google"


def test_dynamic_keys_take_precedence_and_dedupe(clock):
    pool = _pool(clock)
    changed = pool.load_dynamic_keys([
        KeyInfo(key="gsk_dynamic_0000000009", provider=Provider.GROQ, id="db-1"),
        KeyInfo(key=ENV["GROQ_API_KEY_1"], provider=Provider.GROQ, id="db-2"),
    ])
    assert changed is True
    assert pool.key_count() == 4
    assert pool.get_active_key("groq") == "gsk_dynamic_0000000009"
    ids = [k["id"] for k in pool.get_health_snapshot()["keys"]]
    assert "db-2" in ids  # store record wins over the env record with the same secret


def test_unchanged_dynamic_set_is_a_noop_but_stamps_load_time(clock):
    pool = _pool(clock)
    recs = [KeyInfo(key="gsk_dynamic_0000000009", provider=Provider.GROQ, id="db-1")]
    assert pool.load_dynamic_keys(recs) is True
    pool.mark_failed("gsk_dynamic_0000000009")
    clock.advance(120)
    assert pool.needs_refresh() is True
    assert pool.load_dynamic_keys(recs) is False
    assert pool.needs_refresh() is False
    rec = next(k for k in pool.get_health_snapshot()["keys"] if k["id"] == "db-1")
    assert rec["error_count"] == 1


def test_rebuild_keeps_health_state_of_surviving_keys(clock):
    pool = _pool(clock)
    pool.mark_rate_limited(ENV["GROQ_API_KEY"])
    pool.load_dynamic_keys([KeyInfo(key="gsk_dynamic_0000000009", provider=Provider.GROQ)])
    snap = {k["masked_key"]: k for k in pool.get_health_snapshot()["keys"]}
    assert snap[mask_key(ENV["GROQ_API_KEY"])]["rate_limited"] is True


def test_invalidate_cache_forces_refresh(clock):
    pool = _pool(clock)
    pool.load_dynamic_keys([])
    assert pool.needs_refresh() is False
    pool.invalidate_cache()
    assert pool.needs_refresh() is True


def test_snapshot_masks_secrets(clock):
    pool = _pool(clock)
    pool.get_active_key("groq")
    snap = pool.get_health_snapshot()
    assert snap["total_keys"] == 3
    dumped = repr(snap)
    for secret in ENV.values():
        assert secret not in dumped
    first = snap["keys"][0]
    assert first["is_active"] is True
    assert first["masked_key"] == "gsk_****0001"
    assert snap["active_index"]["groq"] == first["index"]


def test_snapshot_reports_cooldown_remaining(clock):
    pool = _pool(clock)
    pool.mark_rate_limited(ENV["GROQ_API_KEY"])
    clock.advance(10.5)
    rec = pool.get_health_snapshot()["keys"][0]
    assert rec["is_healthy"] is False
    assert rec["cooldown_remaining"] == 50


def test_mask_key_short_values():
    assert mask_key("abc") == "****"


def test_keys_from_rows_skips_unknown_providers():
    out = keys_from_rows([
        {"id": "a", "provider": "groq", "key": " gsk_x "},
        {"id": "b", "provider": "anthropic", "key": "x"},
        {"id": "c", "provider": "google", "key": ""},
    ])
    assert [(k.id, k.key) for k in out] == [("a", "gsk_x")]
