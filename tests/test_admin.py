# =============================================
# File: tests/test_admin.py
# Purpose: Operator endpoints against an in-memory SQL store
# =============================================
import sys, os
import asyncio
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import pytest
from fastapi.testclient import TestClient

from concierge.db.repo import SqlStore, init_db, make_engine
from concierge.main import app
from concierge.services.ai_config import AIConfigLoader
from concierge.services.container import get_config, get_llm, get_registry, get_store
from concierge.services.key_pool import KeyPool
from concierge.services.llm import LLMService
from concierge.services.prompt_registry import PromptRegistry
from concierge.services.providers import GeminiCaller, GroqCaller


@pytest.fixture
def wired(monkeypatch, clock):
    monkeypatch.delenv("ADMIN_TOKEN", raising=False)
    bind = make_engine("sqlite://")
    init_db(bind)
    store = SqlStore(bind)
    pool = KeyPool(clock=clock, environ={"GROQ_API_KEY": "gsk_env_key_000001"})
    pool.initialize()
    config = AIConfigLoader(store)
    registry = PromptRegistry(store)
    llm = LLMService(pool, [GroqCaller(pool), GeminiCaller(pool)], config=config, key_source=store)

    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_config] = lambda: config
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_llm] = lambda: llm
    yield TestClient(app), store, pool
    app.dependency_overrides.clear()


def test_keys_snapshot_is_masked(wired):
    client, _, _ = wired
    data = client.get("/admin/keys").json()
    assert data["total_keys"] == 1
    assert data["keys"][0]["masked_key"] == "gsk_****0001"
    assert "gsk_env_key_000001" not in str(data)

def test_reload_pulls_store_keys(wired):
    client, store, pool = wired
    asyncio.run(store.add_api_key("google", "AIza_from_store_0001", key_id="db-gem"))
    r = client.post("/admin/keys/reload")
    assert r.status_code == 200
    assert r.json() == {"changed": True, "total_keys": 2}
    assert pool.has_keys("google")

def test_prompts_listing_and_override(wired):
    client, _, _ = wired
    ids = {p["id"] for p in client.get("/admin/prompts").json()}
    assert ids == {"intent-analyze", "rank-summarize", "missing-product", "general-chat"}

    r = client.put("/admin/prompts/general-chat", json={"template": "Be brief. {{message}}"})
    assert r.status_code == 200
    body = r.json()
    assert body["template"] == "Be brief. {{message}}"
    assert body["name"] == "General Chat Assistant"

    listed = {p["id"]: p for p in client.get("/admin/prompts").json()}
    assert listed["general-chat"]["template"] == "Be brief. {{message}}"

def test_unknown_prompt_id_is_404(wired):
    client, _, _ = wired
    r = client.put("/admin/prompts/does-not-exist", json={"template": "x"})
    assert r.status_code == 404

def test_settings_roundtrip_invalidates_cache(wired):
    client, _, _ = wired
    assert client.get("/admin/settings").json()["persona_name"] == "Genie"
    r = client.put("/admin/settings", json={"persona_name": "Asha", "provider_priority": "google"})
    assert r.status_code == 200
    data = client.get("/admin/settings").json()
    assert data["persona_name"] == "Asha"
    assert data["provider_priority"] == "google"

def test_settings_validation(wired):
    client, _, _ = wired
    r = client.put("/admin/settings", json={"provider_priority": "openai"})
    assert r.status_code == 422

def test_admin_token_enforced(wired, monkeypatch):
    client, _, _ = wired
    monkeypatch.setenv("ADMIN_TOKEN", "s3cret")
    assert client.get("/admin/keys").status_code == 401
    assert client.get("/admin/keys", headers={"X-Admin-Token": "s3cret"}).status_code == 200
