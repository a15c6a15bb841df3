# =============================================
# File: concierge/services/container.py
# Purpose: Composition root: one key pool / store / registry / engine per process
# =============================================
from __future__ import annotations
from functools import lru_cache

from concierge.db.repo import SqlStore
from concierge.services.ai_config import AIConfigLoader
from concierge.services.key_pool import KeyPool
from concierge.services.llm import LLMService
from concierge.services.prompt_registry import PromptRegistry
from concierge.services.providers import GeminiCaller, GroqCaller
from concierge.services.recommender import RecommendationEngine


@lru_cache(maxsize=1)
def get_key_pool() -> KeyPool:
    pool = KeyPool()
    pool.initialize()
    return pool


@lru_cache(maxsize=1)
def get_store() -> SqlStore:
    return SqlStore()


@lru_cache(maxsize=1)
def get_config() -> AIConfigLoader:
    return AIConfigLoader(source=get_store())


@lru_cache(maxsize=1)
def get_registry() -> PromptRegistry:
    return PromptRegistry(store=get_store())


@lru_cache(maxsize=1)
def get_llm() -> LLMService:
    pool = get_key_pool()
    # order = fallback chain: fast provider first
    callers = [GroqCaller(pool), GeminiCaller(pool)]
    return LLMService(pool, callers, config=get_config(), key_source=get_store())


@lru_cache(maxsize=1)
def get_engine() -> RecommendationEngine:
    store = get_store()
    return RecommendationEngine(
        llm=get_llm(),
        registry=get_registry(),
        config=get_config(),
        catalog=store,
        request_sink=store,
    )
