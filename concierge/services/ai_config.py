# =============================================
# File: concierge/services/ai_config.py
# Purpose: Operator-editable AI feature settings, cached 60s with hardcoded fallback
# =============================================
from __future__ import annotations
from typing import Literal, Optional

from loguru import logger
from pydantic import BaseModel, Field

from concierge.services.catalog import SettingsSource
from concierge.utils.caching import TTLValue

CONFIG_TTL_S = 60.0


class AISettings(BaseModel):
    enabled: bool = True
    max_recommendations: int = Field(5, ge=1, le=50)
    temperature: float = Field(0.7, ge=0.0, le=2.0)
    max_tokens: int = Field(2048, ge=1)
    provider_priority: Literal["auto", "groq", "google"] = "auto"
    persona_name: str = "Genie"
    greeting: str = "Hi, I'm Genie, your personal shopping assistant! How can I help you today?"
    system_prompt: str = (
        "You are Genie, a friendly and knowledgeable shopping assistant for a construction and "
        "home-improvement store. You help customers find the right materials, fixtures and tools, "
        "compare options within their budget, and explain trade-offs clearly. Be concise and honest. "
        "Reply in the customer's language (English, Hindi or Hinglish)."
    )
    enable_product_requests: bool = True


class AIConfigLoader:
    def __init__(self, source: Optional[SettingsSource] = None, ttl: float = CONFIG_TTL_S) -> None:
        self._source = source
        self._cache: TTLValue[AISettings] = TTLValue(ttl)

    async def get(self) -> AISettings:
        cached = self._cache.get()
        if cached is not None:
            return cached

        settings: Optional[AISettings] = None
        if self._source is not None:
            try:
                settings = await self._source.get_ai_settings()
            except Exception as e:
                logger.error(f"[AIConfig] Failed to load settings, using defaults: {e}")
        if settings is None:
            settings = AISettings()
        self._cache.set(settings)
        return settings

    def invalidate(self) -> None:
        self._cache.clear()
        logger.info("[AIConfig] Cache invalidated; next call fetches fresh settings")
