# =============================================
# File: concierge/services/llm.py
# Purpose: Provider routing (fast -> fallback) and JSON-expecting calls with one strict retry
# =============================================
from __future__ import annotations
from typing import Any, List, Optional, Sequence

from loguru import logger

from concierge.services.ai_config import AIConfigLoader
from concierge.services.catalog import KeySource
from concierge.services.errors import ResponseParseFailed
from concierge.services.key_pool import KeyPool, Provider
from concierge.services.providers import CallOptions, ProviderCaller
from concierge.utils.json_extract import extract_json

STRICT_JSON_SUFFIX = (
    "\n\nIMPORTANT: You MUST respond with ONLY a valid JSON object. "
    "No explanation text before or after. No markdown. Just the raw JSON."
)


class LLMService:
    """
    Facade over an ordered list of provider callers (fast first, fallback last).

    A caller whose provider has no configured keys is skipped, unless it is the
    last one: then its KeyPoolExhausted is what the caller sees. Any failure of
    an earlier caller moves on to the next; there is no retry beyond the end
    of the chain.
    """

    def __init__(
        self,
        pool: KeyPool,
        callers: Sequence[ProviderCaller],
        config: Optional[AIConfigLoader] = None,
        key_source: Optional[KeySource] = None,
    ) -> None:
        if not callers:
            raise ValueError("LLMService needs at least one provider caller")
        self._pool = pool
        self._callers: List[ProviderCaller] = list(callers)
        self._config = config or AIConfigLoader()
        self._key_source = key_source

    @property
    def pool(self) -> KeyPool:
        return self._pool

    @property
    def callers(self) -> List[ProviderCaller]:
        return list(self._callers)

    async def refresh_keys(self, force: bool = False) -> bool:
        """Pull operator-managed keys when the pool says it is stale. Returns True if the pool changed."""
        if self._key_source is None:
            return False
        if not force and not self._pool.needs_refresh():
            return False
        try:
            records = await self._key_source.get_api_keys()
        except Exception as e:
            logger.error(f"[LLMService] Could not load keys from store, keeping current pool: {e}")
            return False
        return self._pool.load_dynamic_keys(records)

    def _chain(self, preferred: Optional[Provider | str]) -> List[ProviderCaller]:
        if preferred is None:
            return list(self._callers)
        preferred = Provider(preferred)
        first = [c for c in self._callers if c.provider == preferred]
        rest = [c for c in self._callers if c.provider != preferred]
        return first + rest

    async def call_llm(self, prompt: str, provider: Optional[Provider | str] = None, model: Optional[str] = None) -> str:
        await self.refresh_keys()
        settings = await self._config.get()
        if provider is None and settings.provider_priority != "auto":
            provider = settings.provider_priority
        options = CallOptions(temperature=settings.temperature, max_tokens=settings.max_tokens)

        chain = self._chain(provider)
        first = chain[0]
        for nxt, caller in zip(chain[1:], chain[:-1]):
            if not self._pool.has_keys(caller.provider):
                logger.debug(f"[LLMService] No {caller.label} keys configured, going to {nxt.label}")
                continue
            try:
                return await caller.complete(prompt, model if caller is first else None, options)
            except Exception as e:
                logger.warning(f"[LLMService] {caller.label} failed, falling back to {nxt.label}: {e}")

        last = chain[-1]
        return await last.complete(prompt, model if last is first else None, options)

    async def call_llm_for_json(
        self, prompt: str, provider: Optional[Provider | str] = None, model: Optional[str] = None
    ) -> Any:
        text = await self.call_llm(prompt, provider, model)
        try:
            return extract_json(text)
        except ResponseParseFailed:
            logger.warning("[LLMService] JSON parse failed on first attempt, retrying with stricter prompt")

        retry_text = await self.call_llm(prompt + STRICT_JSON_SUFFIX, provider, model)
        return extract_json(retry_text)
