# =============================================
# File: concierge/services/prompt_registry.py
# Purpose: Defaults overlaid by operator overrides, 60s cache, {{placeholder}} rendering
# =============================================
from __future__ import annotations
import re
from typing import Dict, Mapping, Optional

from loguru import logger

from concierge.services.catalog import PromptStore
from concierge.services.errors import PromptDisabled, PromptNotFound
from concierge.services.prompt_defaults import DEFAULT_PROMPTS
from concierge.services.schemas import PromptTemplate
from concierge.utils.caching import TTLValue

REGISTRY_TTL_S = 60.0

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_.]*)\s*\}\}")


def render(template: str, variables: Optional[Mapping[str, object]] = None) -> str:
    """
    Replace every {{key}} with str(variables[key]) in a single pass.
    Substituted values are never re-scanned; unknown placeholders stay untouched.
    """
    if not variables:
        return template

    def _sub(m: re.Match) -> str:
        name = m.group(1)
        if name in variables:
            return str(variables[name])
        return m.group(0)

    return _PLACEHOLDER_RE.sub(_sub, template)


class PromptRegistry:
    def __init__(self, store: Optional[PromptStore] = None, ttl: float = REGISTRY_TTL_S) -> None:
        self._store = store
        self._cache: TTLValue[Dict[str, PromptTemplate]] = TTLValue(ttl)

    async def all(self) -> Dict[str, PromptTemplate]:
        cached = self._cache.get()
        if cached is not None:
            return cached

        if self._store is None:
            merged = dict(DEFAULT_PROMPTS)
            self._cache.set(merged)
            return merged

        try:
            overrides = await self._store.get_prompts()
        except Exception as e:
            logger.error(f"[PromptRegistry] Error loading prompt overrides, using defaults: {e}")
            return dict(DEFAULT_PROMPTS)

        merged = dict(DEFAULT_PROMPTS)
        for p in overrides:
            if p.id in merged:
                merged[p.id] = p
            else:
                logger.warning(f"[PromptRegistry] Ignoring unknown prompt id from store: {p.id}")
        self._cache.set(merged)
        return merged

    async def get_prompt(self, prompt_id: str, variables: Optional[Mapping[str, object]] = None) -> str:
        registry = await self.all()
        prompt = registry.get(prompt_id)
        if prompt is None:
            raise PromptNotFound(prompt_id)
        if not prompt.is_active:
            raise PromptDisabled(prompt_id)
        return render(prompt.template, variables)

    def invalidate(self) -> None:
        """Hook for the admin save path: the next get_prompt() re-reads the store."""
        self._cache.clear()
