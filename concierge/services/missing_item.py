# =============================================
# File: concierge/services/missing_item.py
# Purpose: Decide between logging a "wanted item" request and asking a clarifying question
# =============================================
from __future__ import annotations
from dataclasses import dataclass
from typing import Literal, Optional, Sequence

from loguru import logger

from concierge.services.ai_config import AISettings
from concierge.services.errors import LLMError, PromptError
from concierge.services.llm import LLMService
from concierge.services.prompt_registry import PromptRegistry
from concierge.services.schemas import IntentAnalysis, Message, WantedItem, to_number
from concierge.utils.sanitize import clean_reply, format_history


@dataclass
class MissingItemDecision:
    action: Literal["request", "ask_details"]
    response: str
    request: Optional[WantedItem] = None


def best_guess_name(query: str, intent: IntentAnalysis) -> str:
    if intent.wanted_item and intent.wanted_item.name:
        return intent.wanted_item.name
    return intent.category or intent.subcategory or query


def fallback_decision(settings: AISettings, product_name: str) -> MissingItemDecision:
    return MissingItemDecision(
        action="ask_details",
        response=(
            f"Hi, I'm {settings.persona_name}. We don't currently have \"{product_name}\" in stock, "
            "but I'd love to help you get it! Could you share your preferred budget and any details "
            "(size, brand, specifications) so I can request it for you?"
        ),
    )


async def handle_missing_item(
    llm: LLMService,
    registry: PromptRegistry,
    settings: AISettings,
    query: str,
    intent: IntentAnalysis,
    messages: Optional[Sequence[Message]] = None,
) -> MissingItemDecision:
    """Never raises for LLM or prompt failures: the conversation must not dead-end."""
    product_name = best_guess_name(query, intent)
    history = format_history(messages or [])

    try:
        prompt = await registry.get_prompt(
            "missing-product",
            {
                "system_prompt": settings.system_prompt,
                "persona": settings.persona_name,
                "history": f"Conversation history:\n{history}\n\n" if history else "",
                "query": query,
                "product_name": product_name,
            },
        )
        raw = await llm.call_llm_for_json(prompt)
    except (LLMError, PromptError) as e:
        logger.error(f"[MissingItem] LLM decision failed, asking for details instead: {e}")
        return fallback_decision(settings, product_name)

    if not isinstance(raw, dict):
        logger.warning("[MissingItem] Decision was not a JSON object, asking for details instead")
        return fallback_decision(settings, product_name)

    response = clean_reply(str(raw.get("response") or ""))
    data = raw.get("requestData")

    if raw.get("action") == "request" and isinstance(data, dict):
        budget = to_number(data.get("maxBudget"))
        specs = data.get("specifications")
        item = WantedItem(
            name=str(data.get("name") or "").strip() or product_name,
            category=str(data.get("category")).strip() if data.get("category") else None,
            max_budget=budget if budget is not None else 0.0,
            specifications=[str(s) for s in specs if str(s).strip()] if isinstance(specs, list) else [],
        )
        if not response:
            response = f"I've noted your request for {item.name}. We'll let you know as soon as we can source it."
        return MissingItemDecision(action="request", response=response, request=item)

    if not response:
        return fallback_decision(settings, product_name)
    return MissingItemDecision(action="ask_details", response=response)
