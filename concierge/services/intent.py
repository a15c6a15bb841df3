# =============================================
# File: concierge/services/intent.py
# Purpose: Turn a free-text query (+ history) into a structured IntentAnalysis
# =============================================
from __future__ import annotations
from typing import List, Optional, Sequence

from concierge.services.catalog import Category
from concierge.services.errors import ResponseParseFailed
from concierge.services.llm import LLMService
from concierge.services.prompt_registry import PromptRegistry
from concierge.services.schemas import IntentAnalysis, Message
from concierge.utils.sanitize import format_history


def format_categories(categories: Sequence[Category]) -> str:
    names = {c.id: c.name for c in categories}
    lines: List[str] = []
    for c in categories:
        if c.parent_id:
            parent = names.get(c.parent_id, c.parent_id)
            lines.append(f"- {c.name} (ID: {c.id}, subcategory of {parent})")
        else:
            lines.append(f"- {c.name} (ID: {c.id})")
    return "\n".join(lines) or "(no categories)"


async def analyze_intent(
    llm: LLMService,
    registry: PromptRegistry,
    query: str,
    categories: Sequence[Category],
    messages: Optional[Sequence[Message]] = None,
) -> IntentAnalysis:
    """
    Structural parse only: category ids come back exactly as the model wrote
    them, so callers must check them against the catalog before querying.
    """
    prompt = await registry.get_prompt(
        "intent-analyze",
        {
            "conversation": format_history(messages or []) or "(no previous messages)",
            "category_list": format_categories(categories),
            "query": query,
        },
    )
    raw = await llm.call_llm_for_json(prompt)
    if not isinstance(raw, dict):
        raise ResponseParseFailed("Intent analysis did not return a JSON object", raw=str(raw)[:200])
    return IntentAnalysis.from_llm(raw)
