# =============================================
# File: concierge/services/ranking.py
# Purpose: Rank candidate products AND write the reply summary in one LLM call
# =============================================
from __future__ import annotations
import json
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Set

from loguru import logger

from concierge.services.ai_config import AISettings
from concierge.services.catalog import Product
from concierge.services.errors import ResponseParseFailed
from concierge.services.llm import LLMService
from concierge.services.prompt_registry import PromptRegistry
from concierge.services.schemas import IntentAnalysis, to_number
from concierge.utils.sanitize import clean_reply, sanitize_snippet

NO_MATCH_SUMMARY = (
    "I couldn't find specific products matching your requirements. "
    "Could you tell me a bit more about what you're looking for?"
)


@dataclass
class Ranking:
    product_id: str
    match_score: float
    highlights: List[str] = field(default_factory=list)
    why_recommended: str = ""


@dataclass
class RankedResult:
    rankings: List[Ranking]
    summary: str


def fmt_amount(value: Optional[float]) -> str:
    if value is None:
        return "any"
    return str(int(value)) if float(value).is_integer() else f"{value:.2f}"


def validate_match_score(score: Any) -> float:
    value = to_number(score)
    if value is None:
        return 50.0
    return max(0.0, min(100.0, value))


def validate_rankings(raw: Any, valid_ids: Set[str]) -> List[Ranking]:
    """Drop rankings for ids that are not candidates; normalize the other fields."""
    if not isinstance(raw, list):
        return []
    out: List[Ranking] = []
    hallucinated: List[str] = []
    seen: Set[str] = set()
    for item in raw:
        if not isinstance(item, dict):
            continue
        pid = str(item.get("productId") or "").strip()
        if pid not in valid_ids:
            hallucinated.append(pid)
            continue
        if pid in seen:
            continue
        seen.add(pid)
        highlights = item.get("highlights")
        why = item.get("whyRecommended")
        out.append(
            Ranking(
                product_id=pid,
                match_score=validate_match_score(item.get("matchScore")),
                highlights=[str(h) for h in highlights if str(h).strip()] if isinstance(highlights, list) else [],
                why_recommended=why.strip() if isinstance(why, str) else "",
            )
        )
    if hallucinated:
        logger.warning(f"[Ranking] Filtered out {len(hallucinated)} unknown product id(s): {hallucinated}")
    return out


def _product_list(products: Sequence[Product]) -> str:
    return json.dumps(
        [
            {
                "id": p.id,
                "name": p.name,
                "description": sanitize_snippet(p.description, max_chars=300),
                "price": p.price,
                "tags": p.tags,
            }
            for p in products
        ],
        ensure_ascii=False,
        indent=2,
    )


async def rank_and_summarize(
    llm: LLMService,
    registry: PromptRegistry,
    settings: AISettings,
    query: str,
    candidates: Sequence[Product],
    intent: IntentAnalysis,
) -> RankedResult:
    """
    One call instead of separate rank + summary calls. The caller caps the
    candidate list; nothing is truncated here.
    """
    if not candidates:
        return RankedResult(rankings=[], summary=NO_MATCH_SUMMARY)

    prompt = await registry.get_prompt(
        "rank-summarize",
        {
            "system_prompt": settings.system_prompt,
            "persona": settings.persona_name,
            "query": query,
            "use_case": intent.use_case or "not specified",
            "requirements": ", ".join(intent.requirements) or "none specified",
            "preferences": ", ".join(intent.preferences) or "none specified",
            "budget": f"{fmt_amount(intent.budget.min)} - {fmt_amount(intent.budget.max)}",
            "product_list": _product_list(candidates),
        },
    )
    raw = await llm.call_llm_for_json(prompt)
    if not isinstance(raw, dict):
        raise ResponseParseFailed("Ranking did not return a JSON object", raw=str(raw)[:200])

    rankings = validate_rankings(raw.get("rankings"), {p.id for p in candidates})
    summary = clean_reply(str(raw.get("summary") or ""))
    return RankedResult(rankings=rankings, summary=summary)
