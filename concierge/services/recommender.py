# =============================================
# File: concierge/services/recommender.py
# Purpose: Recommendation engine: intent -> catalog query -> rank/summarize (or missing-item / chit-chat)
# =============================================
from __future__ import annotations
import os
from typing import List, Optional, Sequence, Set, Tuple

from loguru import logger

from concierge.services.ai_config import AIConfigLoader, AISettings
from concierge.services.catalog import CatalogReader, Category, Product, ProductRequestIn, RequestSink
from concierge.services.chat import chat_with_assistant
from concierge.services.errors import LLMError, PromptError
from concierge.services.intent import analyze_intent
from concierge.services.llm import LLMService
from concierge.services.missing_item import best_guess_name, fallback_decision, handle_missing_item
from concierge.services.prompt_registry import PromptRegistry
from concierge.services.ranking import NO_MATCH_SUMMARY, Ranking, rank_and_summarize
from concierge.services.schemas import (
    IntentAnalysis,
    ProductMatch,
    RecommendationRequest,
    RecommendationResponse,
    RequestContext,
    WantedItem,
)
from concierge.utils import rcache
from concierge.utils.metrics import record_outcome
from concierge.utils.timing import Stopwatch

DEFAULT_MAX_RESULTS = 5
MAX_PRODUCTS_TO_ANALYZE = int(os.getenv("REC_MAX_ANALYZE", "20"))
FALLBACK_MATCH_SCORE = 70.0

# Used only when the caller does not echo `missing_item_flow` back to us.
_MISSING_FLOW_CUES = ("don't have", "don’t have", "request")


def filter_candidates(
    products: Sequence[Product],
    budget_min: Optional[float] = None,
    budget_max: Optional[float] = None,
    exclude_ids: Sequence[str] = (),
) -> List[Product]:
    """Inclusive budget bounds, then explicit exclusions; order is preserved."""
    excluded = set(exclude_ids or ())
    out: List[Product] = []
    for p in products:
        if budget_max is not None and p.price > budget_max:
            continue
        if budget_min is not None and p.price < budget_min:
            continue
        if p.id in excluded:
            continue
        out.append(p)
    return out


def build_recommendations(rankings: Sequence[Ranking], products: Sequence[Product], max_results: int) -> List[ProductMatch]:
    by_id = {p.id: p for p in products}
    matches: List[ProductMatch] = []
    for r in rankings:
        product = by_id.get(r.product_id)
        if product is None:
            continue
        matches.append(
            ProductMatch(
                product=product,
                match_score=r.match_score,
                highlights=r.highlights,
                why_recommended=r.why_recommended,
            )
        )
        if len(matches) >= max_results:
            break
    return matches


def fallback_matches(products: Sequence[Product], max_results: int) -> List[ProductMatch]:
    """Deterministic stand-in for the LLM ranking: catalog order, neutral score."""
    out: List[ProductMatch] = []
    for p in products[:max_results]:
        highlight = (p.description or "")[:60].strip() or p.name
        out.append(
            ProductMatch(
                product=p,
                match_score=FALLBACK_MATCH_SCORE,
                highlights=[highlight],
                why_recommended=f"This {p.name} might be what you're looking for.",
            )
        )
    return out


def in_missing_item_flow(request: RecommendationRequest) -> bool:
    ctx = request.context
    if ctx is not None and ctx.missing_item_flow is not None:
        return ctx.missing_item_flow
    last = next((m for m in reversed(request.messages) if m.role == "assistant"), None)
    if last is None:
        return False
    text = last.content.lower()
    return any(cue in text for cue in _MISSING_FLOW_CUES)


class RecommendationEngine:
    """
    Per-request pipeline. Nothing request-scoped is stored on the instance;
    the only shared state is the response cache and what the injected services hold.
    """

    def __init__(
        self,
        llm: LLMService,
        registry: PromptRegistry,
        config: AIConfigLoader,
        catalog: CatalogReader,
        request_sink: RequestSink,
    ) -> None:
        self._llm = llm
        self._registry = registry
        self._config = config
        self._catalog = catalog
        self._sink = request_sink

    async def get_recommendations(self, request: RecommendationRequest) -> RecommendationResponse:
        response, _ = await self.recommend(request)
        return response

    async def recommend(self, request: RecommendationRequest) -> Tuple[RecommendationResponse, str]:
        """Same contract as get_recommendations, plus the outcome label used by metrics and request logs."""
        watch = Stopwatch()
        try:
            response, outcome = await self._run(request, watch)
        except PromptError as e:
            logger.error(f"[RecommendationEngine] Prompt configuration error: {e}")
            response = RecommendationResponse(success=False, error=str(e), processing_time=watch.ms())
            outcome = "error"
        except LLMError as e:
            logger.error(f"[RecommendationEngine] LLM unavailable: {e}")
            response = RecommendationResponse(
                success=False,
                error="The assistant is temporarily unavailable. Please try again in a moment.",
                processing_time=watch.ms(),
            )
            outcome = "error"
        except Exception as e:
            logger.exception(f"[RecommendationEngine] Unexpected error: {e}")
            response = RecommendationResponse(
                success=False, error="An unexpected error occurred", processing_time=watch.ms()
            )
            outcome = "error"
        record_outcome(outcome)
        return response, outcome

    async def _run(self, request: RecommendationRequest, watch: Stopwatch) -> Tuple[RecommendationResponse, str]:
        query = (request.query or "").strip()
        if not query:
            return (
                RecommendationResponse(success=False, error="Query is required", processing_time=watch.ms()),
                "rejected",
            )

        settings = await self._config.get()
        if not settings.enabled:
            return (
                RecommendationResponse(
                    success=False, error="The AI assistant is currently disabled", processing_time=watch.ms()
                ),
                "rejected",
            )

        max_results = request.max_results or settings.max_recommendations or DEFAULT_MAX_RESULTS
        ctx = request.context or RequestContext()

        cache_key = rcache.make_key(query, {"context": ctx.model_dump(), "max_results": max_results})
        cached = rcache.get(cache_key)
        if cached is not None:
            return cached.model_copy(update={"processing_time": watch.ms()}), "cache_hit"

        categories = await self._catalog.get_categories()
        intent = await analyze_intent(self._llm, self._registry, query, categories, request.messages)
        logger.debug(f"[RecommendationEngine] intent={intent.model_dump()}")

        if intent.is_general_chat:
            summary = await self._chat(query, request, settings)
            response = RecommendationResponse(success=True, intent=intent, summary=summary, processing_time=watch.ms())
            return response, "general_chat"

        if intent.wanted_item is not None:
            return await self._missing_item(query, intent, request, settings, watch), "missing_item"

        category_id, subcategory_id = _resolve_scope(intent, ctx, categories)
        prevent_fallback = in_missing_item_flow(request) and not (category_id or subcategory_id)
        candidates = await self._query_products(category_id, subcategory_id, intent, ctx, prevent_fallback)

        if not candidates:
            # An empty shelf is itself a hint that the customer wants something we don't stock.
            return await self._missing_item(query, intent, request, settings, watch), "missing_item"

        recommendations, summary, outcome = await self._rank(query, candidates, intent, settings, max_results)
        response = RecommendationResponse(
            success=True,
            intent=intent,
            recommendations=recommendations,
            summary=summary,
            processing_time=watch.ms(),
        )
        if outcome == "recommendations" and recommendations:
            rcache.set(cache_key, response)
        return response, outcome

    # ---------- steps ----------

    async def _chat(self, query: str, request: RecommendationRequest, settings: AISettings) -> str:
        try:
            reply = await chat_with_assistant(self._llm, self._registry, settings, query, request.messages)
        except (LLMError, PromptError) as e:
            logger.warning(f"[RecommendationEngine] General chat failed, answering with greeting: {e}")
            return settings.greeting
        return reply.reply

    async def _missing_item(
        self,
        query: str,
        intent: IntentAnalysis,
        request: RecommendationRequest,
        settings: AISettings,
        watch: Stopwatch,
    ) -> RecommendationResponse:
        try:
            decision = await handle_missing_item(
                self._llm, self._registry, settings, query, intent, request.messages
            )
        except Exception as e:
            logger.exception(f"[RecommendationEngine] Missing-item handler crashed: {e}")
            decision = fallback_decision(settings, best_guess_name(query, intent))

        if decision.action == "request" and decision.request is not None:
            await self._log_request(decision.request, settings)

        return RecommendationResponse(
            success=True,
            intent=intent,
            summary=decision.response,
            awaiting_item_details=True,
            processing_time=watch.ms(),
        )

    async def _log_request(self, item: WantedItem, settings: AISettings) -> None:
        if not settings.enable_product_requests:
            logger.info(f"[RecommendationEngine] Product requests disabled; not logging '{item.name}'")
            return
        payload = ProductRequestIn(
            product_name=item.name,
            brand="",
            description=f"Category: {item.category or 'N/A'}. Specs: {', '.join(item.specifications) or 'None'}",
            min_price=0,
            max_price=item.max_budget or 0,
            image_url="",
            contact_info="Auto-generated from recommendation engine",
        )
        logger.info(f"[RecommendationEngine] Logging product request: {payload.product_name}")
        try:
            result = await self._sink.create_product_request(payload)
        except Exception as e:
            logger.error(f"[RecommendationEngine] Could not save product request: {e}")
            return
        if not result.success:
            logger.warning(f"[RecommendationEngine] Product request rejected: {result.error}")

    async def _query_products(
        self,
        category_id: Optional[str],
        subcategory_id: Optional[str],
        intent: IntentAnalysis,
        ctx: RequestContext,
        prevent_fallback: bool,
    ) -> List[Product]:
        if subcategory_id:
            products = await self._catalog.get_products(subcategory_id=subcategory_id, available_only=True)
            products = [p for p in products if p.subcategory_id == subcategory_id]
        elif category_id:
            products = await self._catalog.get_products(category_id=category_id, available_only=True)
        elif prevent_fallback:
            logger.info("[RecommendationEngine] Mid missing-item flow without a category; not browsing all products")
            products = []
        else:
            products = await self._catalog.get_products(available_only=True)

        budget_max = ctx.budget if ctx.budget is not None else intent.budget.max
        return filter_candidates(
            [p for p in products if p.available],
            budget_min=intent.budget.min,
            budget_max=budget_max,
            exclude_ids=ctx.exclude_product_ids,
        )

    async def _rank(
        self,
        query: str,
        candidates: List[Product],
        intent: IntentAnalysis,
        settings: AISettings,
        max_results: int,
    ) -> Tuple[List[ProductMatch], str, str]:
        to_rank = candidates[:MAX_PRODUCTS_TO_ANALYZE]
        try:
            ranked = await rank_and_summarize(self._llm, self._registry, settings, query, to_rank, intent)
        except Exception as e:
            logger.warning(f"[RecommendationEngine] rank_and_summarize failed, using fallback: {e}")
            return (
                fallback_matches(candidates, max_results),
                f"I found {len(candidates)} products that might interest you. Here are my top picks:",
                "ranking_fallback",
            )

        matches = build_recommendations(ranked.rankings, to_rank, max_results)
        summary = ranked.summary or ("Here are my top picks for you:" if matches else NO_MATCH_SUMMARY)
        return matches, summary, "recommendations"


def _known_id(value: Optional[str], known: Set[str]) -> Optional[str]:
    if not value:
        return None
    if value in known:
        return value
    logger.warning(f"[RecommendationEngine] Ignoring unknown category id from intent: {value!r}")
    return None


def _resolve_scope(
    intent: IntentAnalysis, ctx: RequestContext, categories: Sequence[Category]
) -> Tuple[Optional[str], Optional[str]]:
    """(category_id, subcategory_id) to browse; ids the catalog does not know are dropped."""
    known: Set[str] = {c.id for c in categories}
    return ctx.category_id or _known_id(intent.category, known), _known_id(intent.subcategory, known)
