# concierge/routers/recommend.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from concierge.services.container import get_engine
from concierge.services.recommender import RecommendationEngine
from concierge.services.schemas import RecommendationRequest, RecommendationResponse
from concierge.utils import slog
from concierge.utils.metrics import record_rate_limit_hit
from concierge.utils.ratelimit import RateLimitExceeded, check_rate_limit

router = APIRouter(tags=["recommend"])


def _client_key(request: Request) -> str:
    """Rate-limit bucket: explicit user header, else client IP."""
    return request.headers.get("X-User-ID") or (request.client.host if request.client else "anon")


@router.post("/recommend", response_model=RecommendationResponse)
async def post_recommend(
    req: RecommendationRequest,
    request: Request,
    engine: RecommendationEngine = Depends(get_engine),
) -> RecommendationResponse:
    """
    Conversational product recommendations.

    Always 200 with `success` true/false once past the rate limiter; engine
    failures are reported in the body, not as HTTP errors.
    """
    try:
        check_rate_limit(_client_key(request))
    except RateLimitExceeded as e:
        record_rate_limit_hit()
        request.state.log_context = {"qhash": slog.qhash(req.query), "rate_limited": True}
        raise HTTPException(
            status_code=429, detail="Too Many Requests", headers={"Retry-After": str(e.retry_after)}
        )

    response, outcome = await engine.recommend(req)

    request.state.log_context = slog.recommend_context(req.query, outcome, response)
    return response
