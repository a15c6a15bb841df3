# =============================================
# File: concierge/routers/metrics.py
# Purpose: Expose in-process request / LLM / outcome metrics as JSON
# =============================================
from __future__ import annotations
from fastapi import APIRouter, Depends

from concierge.services.container import get_llm
from concierge.services.llm import LLMService
from concierge.utils.metrics import snapshot

router = APIRouter(tags=["metrics"])

@router.get("/metrics")
def get_metrics(llm: LLMService = Depends(get_llm)):
    """Counters and latency histogram, plus how many keys the pool currently holds."""
    data = snapshot()
    data["key_pool"] = {"total_keys": llm.pool.key_count()}
    return data
