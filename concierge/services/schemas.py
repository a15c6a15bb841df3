# =============================================
# File: concierge/services/schemas.py
# Purpose: Request/response and intent models shared by the recommendation pipeline
# =============================================
from __future__ import annotations
import re
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from concierge.services.catalog import Product

_NUMBER_RE = re.compile(r"-?\d[\d,]*(?:\.\d+)?")


def to_number(value: Any) -> Optional[float]:
    """Coerce LLM-provided numbers ("1,500", "₹2000", 300) to float; None when not numeric."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        m = _NUMBER_RE.search(value)
        if not m:
            return None
        return float(m.group(0).replace(",", ""))
    return None


def _str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if v is not None and str(v).strip()]


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    if not s or s.lower() in ("null", "none"):
        return None
    return s


class Budget(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None


class WantedItem(BaseModel):
    """Something the customer asked for that the catalog does not plausibly carry."""
    name: str = ""
    category: Optional[str] = None
    max_budget: Optional[float] = None
    specifications: List[str] = Field(default_factory=list)

    @classmethod
    def from_llm(cls, raw: Any) -> Optional["WantedItem"]:
        if not isinstance(raw, dict):
            return None
        return cls(
            name=str(raw.get("name") or "").strip(),
            category=_opt_str(raw.get("category")),
            max_budget=to_number(raw.get("maxBudget")),
            specifications=_str_list(raw.get("specifications")),
        )


class IntentAnalysis(BaseModel):
    category: Optional[str] = None
    subcategory: Optional[str] = None
    requirements: List[str] = Field(default_factory=list)
    budget: Budget = Field(default_factory=Budget)
    preferences: List[str] = Field(default_factory=list)
    use_case: str = ""
    confidence: float = Field(0.5, ge=0.0, le=1.0)
    is_general_chat: bool = False
    wanted_item: Optional[WantedItem] = None

    @classmethod
    def from_llm(cls, raw: Dict[str, Any]) -> "IntentAnalysis":
        """Structural mapping of the intent JSON; ids are NOT checked against the catalog here."""
        if not isinstance(raw, dict):
            raw = {}
        confidence = to_number(raw.get("confidence"))
        if confidence is None:
            confidence = 0.5
        return cls(
            category=_opt_str(raw.get("category")),
            subcategory=_opt_str(raw.get("subcategory")),
            requirements=_str_list(raw.get("requirements")),
            budget=Budget(min=to_number(raw.get("budgetMin")), max=to_number(raw.get("budgetMax"))),
            preferences=_str_list(raw.get("preferences")),
            use_case=str(raw.get("useCase") or "").strip(),
            confidence=min(1.0, max(0.0, confidence)),
            is_general_chat=raw.get("isGeneralChat") is True,
            wanted_item=WantedItem.from_llm(raw.get("productRequestData")),
        )


class ProductMatch(BaseModel):
    product: Product
    match_score: float = Field(..., ge=0, le=100)
    highlights: List[str] = Field(default_factory=list)
    why_recommended: str = ""


class Message(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class RequestContext(BaseModel):
    category_id: Optional[str] = None
    budget: Optional[float] = None
    exclude_product_ids: List[str] = Field(default_factory=list)
    # Echo of RecommendationResponse.awaiting_item_details from the previous turn.
    missing_item_flow: Optional[bool] = None


class RecommendationRequest(BaseModel):
    query: str = ""
    messages: List[Message] = Field(default_factory=list)
    max_results: Optional[int] = Field(None, ge=1, le=50)
    context: Optional[RequestContext] = None


class RecommendationResponse(BaseModel):
    success: bool
    error: Optional[str] = None
    intent: Optional[IntentAnalysis] = None
    recommendations: List[ProductMatch] = Field(default_factory=list)
    summary: str = ""
    processing_time: int = 0  # ms
    awaiting_item_details: bool = False


class PromptTemplate(BaseModel):
    id: str
    name: str = ""
    description: str = ""
    template: str
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
