# =============================================
# File: tests/conftest.py
# Purpose: Shared fakes (clock, catalog, request sink, scripted LLM) and state resets
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from typing import Any, List, Optional

import pytest

from concierge.services.catalog import Category, Product, SinkResult
from concierge.utils import rcache
from concierge.utils.metrics import reset as metrics_reset
from concierge.utils.ratelimit import reset_rate_limit


class FakeClock:
    def __init__(self, t: float = 1_000_000.0):
        self.t = t

    def __call__(self) -> float:
        return self.t

    def advance(self, seconds: float) -> None:
        self.t += seconds


class FakeCatalog:
    def __init__(self, categories: List[Category], products: List[Product]):
        self.categories = categories
        self.products = products
        self.calls: List[dict] = []

    async def get_products(self, category_id=None, available_only=False, limit=None, cursor=None, subcategory_id=None):
        self.calls.append({"category_id": category_id, "subcategory_id": subcategory_id, "available_only": available_only})
        out = list(self.products)
        if category_id:
            out = [p for p in out if p.category_id == category_id]
        if subcategory_id:
            out = [p for p in out if p.subcategory_id == subcategory_id]
        if available_only:
            out = [p for p in out if p.available]
        return out[:limit] if limit else out

    async def get_categories(self):
        return list(self.categories)


class FakeSink:
    def __init__(self, fail: bool = False):
        self.requests = []
        self.fail = fail

    async def create_product_request(self, request):
        if self.fail:
            return SinkResult(success=False, error="sink down")
        self.requests.append(request)
        return SinkResult(success=True)


class ScriptedLLM:
    """Stands in for LLMService: hands out queued JSON replies (or raises queued exceptions)."""

    def __init__(self, *replies: Any):
        self.replies = list(replies)
        self.prompts: List[str] = []
        self.providers: List[Optional[str]] = []

    async def call_llm_for_json(self, prompt, provider=None, model=None):
        self.prompts.append(prompt)
        self.providers.append(provider)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def make_catalog() -> FakeCatalog:
    categories = [
        Category(id="cat-bath", name="Bathroom"),
        Category(id="sub-faucets", name="Faucets", parent_id="cat-bath"),
        Category(id="sub-showers", name="Showers", parent_id="cat-bath"),
        Category(id="cat-paint", name="Paint"),
    ]
    products = [
        Product(id="p1", name="Chrome Faucet", description="Single-lever chrome basin faucet", price=2500,
                category_id="cat-bath", subcategory_id="sub-faucets"),
        Product(id="p2", name="Brass Faucet", description="Antique brass pillar tap", price=4800,
                category_id="cat-bath", subcategory_id="sub-faucets"),
        Product(id="p3", name="Rain Shower", description="8 inch overhead rain shower", price=5000,
                category_id="cat-bath", subcategory_id="sub-showers"),
        Product(id="p4", name="Hand Shower", description="", price=900,
                category_id="cat-bath", subcategory_id="sub-showers", available=False),
        Product(id="p5", name="Wall Emulsion 10L", description="Washable interior emulsion", price=3200,
                category_id="cat-paint"),
    ]
    return FakeCatalog(categories, products)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def catalog():
    return make_catalog()


@pytest.fixture
def sink():
    return FakeSink()


@pytest.fixture(autouse=True)
def _reset_process_state():
    rcache.clear()
    metrics_reset()
    reset_rate_limit()
    yield
    rcache.clear()
