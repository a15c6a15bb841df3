# =============================================
# File: concierge/services/catalog.py
# Purpose: Shapes and interfaces of the external collaborators (catalog, request sink, stores)
# =============================================
from __future__ import annotations
from typing import List, Optional, Protocol, Sequence, TYPE_CHECKING

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from concierge.services.ai_config import AISettings
    from concierge.services.key_pool import KeyInfo
    from concierge.services.schemas import PromptTemplate


class Category(BaseModel):
    id: str
    name: str
    parent_id: Optional[str] = None


class Product(BaseModel):
    id: str
    name: str
    description: str = ""
    price: float = 0.0
    tags: List[str] = Field(default_factory=list)
    available: bool = True
    category_id: Optional[str] = None
    subcategory_id: Optional[str] = None


class ProductRequestIn(BaseModel):
    """A "wanted but unavailable" record handed to the request sink."""
    product_name: str
    brand: str = ""
    description: str = ""
    min_price: float = 0
    max_price: float = 0
    image_url: str = ""
    contact_info: str = ""


class SinkResult(BaseModel):
    success: bool
    error: Optional[str] = None


class CatalogReader(Protocol):
    async def get_products(
        self,
        category_id: Optional[str] = None,
        available_only: bool = False,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
        subcategory_id: Optional[str] = None,
    ) -> List[Product]: ...

    async def get_categories(self) -> List[Category]: ...


class RequestSink(Protocol):
    async def create_product_request(self, request: ProductRequestIn) -> SinkResult: ...


class PromptStore(Protocol):
    async def get_prompts(self) -> List["PromptTemplate"]: ...

    async def save_prompt(self, prompt: "PromptTemplate") -> None: ...


class SettingsSource(Protocol):
    async def get_ai_settings(self) -> Optional["AISettings"]: ...

    async def save_ai_settings(self, settings: "AISettings") -> None: ...


class KeySource(Protocol):
    async def get_api_keys(self) -> Sequence["KeyInfo"]: ...
