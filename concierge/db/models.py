# =============================================
# File: concierge/db/models.py
# Purpose: SQLModel tables backing the bundled store: catalog, wanted-item requests, prompt overrides, API keys, AI settings.
# =============================================

from sqlalchemy import JSON, Column
from sqlmodel import SQLModel, Field
from typing import List, Optional
from datetime import datetime

class CategoryRow(SQLModel, table=True):
    id: str = Field(primary_key=True)
    name: str
    parent_id: Optional[str] = Field(default=None, index=True)

class ProductRow(SQLModel, table=True):
    id: str = Field(primary_key=True)
    name: str
    description: str = ""
    price: float = 0.0
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    available: bool = True
    category_id: Optional[str] = Field(default=None, index=True)
    subcategory_id: Optional[str] = Field(default=None, index=True)

class ProductRequestRow(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    product_name: str
    brand: str = ""
    description: str = ""
    min_price: float = 0
    max_price: float = 0
    image_url: str = ""
    contact_info: str = ""
    ts: datetime = Field(default_factory=datetime.utcnow)

class PromptOverrideRow(SQLModel, table=True):
    id: str = Field(primary_key=True)
    name: str = ""
    description: str = ""
    template: str
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

class ApiKeyRow(SQLModel, table=True):
    id: str = Field(primary_key=True)
    provider: str = Field(index=True)  # "groq" | "google"
    key: str
    is_active: bool = True
    created_at: datetime = Field(default_factory=datetime.utcnow)

class AISettingsRow(SQLModel, table=True):
    # single row, id=1; the AISettings model serialized as JSON
    id: int = Field(default=1, primary_key=True)
    data: str
    updated_at: datetime = Field(default_factory=datetime.utcnow)
