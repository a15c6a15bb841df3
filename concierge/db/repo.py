# =============================================
# File: concierge/db/repo.py
# Purpose: DB bootstrap (engine from DB_URL, init_db) and SqlStore, the bundled implementation of
#          the catalog / request sink / prompt store / settings store / key store collaborators.
# =============================================

from __future__ import annotations
import asyncio
import os
import uuid
from datetime import datetime
from typing import Iterable, List, Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, Session, create_engine, select

from concierge.db.models import (
    AISettingsRow,
    ApiKeyRow,
    CategoryRow,
    ProductRequestRow,
    ProductRow,
    PromptOverrideRow,
)
from concierge.services.ai_config import AISettings
from concierge.services.catalog import Category, Product, ProductRequestIn, SinkResult
from concierge.services.key_pool import KeyInfo, keys_from_rows
from concierge.services.schemas import PromptTemplate

DB_URL = os.getenv("DB_URL", "sqlite:///./concierge.db")


def make_engine(url: str):
    # Sessions run in worker threads; in-memory sqlite also needs one shared connection.
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=False, **kwargs)
    return create_engine(url, echo=False)


engine = make_engine(DB_URL)

def init_db(bind=None):
    SQLModel.metadata.create_all(bind or engine)


def _product(row: ProductRow) -> Product:
    return Product(
        id=row.id,
        name=row.name,
        description=row.description or "",
        price=row.price or 0.0,
        tags=list(row.tags or []),
        available=bool(row.available),
        category_id=row.category_id,
        subcategory_id=row.subcategory_id,
    )


class SqlStore:
    """
    One object satisfying CatalogReader, RequestSink, PromptStore, SettingsSource
    and KeySource. Every public coroutine hands a sync session to a worker thread.
    """

    def __init__(self, bind=None) -> None:
        self._engine = bind or engine

    async def _run(self, fn, *args):
        return await asyncio.to_thread(fn, *args)

    # ---------- catalog ----------

    def _get_products(self, category_id, available_only, limit, cursor, subcategory_id) -> List[Product]:
        with Session(self._engine) as s:
            stmt = select(ProductRow)
            if category_id:
                stmt = stmt.where(ProductRow.category_id == category_id)
            if subcategory_id:
                stmt = stmt.where(ProductRow.subcategory_id == subcategory_id)
            if available_only:
                stmt = stmt.where(ProductRow.available == True)  # noqa: E712
            if cursor:
                stmt = stmt.where(ProductRow.id > cursor)
            stmt = stmt.order_by(ProductRow.id)
            if limit:
                stmt = stmt.limit(limit)
            return [_product(r) for r in s.exec(stmt).all()]

    async def get_products(
        self,
        category_id: Optional[str] = None,
        available_only: bool = False,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
        subcategory_id: Optional[str] = None,
    ) -> List[Product]:
        return await self._run(self._get_products, category_id, available_only, limit, cursor, subcategory_id)

    def _get_categories(self) -> List[Category]:
        with Session(self._engine) as s:
            rows = s.exec(select(CategoryRow).order_by(CategoryRow.id)).all()
            return [Category(id=r.id, name=r.name, parent_id=r.parent_id) for r in rows]

    async def get_categories(self) -> List[Category]:
        return await self._run(self._get_categories)

    def _seed(self, categories: Iterable[Category], products: Iterable[Product]) -> int:
        n = 0
        with Session(self._engine) as s:
            for c in categories:
                s.merge(CategoryRow(id=c.id, name=c.name, parent_id=c.parent_id))
                n += 1
            for p in products:
                s.merge(ProductRow(**p.model_dump()))
                n += 1
            s.commit()
        return n

    async def seed_catalog(self, categories: Iterable[Category], products: Iterable[Product]) -> int:
        """Upsert categories/products; returns the number of rows written."""
        return await self._run(self._seed, list(categories), list(products))

    # ---------- request sink ----------

    def _create_request(self, req: ProductRequestIn) -> SinkResult:
        try:
            with Session(self._engine) as s:
                s.add(ProductRequestRow(**req.model_dump()))
                s.commit()
        except SQLAlchemyError as e:
            logger.error(f"[SqlStore] create_product_request failed: {e}")
            return SinkResult(success=False, error=str(e))
        return SinkResult(success=True)

    async def create_product_request(self, request: ProductRequestIn) -> SinkResult:
        return await self._run(self._create_request, request)

    def _list_requests(self) -> List[ProductRequestRow]:
        with Session(self._engine) as s:
            return list(s.exec(select(ProductRequestRow).order_by(ProductRequestRow.id)).all())

    async def list_product_requests(self) -> List[ProductRequestRow]:
        return await self._run(self._list_requests)

    # ---------- prompt overrides ----------

    def _get_prompts(self) -> List[PromptTemplate]:
        with Session(self._engine) as s:
            rows = s.exec(select(PromptOverrideRow)).all()
            return [PromptTemplate(**r.model_dump()) for r in rows]

    async def get_prompts(self) -> List[PromptTemplate]:
        return await self._run(self._get_prompts)

    def _save_prompt(self, prompt: PromptTemplate) -> None:
        now = datetime.utcnow()
        with Session(self._engine) as s:
            row = s.get(PromptOverrideRow, prompt.id)
            if row is None:
                row = PromptOverrideRow(id=prompt.id, template=prompt.template, created_at=now)
            row.name = prompt.name
            row.description = prompt.description
            row.template = prompt.template
            row.is_active = prompt.is_active
            row.updated_at = now
            s.add(row)
            s.commit()

    async def save_prompt(self, prompt: PromptTemplate) -> None:
        await self._run(self._save_prompt, prompt)

    # ---------- AI settings ----------

    def _get_settings(self) -> Optional[AISettings]:
        with Session(self._engine) as s:
            row = s.get(AISettingsRow, 1)
            if row is None:
                return None
            return AISettings.model_validate_json(row.data)

    async def get_ai_settings(self) -> Optional[AISettings]:
        return await self._run(self._get_settings)

    def _save_settings(self, settings: AISettings) -> None:
        with Session(self._engine) as s:
            row = s.get(AISettingsRow, 1) or AISettingsRow(id=1, data="{}")
            row.data = settings.model_dump_json()
            row.updated_at = datetime.utcnow()
            s.add(row)
            s.commit()

    async def save_ai_settings(self, settings: AISettings) -> None:
        await self._run(self._save_settings, settings)

    # ---------- API keys ----------

    def _get_keys(self) -> List[KeyInfo]:
        with Session(self._engine) as s:
            rows = s.exec(
                select(ApiKeyRow).where(ApiKeyRow.is_active == True).order_by(ApiKeyRow.created_at)  # noqa: E712
            ).all()
            return keys_from_rows([{"id": r.id, "provider": r.provider, "key": r.key} for r in rows])

    async def get_api_keys(self) -> List[KeyInfo]:
        return await self._run(self._get_keys)

    def _add_key(self, provider: str, key: str, key_id: Optional[str]) -> str:
        key_id = key_id or uuid.uuid4().hex[:12]
        with Session(self._engine) as s:
            s.merge(ApiKeyRow(id=key_id, provider=provider, key=key))
            s.commit()
        return key_id

    async def add_api_key(self, provider: str, key: str, key_id: Optional[str] = None) -> str:
        return await self._run(self._add_key, provider, key, key_id)
