# =============================================
# File: concierge/routers/admin.py
# Purpose: Operator hooks: key pool health/reload, prompt overrides, AI settings
# =============================================
from __future__ import annotations
import os
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from loguru import logger
from pydantic import BaseModel

from concierge.db.repo import SqlStore
from concierge.services.ai_config import AIConfigLoader, AISettings
from concierge.services.container import get_config, get_llm, get_registry, get_store
from concierge.services.llm import LLMService
from concierge.services.prompt_defaults import DEFAULT_PROMPTS
from concierge.services.prompt_registry import PromptRegistry
from concierge.services.schemas import PromptTemplate
from concierge.utils import rcache


def require_admin(x_admin_token: Optional[str] = Header(None)) -> None:
    """No-op unless ADMIN_TOKEN is set (read per call so tests can toggle it)."""
    expected = os.getenv("ADMIN_TOKEN")
    if expected and x_admin_token != expected:
        raise HTTPException(status_code=401, detail="Invalid admin token")


router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


class PromptUpdate(BaseModel):
    template: str
    name: Optional[str] = None
    description: Optional[str] = None
    is_active: bool = True


# ---------- keys ----------

@router.get("/keys")
def get_keys(llm: LLMService = Depends(get_llm)) -> Dict[str, Any]:
    return llm.pool.get_health_snapshot()


@router.post("/keys/reload")
async def reload_keys(llm: LLMService = Depends(get_llm)) -> Dict[str, Any]:
    llm.pool.invalidate_cache()
    changed = await llm.refresh_keys(force=True)
    logger.info(f"[Admin] Key reload requested; pool changed={changed}")
    return {"changed": changed, "total_keys": llm.pool.key_count()}


# ---------- prompts ----------

@router.get("/prompts", response_model=List[PromptTemplate])
async def list_prompts(registry: PromptRegistry = Depends(get_registry)) -> List[PromptTemplate]:
    return list((await registry.all()).values())


@router.put("/prompts/{prompt_id}", response_model=PromptTemplate)
async def save_prompt(
    prompt_id: str,
    body: PromptUpdate,
    registry: PromptRegistry = Depends(get_registry),
    store: SqlStore = Depends(get_store),
) -> PromptTemplate:
    default = DEFAULT_PROMPTS.get(prompt_id)
    if default is None:
        raise HTTPException(status_code=404, detail=f"Unknown prompt id: {prompt_id}")
    prompt = PromptTemplate(
        id=prompt_id,
        name=body.name if body.name is not None else default.name,
        description=body.description if body.description is not None else default.description,
        template=body.template,
        is_active=body.is_active,
    )
    await store.save_prompt(prompt)
    registry.invalidate()
    rcache.clear()
    logger.info(f"[Admin] Prompt override saved: {prompt_id}")
    return (await registry.all())[prompt_id]


# ---------- settings ----------

@router.get("/settings", response_model=AISettings)
async def get_settings(config: AIConfigLoader = Depends(get_config)) -> AISettings:
    return await config.get()


@router.put("/settings", response_model=AISettings)
async def save_settings(
    body: AISettings,
    config: AIConfigLoader = Depends(get_config),
    store: SqlStore = Depends(get_store),
) -> AISettings:
    await store.save_ai_settings(body)
    config.invalidate()
    rcache.clear()
    logger.info("[Admin] AI settings saved")
    return body
