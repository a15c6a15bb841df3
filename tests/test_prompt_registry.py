# =============================================
# File: tests/test_prompt_registry.py
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import pytest

from concierge.services.errors import LLMError, PromptDisabled, PromptError, PromptNotFound
from concierge.services.prompt_defaults import DEFAULT_PROMPTS
from concierge.services.prompt_registry import PromptRegistry, render
from concierge.services.schemas import PromptTemplate


class MemoryPromptStore:
    def __init__(self, prompts=None, fail=False):
        self.prompts = list(prompts or [])
        self.fail = fail
        self.reads = 0

    async def get_prompts(self):
        self.reads += 1
        if self.fail:
            raise RuntimeError("db down")
        return list(self.prompts)

    async def save_prompt(self, prompt):
        self.prompts = [p for p in self.prompts if p.id != prompt.id] + [prompt]


def test_render_replaces_every_occurrence_and_tolerates_whitespace():
    out = render("Hi {{name}}! {{ name }} again, {{other}}.", {"name": "Asha"})
    assert out == "Hi Asha! Asha again, {{other}}."

def test_render_is_single_pass():
    out = render("{{a}} and {{b}}", {"a": "{{b}}", "b": "B"})
    assert out == "{{b}} and B"

def test_defaults_cover_every_pipeline_prompt():
    assert set(DEFAULT_PROMPTS) == {"intent-analyze", "rank-summarize", "missing-product", "general-chat"}

def test_prompt_errors_are_not_llm_errors():
    assert not issubclass(PromptError, LLMError)

@pytest.mark.asyncio
async def test_defaults_used_without_store():
    reg = PromptRegistry()
    text = await reg.get_prompt("general-chat", {"persona": "Genie", "message": "hello"})
    assert "Genie" in text and "hello" in text

@pytest.mark.asyncio
async def test_override_replaces_default_and_unknown_ids_are_ignored():
    store = MemoryPromptStore([
        PromptTemplate(id="general-chat", template="Custom {{message}}"),
        PromptTemplate(id="made-up", template="x"),
    ])
    reg = PromptRegistry(store)
    assert await reg.get_prompt("general-chat", {"message": "yo"}) == "Custom yo"
    with pytest.raises(PromptNotFound):
        await reg.get_prompt("made-up")

@pytest.mark.asyncio
async def test_disabled_prompt_raises():
    store = MemoryPromptStore([PromptTemplate(id="rank-summarize", template="x", is_active=False)])
    reg = PromptRegistry(store)
    with pytest.raises(PromptDisabled) as ei:
        await reg.get_prompt("rank-summarize")
    assert ei.value.prompt_id == "rank-summarize"

@pytest.mark.asyncio
async def test_store_failure_falls_back_to_defaults():
    reg = PromptRegistry(MemoryPromptStore(fail=True))
    merged = await reg.all()
    assert merged["intent-analyze"].template == DEFAULT_PROMPTS["intent-analyze"].template

@pytest.mark.asyncio
async def test_cache_and_invalidate(clock):
    store = MemoryPromptStore([PromptTemplate(id="general-chat", template="v1")])
    reg = PromptRegistry(store)
    assert await reg.get_prompt("general-chat") == "v1"
    await store.save_prompt(PromptTemplate(id="general-chat", template="v2"))
    assert await reg.get_prompt("general-chat") == "v1"   # still cached
    reg.invalidate()
    assert await reg.get_prompt("general-chat") == "v2"
    assert store.reads == 2
