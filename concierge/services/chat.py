# concierge/services/chat.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from concierge.services.ai_config import AISettings
from concierge.services.errors import ResponseParseFailed
from concierge.services.key_pool import Provider
from concierge.services.llm import LLMService
from concierge.services.prompt_registry import PromptRegistry
from concierge.services.schemas import Message
from concierge.utils.sanitize import clean_reply, format_history


@dataclass
class ChatReply:
    reply: str
    suggested_actions: List[str] = field(default_factory=list)


async def chat_with_assistant(
    llm: LLMService,
    registry: PromptRegistry,
    settings: AISettings,
    message: str,
    history: Optional[Sequence[Message]] = None,
) -> ChatReply:
    """Greetings and small talk; never touches the catalog."""
    prompt = await registry.get_prompt(
        "general-chat",
        {
            "system_prompt": settings.system_prompt,
            "persona": settings.persona_name,
            "conversation": format_history(history or []) or "(no previous messages)",
            "message": message,
        },
    )
    raw = await llm.call_llm_for_json(prompt, provider=Provider.GROQ)
    reply = clean_reply(str(raw.get("reply") or "")) if isinstance(raw, dict) else ""
    if not reply:
        raise ResponseParseFailed("General chat reply was empty", raw=str(raw)[:200])
    actions = raw.get("suggestedActions")
    if not isinstance(actions, list):
        actions = []
    return ChatReply(reply=reply, suggested_actions=[str(a) for a in actions if str(a).strip()][:5])
