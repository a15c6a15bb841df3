# =============================================
# File: concierge/services/errors.py
# Purpose: Typed failures raised by the key pool, provider callers and prompt registry
# =============================================
from __future__ import annotations
from typing import Optional


class LLMError(Exception):
    """Base for every provider-layer failure (the facade falls back on these)."""


class KeyPoolExhausted(LLMError):
    def __init__(self, provider: str, message: str | None = None) -> None:
        self.provider = provider
        super().__init__(message or f"No usable API key for provider: {provider}")


class ProviderRequestFailed(LLMError):
    """Non-2xx response (or transport failure) after the retry ceiling."""

    def __init__(self, provider: str, status: Optional[int], body: str = "", message: str | None = None) -> None:
        self.provider = provider
        self.status = status
        self.body = body
        super().__init__(message or f"{provider} request failed (status={status}): {body[:300]}")


class ProviderRateLimited(LLMError):
    def __init__(self, provider: str, body: str = "") -> None:
        self.provider = provider
        self.status = 429
        self.body = body
        super().__init__(f"Rate limit exceeded on {provider} keys")


class ResponseParseFailed(LLMError):
    """2xx without extractable text, or text that is not JSON when JSON was expected."""

    def __init__(self, message: str, raw: str = "") -> None:
        self.raw = raw
        super().__init__(message)


class PromptError(Exception):
    """Operator misconfiguration in the prompt registry. Never retried."""

    def __init__(self, prompt_id: str, message: str) -> None:
        self.prompt_id = prompt_id
        super().__init__(message)


class PromptNotFound(PromptError):
    def __init__(self, prompt_id: str) -> None:
        super().__init__(prompt_id, f"Prompt ID '{prompt_id}' not found in registry.")


class PromptDisabled(PromptError):
    def __init__(self, prompt_id: str) -> None:
        super().__init__(prompt_id, f"Prompt ID '{prompt_id}' is currently disabled by admin.")
