# =============================================
# File: concierge/services/providers.py
# Purpose: One caller per upstream inference API, with key rotation and bounded retries
# =============================================
from __future__ import annotations
import os
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from loguru import logger
from openai import APIConnectionError, APIError, APIStatusError, AsyncOpenAI

from concierge.services.errors import ProviderRateLimited, ProviderRequestFailed, ResponseParseFailed
from concierge.services.key_pool import KeyPool, Provider
from concierge.utils.metrics import record_llm_call

GROQ_API_BASE = os.getenv("GROQ_API_BASE", "https://api.groq.com/openai/v1")
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")
GEMINI_API_BASE = os.getenv("GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta/models")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")

TIMEOUT_S = float(os.getenv("LLM_TIMEOUT_SECONDS", "30"))
MAX_RETRIES = int(os.getenv("LLM_MAX_RETRIES", "3"))

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2048


@dataclass
class CallOptions:
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


@dataclass
class UpstreamReply:
    status: int
    body: str = ""
    data: Any = None  # parsed JSON envelope on 2xx


class UpstreamUnavailable(Exception):
    """No usable reply: connection/timeout failure, or a body that could not be decoded."""


def extract_text(data: Any) -> Optional[str]:
    """Pull the completion text out of a Gemini-native or OpenAI-style envelope."""
    if not isinstance(data, dict):
        return None
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
        if text:
            return text
    except (KeyError, IndexError, TypeError):
        pass
    try:
        text = data["choices"][0]["message"]["content"]
        if text:
            return text
    except (KeyError, IndexError, TypeError):
        pass
    return None


class ProviderCaller:
    """
    Base caller. Subclasses implement `_post`, which performs exactly one HTTP
    exchange with a given key; this class owns key selection, outcome
    bookkeeping and the retry ceiling.
    """

    provider: Provider
    default_model: str
    label: str

    def __init__(self, pool: KeyPool, max_retries: int = MAX_RETRIES, timeout: float = TIMEOUT_S) -> None:
        self._pool = pool
        self._max_retries = max_retries
        self._timeout = timeout

    async def _post(self, key: str, prompt: str, model: str, options: CallOptions) -> UpstreamReply:
        raise NotImplementedError

    def _record(self, outcome: str) -> None:
        record_llm_call(self.provider.value, outcome)

    async def complete(self, prompt: str, model: Optional[str] = None, options: Optional[CallOptions] = None) -> str:
        model = model or self.default_model
        options = options or CallOptions()
        attempt = 0
        while True:
            # KeyPoolExhausted propagates as-is: without a key there is nothing to retry.
            key = self._pool.get_active_key(self.provider)

            try:
                reply = await self._post(key, prompt, model, options)
            except UpstreamUnavailable as e:
                self._pool.mark_failed(key)
                self._record("failed")
                if attempt < self._max_retries:
                    attempt += 1
                    logger.info(f"[{self.label}] Upstream unavailable ({e}), retrying (attempt {attempt})")
                    continue
                raise ProviderRequestFailed(self.provider.value, None, str(e), message=f"Unexpected {self.label} error: {e}")

            if reply.status == 429:
                self._pool.mark_rate_limited(key)
                self._record("rate_limited")
                if attempt < self._max_retries:
                    attempt += 1
                    logger.info(f"[{self.label}] Rate limited, retrying (attempt {attempt})")
                    continue
                raise ProviderRateLimited(self.provider.value, reply.body)

            if reply.status in (401, 403):
                self._pool.mark_invalid(key)
                self._record("invalid")
                raise ProviderRequestFailed(
                    self.provider.value,
                    reply.status,
                    reply.body,
                    message=f"{self.label} API key is invalid or unauthorized: {reply.status}",
                )

            if not 200 <= reply.status < 300:
                logger.error(f"[{self.label}] Error body ({reply.status}): {reply.body[:500]}")
                self._pool.mark_failed(key)
                self._record("failed")
                if attempt < self._max_retries:
                    attempt += 1
                    logger.info(f"[{self.label}] Request failed ({reply.status}), retrying")
                    continue
                raise ProviderRequestFailed(self.provider.value, reply.status, reply.body)

            data = reply.data if isinstance(reply.data, dict) else {}
            err = data.get("error")
            if isinstance(err, dict):
                self._pool.mark_failed(key)
                self._record("failed")
                code = err.get("code")
                raise ProviderRequestFailed(
                    self.provider.value,
                    code if isinstance(code, int) else 500,
                    reply.body,
                    message=str(err.get("message") or f"{self.label} returned an error envelope"),
                )

            text = extract_text(data)
            if not text:
                raise ResponseParseFailed(f"No response text from {self.label}", raw=reply.body)

            self._pool.mark_success(key)
            self._record("success")
            return text


class GroqCaller(ProviderCaller):
    """Fast/default provider: OpenAI-compatible chat completions through the openai SDK."""

    provider = Provider.GROQ
    default_model = GROQ_MODEL
    label = "Groq"

    def __init__(
        self,
        pool: KeyPool,
        base_url: str = GROQ_API_BASE,
        http_client: Optional[httpx.AsyncClient] = None,
        **kwargs,
    ) -> None:
        super().__init__(pool, **kwargs)
        self._base_url = base_url
        self._http_client = http_client

    async def _post(self, key: str, prompt: str, model: str, options: CallOptions) -> UpstreamReply:
        client = AsyncOpenAI(
            api_key=key,
            base_url=self._base_url,
            max_retries=0,  # retries are ours, so each one can pick a fresh key
            timeout=self._timeout,
            http_client=self._http_client,
        )
        try:
            resp = await client.chat.completions.create(
                model=model,
                messages=[{"role": "user", "content": prompt}],
                temperature=options.temperature if options.temperature is not None else DEFAULT_TEMPERATURE,
                max_tokens=options.max_tokens or DEFAULT_MAX_TOKENS,
            )
        except APIStatusError as e:
            body = e.response.text if e.response is not None else str(e)
            return UpstreamReply(status=e.status_code, body=body)
        except APIConnectionError as e:
            raise UpstreamUnavailable(str(e) or type(e).__name__) from e
        except (APIError, ValueError) as e:
            # 2xx with an unreadable body (HTML from a gateway, schema mismatch)
            raise UpstreamUnavailable(f"unreadable response: {e}") from e
        finally:
            if self._http_client is None:
                await client.close()
        if not hasattr(resp, "model_dump"):
            # the SDK hands back raw text when the body is not JSON
            raise UpstreamUnavailable(f"unreadable response: {str(resp)[:200]}")
        return UpstreamReply(status=200, data=resp.model_dump())


class GeminiCaller(ProviderCaller):
    """Fallback provider: Gemini generateContent over plain httpx."""

    provider = Provider.GOOGLE
    default_model = GEMINI_MODEL
    label = "Gemini"

    def __init__(
        self,
        pool: KeyPool,
        base_url: str = GEMINI_API_BASE,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **kwargs,
    ) -> None:
        super().__init__(pool, **kwargs)
        self._base_url = base_url.rstrip("/")
        self._transport = transport

    async def _post(self, key: str, prompt: str, model: str, options: CallOptions) -> UpstreamReply:
        url = f"{self._base_url}/{model}:generateContent"
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": options.temperature if options.temperature is not None else DEFAULT_TEMPERATURE,
                "maxOutputTokens": options.max_tokens or DEFAULT_MAX_TOKENS,
            },
        }
        timeout = httpx.Timeout(self._timeout, connect=5.0)
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                response = await client.post(url, json=payload, headers={"x-goog-api-key": key})
        except httpx.TransportError as e:
            raise UpstreamUnavailable(str(e) or type(e).__name__) from e

        data = None
        if response.is_success:
            try:
                data = response.json()
            except ValueError:
                data = None
        return UpstreamReply(status=response.status_code, body=response.text, data=data)
