# =============================================
# File: concierge/utils/json_extract.py
# Purpose: Best-effort JSON extraction from LLM text (code fences, surrounding prose)
# =============================================
from __future__ import annotations
import json
import re
from typing import Any

from concierge.services.errors import ResponseParseFailed

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)```")
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_ARRAY_RE = re.compile(r"\[[\s\S]*\]")


def strip_code_fences(text: str) -> str:
    """Return the body of the first fenced block, or the trimmed text when there is none."""
    cleaned = (text or "").strip()
    m = _FENCE_RE.search(cleaned)
    if m:
        return m.group(1).strip()
    # Unterminated fence at the start ("```json\n{...")
    if cleaned.startswith("```"):
        cleaned = cleaned[3:]
        if cleaned[:4].lower() == "json":
            cleaned = cleaned[4:]
    return cleaned.strip()


def _first_block(text: str, opener: str, pattern: re.Pattern) -> Any:
    start = text.find(opener)
    if start == -1:
        raise ValueError("no block")
    # First complete top-level value starting at the opener; trailing prose is ignored.
    try:
        value, _ = json.JSONDecoder().raw_decode(text[start:])
        return value
    except json.JSONDecodeError:
        pass
    m = pattern.search(text)
    if not m:
        raise ValueError("no block")
    return json.loads(m.group(0))


def extract_json(text: str) -> Any:
    """
    Parse an LLM reply as JSON.

    Order: direct parse, then the first {...} block, then the first [...] block.
    Raises ResponseParseFailed when none of them yields valid JSON.
    """
    cleaned = strip_code_fences(text)
    try:
        return json.loads(cleaned)
    except (json.JSONDecodeError, TypeError):
        pass

    for opener, pattern in (("{", _OBJECT_RE), ("[", _ARRAY_RE)):
        try:
            return _first_block(cleaned, opener, pattern)
        except (ValueError, json.JSONDecodeError):
            continue

    snippet = (text or "")[:200]
    raise ResponseParseFailed(f"Failed to parse LLM response as JSON: {snippet}...", raw=text or "")
