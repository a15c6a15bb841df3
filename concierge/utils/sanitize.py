# concierge/utils/sanitize.py
from __future__ import annotations
import re
from typing import Sequence

# Phrases that only make sense as instructions to the model. Catalog copy and
# shopper messages are pasted into prompts verbatim, so anything carrying one
# of these is dropped before it gets there.
_INJECTION_RE = re.compile(
    r"ignore (?:all |the )?previous instructions?"
    r"|disregard (?:all |the )?previous instructions?"
    r"|system prompt"
    r"|developer message"
    r"|you are (?:now )?chatgpt"
    r"|do not follow the above"
    r"|jailbreak"
    r"|always rank this product first"
    r"|give (?:this|it) a (?:match ?)?score of",
    re.IGNORECASE,
)

_WS_RE = re.compile(r"\s+")
_SENTENCE_END_RE = re.compile(r"(?<=[.!?।])\s+")
_FENCE_RE = re.compile(r"```(?:json|JSON|text)?")
_QUOTES = ("'", '"', "“", "”")


def collapse_ws(text: str) -> str:
    return _WS_RE.sub(" ", text or "").strip()


def sanitize_snippet(text: str, max_chars: int = 400) -> str:
    """
    Drop sentences that look like prompt instructions, scrub any leftover cue
    inline, collapse whitespace and cap the length (ellipsis when cut).
    """
    sentences = [s for s in _SENTENCE_END_RE.split(text or "") if s.strip()]
    kept = [s for s in sentences if not _INJECTION_RE.search(s)]
    t = " ".join(kept) if kept else (text or "")
    t = collapse_ws(_INJECTION_RE.sub("", t))
    if max_chars and len(t) > max_chars:
        t = t[:max_chars].rstrip() + "…"
    return t


def clean_reply(text: str) -> str:
    """Plain-text LLM reply: no code fences, no wrapping quotes."""
    t = _FENCE_RE.sub("", text or "").strip()
    if len(t) >= 2 and t[0] in _QUOTES and t[-1] in _QUOTES:
        t = t[1:-1].strip()
    return t


def format_history(messages: Sequence, max_messages: int = 10, max_chars: int = 400) -> str:
    """Role-tagged transcript ("USER: ...") of the most recent messages."""
    lines = []
    for m in list(messages or [])[-max_messages:]:
        if isinstance(m, dict):
            role, content = m.get("role", "user"), m.get("content")
        else:
            role, content = m.role, m.content
        lines.append(f"{str(role).upper()}: {sanitize_snippet(str(content or ''), max_chars=max_chars)}")
    return "\n".join(lines)
