# =============================================
# File: concierge/cli/keys.py
# Purpose: Operator CLI for the API key pool.
# Usage:
#   python -m concierge.cli.keys status      # health snapshot (masked keys) as JSON
#   python -m concierge.cli.keys ping        # tiny prompt through every configured provider
# =============================================
from __future__ import annotations
import argparse
import asyncio
import json
import sys

from concierge.db.repo import init_db
from concierge.services.container import get_llm
from concierge.services.errors import LLMError
from concierge.services.llm import LLMService
from concierge.services.providers import CallOptions

PING_PROMPT = "Reply with the single word: pong"


async def _status(llm: LLMService) -> int:
    await llm.refresh_keys(force=True)
    print(json.dumps(llm.pool.get_health_snapshot(), indent=2))
    return 0


async def _ping(llm: LLMService) -> int:
    await llm.refresh_keys(force=True)
    ok = 0
    tried = 0
    for caller in llm.callers:
        if not llm.pool.has_keys(caller.provider):
            print(f"[SKIP] {caller.label}: no keys configured")
            continue
        tried += 1
        try:
            text = await caller.complete(PING_PROMPT, options=CallOptions(temperature=0.0, max_tokens=5))
        except LLMError as e:
            print(f"[FAIL] {caller.label}: {e}", file=sys.stderr)
            continue
        ok += 1
        print(f"[OK] {caller.label}: {text.strip()[:40]!r}")
    if tried == 0:
        print("[WARN] No provider has keys. Set GROQ_API_KEY / GEMINI_API_KEY or add keys to the store.", file=sys.stderr)
        return 1
    return 0 if ok else 1


def main(argv=None):
    ap = argparse.ArgumentParser(description="Inspect and exercise the LLM API key pool.")
    ap.add_argument("command", choices=["status", "ping"], help="status: health snapshot; ping: call each provider once")
    args = ap.parse_args(argv)

    init_db()
    llm = get_llm()
    run = _status if args.command == "status" else _ping
    sys.exit(asyncio.run(run(llm)))

if __name__ == "__main__":
    main()
