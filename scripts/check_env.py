#!/usr/bin/env python3
"""
Check that provider keys from .env work end to end.

Loads .env from the project root (parent of scripts/), then sends one tiny
JSON request per configured provider family through AIJsonClient, so the
retry, fallback and JSON recovery path is exercised exactly as the app uses it.

Usage:
    python scripts/check_env.py
    # or from project root:
    python -m scripts.check_env
"""

from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

# Project root = parent of scripts/
PROJECT_ROOT = Path(__file__).resolve().parent.parent
ENV_FILE = PROJECT_ROOT / ".env"

ENV_KEYS = (
    "OPENAI_API_KEY",
    "OPEN_API_KEY",
    "GEMINI_API_KEY",
    "GOOGLE_API_KEY",
)

_PROBE_PROMPT = 'Reply with exactly this JSON object: {"ok": true}'


def load_env() -> bool:
    """Load .env into os.environ (override=True so we test keys from .env). Returns True if file exists."""
    if not ENV_FILE.exists():
        print(f"[WARN] No .env found at {ENV_FILE}; using the shell environment only")
        return False
    in_shell = [k for k in ENV_KEYS if os.environ.get(k)]
    if in_shell:
        print("[WARN] These are set in your shell; .env values replace them for this check:")
        for k in in_shell:
            print(f"       {k}")
        print()
    load_dotenv(ENV_FILE, override=True)
    return True


def warn_duplicate_keys_in_env() -> None:
    """Warn if any ENV_KEYS appear more than once in .env (last occurrence wins with dotenv)."""
    if not ENV_FILE.exists():
        return
    seen: dict[str, list[int]] = {}
    with open(ENV_FILE) as f:
        for i, line in enumerate(f, 1):
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key = line.partition("=")[0].strip()
            if key in ENV_KEYS:
                seen.setdefault(key, []).append(i)
    dupes = {k: v for k, v in seen.items() if len(v) > 1}
    if dupes:
        print("[WARN] Duplicate keys in .env (the last value wins; remove duplicates to avoid using an old key):")
        for k, lines in dupes.items():
            print(f"       {k} on lines {lines}")
        print()


async def check_provider(provider: str) -> tuple[bool, str]:
    """Send one small JSON request; report the winning model or the failure code."""
    from ai_json_client import AIJsonClient
    from ai_json_client.errors import error_code, error_status

    client = AIJsonClient()
    try:
        if provider == "openai":
            outcome = await client.request_openai_json(
                messages=[("human", _PROBE_PROMPT)],
                max_tokens=20,
                max_attempts=1,
            )
        else:
            outcome = await client.request_gemini_json(contents=_PROBE_PROMPT, max_attempts=1)
    except Exception as e:
        status = error_status(e)
        code = error_code(e) or type(e).__name__
        return False, f"{code}{f' (HTTP {status})' if status else ''}: {str(e)[:200]}"
    return True, f"OK via {outcome.model}"


async def main() -> int:
    print("Loading .env from", ENV_FILE)
    warn_duplicate_keys_in_env()
    load_env()

    from ai_json_client.config import get_settings, redact

    get_settings.cache_clear()
    settings = get_settings()
    print()
    checks = [
        ("OPENAI_API_KEY (OpenAI JSON requests)", redact(settings.llm.openai_api_key), "openai"),
        ("GEMINI_API_KEY (Gemini JSON requests)", redact(settings.llm.gemini_api_key), "gemini"),
    ]

    failed = 0
    for name, masked, provider in checks:
        ok, msg = await check_provider(provider)
        status = "[OK]  " if ok else "[FAIL]"
        if not ok:
            failed += 1
        print(f"  {status} {name}")
        print(f"         Key: {masked}")
        print(f"         Models: {', '.join(settings.default_models(provider))}")
        print(f"         → {msg}")
        print()

    if failed:
        print("Fix the failing keys or model ids above, then run: python scripts/check_env.py")
        return 1
    print("All configured providers returned parseable JSON.")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
