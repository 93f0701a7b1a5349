"""
AI JSON client command line entry point.

Usage:
    python -m ai_json_client.main parse response.txt
    cat response.txt | python -m ai_json_client.main parse
    python -m ai_json_client.main request openai "List three colors as JSON" --model gpt-4o-mini
    python -m ai_json_client.main request gemini "Return {\\"ok\\": true}" --max-attempts 2
    python -m ai_json_client.main check-config
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Optional

import structlog
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.theme import Theme

from ai_json_client.client import AIJsonClient
from ai_json_client.config import get_settings, redact
from ai_json_client.errors import ModelJSONParseError, error_code
from ai_json_client.json_recovery import parse_model_json
from ai_json_client.observability import metrics as obs_metrics

_CUSTOM_THEME = Theme({
    "log.warning": "bold #f59e0b",
    "log.error":   "bold #dc2626",
    "log.debug":   "dim #64748b",
    "log.key":     "#64748b",
    "log.val":     "#94a3b8",
    "primary":     "#ea580c",
})

console = Console(theme=_CUSTOM_THEME, highlight=False)
err_console = Console(theme=_CUSTOM_THEME, highlight=False, stderr=True)


class _RichStructlogRenderer:
    """Custom structlog processor that renders log lines via Rich (on stderr)."""

    _SKIP_KEYS = frozenset({"event", "level", "_record"})

    def __call__(self, logger_: object, method: str, event_dict: dict) -> str:  # noqa: ARG002
        event = event_dict.get("event", "")
        level = event_dict.get("level", "info").lower()

        # ── Model fallback highlight ─────────────────────────────────────────
        if event == "llm_model_failed" and event_dict.get("remaining_models"):
            err_console.print(
                f"  [log.warning]╔══ MODEL FALLBACK ══╗[/log.warning]  "
                f"[log.val]{event_dict.get('model', '?')}[/log.val] [primary]→[/primary] "
                f"[bold #0ea5e9]{event_dict['remaining_models'][0]}[/bold #0ea5e9]  "
                f"[log.error][{event_dict.get('error_code', '?')}][/log.error]"
            )
            raise structlog.DropEvent()

        kv_parts = []
        for k, v in event_dict.items():
            if k in self._SKIP_KEYS:
                continue
            vs = str(v)
            if len(vs) > 120:
                vs = vs[:117] + "…"
            kv_parts.append(f"[log.key]{k}[/log.key]=[log.val]{escape(vs)}[/log.val]")
        kv_str = "  ".join(kv_parts)

        if level == "warning":
            line = f"[log.warning]⚠ {event}[/log.warning]"
        elif level in ("error", "critical"):
            line = f"[log.error]✗ {event}[/log.error]"
        elif level == "debug":
            line = f"[log.debug]· {event}[/log.debug]"
        else:
            line = f"[primary]▪[/primary] [bold #e2e8f0]{event}[/bold #e2e8f0]"
        err_console.print(f"  {line}  {kv_str}")
        raise structlog.DropEvent()


def _level_number(level: str) -> int:
    value = logging.getLevelName(level.upper())
    return value if isinstance(value, int) else logging.INFO


def configure_logging(level: str = "INFO") -> None:
    """Route structlog through the Rich renderer, filtered at ``level``."""
    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            _RichStructlogRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_level_number(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
    )


def _print_json(data: Any) -> None:
    console.print_json(json.dumps(data, ensure_ascii=False))


def run_parse(path: Optional[str]) -> int:
    if path and path != "-":
        with open(path, encoding="utf-8") as f:
            raw = f.read()
    else:
        raw = sys.stdin.read()
    try:
        data = parse_model_json(raw)
    except ModelJSONParseError as e:
        console.print(Panel(Text(e.raw_preview or "(empty)"), title=e.code, subtitle=escape(str(e)[:120])))
        return 1
    _print_json(data)
    return 0


async def run_request(
    provider: str,
    prompt: str,
    models: Optional[list[str]],
    system: Optional[str],
    timeout_ms: Optional[int],
    max_attempts: Optional[int],
) -> int:
    client = AIJsonClient()
    try:
        if provider == "openai":
            messages: list[tuple[str, str]] = []
            if system:
                messages.append(("system", system))
            messages.append(("human", prompt))
            outcome = await client.request_openai_json(
                messages=messages,
                models=models,
                timeout_ms=timeout_ms,
                max_attempts=max_attempts,
            )
        else:
            contents = [system, prompt] if system else [prompt]
            outcome = await client.request_gemini_json(
                contents=contents,
                models=models,
                timeout_ms=timeout_ms,
                max_attempts=max_attempts,
            )
    except Exception as e:
        console.print(f"[log.error]✗ {error_code(e) or type(e).__name__}[/log.error]  {escape(str(e))}")
        return 1

    console.print(f"[primary]model[/primary] {outcome.model}")
    _print_json(outcome.data)
    return 0


def run_check_config() -> int:
    settings = get_settings()
    table = Table(title="AI JSON client settings", show_lines=False)
    table.add_column("Setting", style="log.key")
    table.add_column("Value", style="log.val")
    rows = [
        ("OPENAI_API_KEY", redact(settings.llm.openai_api_key)),
        ("GEMINI_API_KEY", redact(settings.llm.gemini_api_key)),
        ("openai models", ", ".join(settings.default_models("openai"))),
        ("gemini models", ", ".join(settings.default_models("gemini"))),
        ("AI_REQUEST_TIMEOUT_MS", str(settings.ai.timeout_ms)),
        ("AI_REQUEST_MAX_ATTEMPTS", str(settings.ai.max_attempts)),
        ("AI_RETRY_BASE_DELAY_MS", str(settings.ai.base_delay_ms)),
        ("AI_JSON_REPAIR_MAX_TRIM_CHARS", str(settings.ai.json_repair_max_trim_chars)),
        ("AI_MODEL_DEMOTION_THRESHOLD", str(settings.ai.demotion_threshold)),
        ("AI_MODEL_DEMOTION_WINDOW_MS", str(settings.ai.demotion_window_ms)),
        ("PROMETHEUS_METRICS_ENABLED", str(settings.observability.metrics_enabled)),
    ]
    for key, value in rows:
        table.add_row(key, value)
    console.print(table)
    if not settings.llm.openai_api_key:
        console.print("[log.warning]⚠ OPENAI_API_KEY is missing; OpenAI requests will fail fast.[/log.warning]")
    if not settings.llm.gemini_api_key:
        console.print("[log.warning]⚠ GEMINI_API_KEY is missing; Gemini requests will fail fast.[/log.warning]")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Resilient JSON-producing AI client")
    sub = parser.add_subparsers(dest="command")

    parse = sub.add_parser("parse", help="Run the JSON recovery pipeline on model output")
    parse.add_argument("file", nargs="?", default=None, help="File with raw model output (default: stdin)")

    req = sub.add_parser("request", help="Send one JSON request with retry and model fallback")
    req.add_argument("provider", choices=("openai", "gemini"))
    req.add_argument("prompt", help="User prompt")
    req.add_argument("--model", dest="models", action="append", help="Candidate model (repeatable, in order)")
    req.add_argument("--system", help="System instruction")
    req.add_argument("--timeout-ms", type=int, default=None, help="Per-attempt timeout; AI_REQUEST_TIMEOUT_MS if not set")
    req.add_argument("--max-attempts", type=int, default=None, help="Attempts per model; AI_REQUEST_MAX_ATTEMPTS if not set")

    sub.add_parser("check-config", help="Show effective settings with secrets redacted")

    args = parser.parse_args(argv)
    settings = get_settings()
    configure_logging(settings.observability.log_level)

    if args.command == "parse":
        return run_parse(args.file)
    if args.command == "request":
        obs_metrics.start_server(settings.observability.metrics_port)
        return asyncio.run(
            run_request(
                args.provider,
                args.prompt,
                args.models,
                args.system,
                args.timeout_ms,
                args.max_attempts,
            )
        )
    if args.command == "check-config":
        return run_check_config()
    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
