"""
Retry/timeout orchestration for a single backend operation.

Each attempt races the operation against a deadline; the loser is cancelled.
Retryable failures (see errors.is_retryable_error) are retried with exponential
backoff, base_delay * 2^(attempt-1) and no jitter. The last error propagates
unchanged once attempts run out or a non-retryable error occurs.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Optional, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from ai_json_client.config import get_settings
from ai_json_client.errors import (
    AITimeoutError,
    ConfigurationError,
    error_code,
    error_status,
    is_retryable_error,
)
from ai_json_client.observability import metrics as obs_metrics

logger = structlog.get_logger()
R = TypeVar("R")


async def call_with_timeout(
    operation: Callable[[], Awaitable[R]],
    timeout_ms: int,
    label: str = "ai_request",
) -> R:
    """Run one attempt; raise AITimeoutError (and cancel the attempt) past the deadline."""
    try:
        return await asyncio.wait_for(operation(), timeout=timeout_ms / 1000)
    except asyncio.TimeoutError as e:
        raise AITimeoutError(f"{label} timed out after {timeout_ms}ms") from e


def _log_retry(label: str) -> Callable[[RetryCallState], None]:
    def before_sleep(rs: RetryCallState) -> None:
        exc = rs.outcome.exception() if rs.outcome else None
        code = error_code(exc) if exc else ""
        logger.warning(
            "llm_retry",
            label=label,
            attempt=rs.attempt_number,
            next_delay_s=round(rs.next_action.sleep, 3) if rs.next_action else None,
            error_code=code or type(exc).__name__,
            status=error_status(exc) if exc else None,
            error=str(exc)[:200] if exc else "unknown",
        )
        obs_metrics.record_llm_retry(label=label, error_code=code or type(exc).__name__)

    return before_sleep


async def run_with_retry(
    operation: Callable[[], Awaitable[R]],
    *,
    label: str = "ai_request",
    timeout_ms: Optional[int] = None,
    max_attempts: Optional[int] = None,
    base_delay_ms: Optional[int] = None,
) -> R:
    """
    Run ``operation`` with a per-attempt deadline and classified retries.

    Omitted knobs default to the AI_REQUEST_* settings.

    Raises:
        ConfigurationError: invalid tuning values (nothing is attempted).
        AITimeoutError: the final attempt timed out.
        Exception: whatever the final attempt raised otherwise.
    """
    settings = get_settings().ai
    timeout_ms = settings.timeout_ms if timeout_ms is None else timeout_ms
    max_attempts = settings.max_attempts if max_attempts is None else max_attempts
    base_delay_ms = settings.base_delay_ms if base_delay_ms is None else base_delay_ms

    if max_attempts < 1:
        raise ConfigurationError(f"max_attempts must be >= 1 (got {max_attempts})")
    if timeout_ms <= 0:
        raise ConfigurationError(f"timeout_ms must be > 0 (got {timeout_ms})")
    if base_delay_ms < 0:
        raise ConfigurationError(f"base_delay_ms must be >= 0 (got {base_delay_ms})")

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=base_delay_ms / 1000, exp_base=2, min=0),
        retry=retry_if_exception(is_retryable_error),
        before_sleep=_log_retry(label),
        reraise=True,
    )
    return await retrying(call_with_timeout, operation, timeout_ms, label)
