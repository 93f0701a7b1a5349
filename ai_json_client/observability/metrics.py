"""
Prometheus metrics for the AI JSON client.

All metrics are no-op when observability.metrics_enabled is False.
Exposes track_llm_call, record_llm_retry, record_llm_fallback,
record_model_demotion, record_json_recovery, start_server.
"""

from __future__ import annotations

import contextlib
import threading
import time
from typing import Any

import structlog
from prometheus_client import (
    Counter,
    Histogram,
    start_http_server as prometheus_start_http_server,
)

logger = structlog.get_logger()


def _enabled() -> bool:
    from ai_json_client.config import get_settings

    return bool(get_settings().observability.metrics_enabled)


# Lazy registry: only create metrics when enabled and first used
_metrics_created = False


def _ensure_metrics() -> bool:
    global _metrics_created
    if _metrics_created or not _enabled():
        return _metrics_created
    _create_metrics()
    _metrics_created = True
    return True


def _create_metrics() -> None:
    """Create all Prometheus metrics (called once when enabled)."""
    _llm_duration = Histogram(
        "llm_call_duration_seconds",
        "Backend call latency per attempt",
        ["model", "provider"],
        buckets=[0.5, 1, 2, 5, 10, 30, 60],
    )
    _llm_errors = Counter(
        "llm_call_errors_total",
        "Backend call errors per attempt",
        ["model", "provider", "error_type"],
    )
    _llm_retries = Counter(
        "llm_call_retries_total",
        "Retries scheduled after a retryable failure",
        ["label", "error_code"],
    )
    _llm_fallback = Counter(
        "llm_model_fallback_total",
        "Fallback from a failed model to the next candidate",
        ["provider", "failed_model", "error_code"],
    )
    _llm_demotions = Counter(
        "llm_model_demotions_total",
        "Models demoted after repeated content failures",
        ["model"],
    )
    _json_recovery = Counter(
        "json_recovery_stage_total",
        "Recovery pipeline stage that produced the parsed value",
        ["stage"],
    )

    # Store on module for access from MetricsCollector
    _registry = {
        "llm_duration": _llm_duration,
        "llm_errors": _llm_errors,
        "llm_retries": _llm_retries,
        "llm_fallback": _llm_fallback,
        "llm_demotions": _llm_demotions,
        "json_recovery": _json_recovery,
    }
    setattr(_MetricsCollector, "_registry", _registry)


class _MetricsCollector:
    """Collector that delegates to Prometheus when enabled, no-op otherwise."""

    _registry: dict[str, Any] = {}

    def _get(self, name: str) -> Any:
        _ensure_metrics()
        return self._registry.get(name)

    @contextlib.asynccontextmanager
    async def track_llm_call(self, model: str = "", provider: str = ""):
        m = self._get("llm_duration")
        start = time.perf_counter()
        try:
            yield
        except Exception as e:
            err = self._get("llm_errors")
            if err:
                err.labels(
                    model=model or "unknown",
                    provider=provider or "unknown",
                    error_type=type(e).__name__,
                ).inc()
            raise
        finally:
            if m:
                m.labels(
                    model=model or "unknown",
                    provider=provider or "unknown",
                ).observe(time.perf_counter() - start)

    def record_llm_retry(self, label: str = "", error_code: str = "") -> None:
        c = self._get("llm_retries")
        if c:
            c.labels(label=(label or "unknown")[:64], error_code=error_code or "unknown").inc()

    def record_llm_fallback(self, provider: str, failed_model: str, error_code: str = "") -> None:
        c = self._get("llm_fallback")
        if c:
            c.labels(
                provider=provider or "unknown",
                failed_model=failed_model or "unknown",
                error_code=error_code or "unknown",
            ).inc()

    def record_model_demotion(self, model: str) -> None:
        c = self._get("llm_demotions")
        if c:
            c.labels(model=model or "unknown").inc()

    def record_json_recovery(self, stage: str) -> None:
        c = self._get("json_recovery")
        if c:
            c.labels(stage=stage).inc()

    def start_server(self, port: int = 8000) -> None:
        if not _enabled():
            return
        _ensure_metrics()

        def run() -> None:
            try:
                prometheus_start_http_server(port, addr="0.0.0.0")
            except OSError as e:
                logger.warning("metrics_server_failed", port=port, error=str(e))

        t = threading.Thread(target=run, daemon=True)
        t.start()


metrics = _MetricsCollector()
