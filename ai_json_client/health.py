"""
Model health tracking: demote models that keep returning unusable content.

Only content failures count (unparseable JSON, empty output); timeouts and
network errors say nothing about the model itself. A demoted model is still
tried, after every healthy candidate, and recovers once its demotion expires.

One tracker is shared by every call made through the same client. There are
no locks: calls interleave only at await points and nothing here awaits.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from typing import Optional

import structlog

from ai_json_client.config import get_settings
from ai_json_client.errors import error_code, is_demotable_error
from ai_json_client.models import ModelHealthRecord
from ai_json_client.observability import metrics as obs_metrics

logger = structlog.get_logger()


class ModelHealthTracker:
    """Sliding-window failure counts and temporary demotions, per model name."""

    def __init__(
        self,
        demotion_threshold: Optional[int] = None,
        failure_window_ms: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        settings = get_settings().ai
        self._threshold = max(1, demotion_threshold if demotion_threshold is not None else settings.demotion_threshold)
        window_ms = failure_window_ms if failure_window_ms is not None else settings.demotion_window_ms
        self._window = max(0, window_ms) / 1000
        self._clock = clock
        self._records: dict[str, ModelHealthRecord] = {}

    @property
    def demotion_threshold(self) -> int:
        return self._threshold

    @property
    def failure_window_s(self) -> float:
        return self._window

    def register_success(self, model: str) -> None:
        self._records.pop(model, None)

    def register_failure(self, model: str, error: BaseException) -> bool:
        """Count a demotable failure. Returns True when this failure demoted the model."""
        if not is_demotable_error(error):
            return False

        now = self._clock()
        record = self._records.get(model)
        if record is None:
            record = ModelHealthRecord(model=model)
            self._records[model] = record

        if record.last_failure_at is not None and now - record.last_failure_at <= self._window:
            record.failures += 1
        else:
            record.failures = 1
        record.last_failure_at = now

        if record.failures < self._threshold:
            return False

        record.demoted_until = now + self._window
        record.failures = 0
        logger.warning(
            "llm_model_demoted",
            model=model,
            threshold=self._threshold,
            demoted_for_s=self._window,
            error_code=error_code(error),
        )
        obs_metrics.record_model_demotion(model)
        return True

    def is_demoted(self, model: str) -> bool:
        record = self._records.get(model)
        return record is not None and record.is_demoted(self._clock())

    def prioritize(self, models: Iterable[str]) -> list[str]:
        """Healthy models first, demoted models last; relative order kept in both groups."""
        now = self._clock()
        self._evict_expired(now)
        healthy: list[str] = []
        demoted: list[str] = []
        for model in models:
            record = self._records.get(model)
            if record is not None and record.is_demoted(now):
                demoted.append(model)
            else:
                healthy.append(model)
        if demoted:
            logger.debug("llm_models_prioritized", healthy=healthy, demoted=demoted)
        return healthy + demoted

    def _evict_expired(self, now: float) -> None:
        stale = [
            name
            for name, record in self._records.items()
            if not record.is_demoted(now)
            and (record.last_failure_at is None or now - record.last_failure_at > self._window)
        ]
        for name in stale:
            del self._records[name]

    def snapshot(self) -> dict[str, ModelHealthRecord]:
        """Copies of the current records, for diagnostics."""
        return {name: record.model_copy() for name, record in self._records.items()}

    def reset(self) -> None:
        self._records.clear()
