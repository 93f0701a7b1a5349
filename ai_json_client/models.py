"""
Core data models for the AI JSON client.

Pydantic models for the values that cross component boundaries: the health
record owned by the tracker, the immutable per-call request descriptor, and
the outcome handed back to callers.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ai_json_client.errors import ConfigurationError
from ai_json_client.request_builders import RequestBuilder


def normalize_models(models: Optional[Iterable[str]], provider: str = "AI") -> list[str]:
    """Drop blanks and duplicates (first occurrence wins); fail fast on an empty list."""
    seen: set[str] = set()
    normalized: list[str] = []
    for model in models or ():
        name = (model or "").strip()
        if name and name not in seen:
            seen.add(name)
            normalized.append(name)
    if not normalized:
        raise ConfigurationError(f"No {provider} model provided for AI request")
    return normalized


class ModelHealthRecord(BaseModel):
    """Recent content failures for one model. Timestamps are monotonic-clock seconds."""

    model: str
    failures: int = 0
    last_failure_at: Optional[float] = None
    demoted_until: Optional[float] = None

    def is_demoted(self, now: float) -> bool:
        return self.demoted_until is not None and self.demoted_until > now


class RequestDescriptor(BaseModel):
    """One logical AI call. Immutable for the lifetime of the call."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    models: tuple[str, ...]
    builder: RequestBuilder
    timeout_ms: Optional[int] = None
    max_attempts: Optional[int] = None
    base_delay_ms: Optional[int] = None

    @field_validator("models", mode="before")
    @classmethod
    def _normalize(cls, value: Any) -> list[str]:
        return normalize_models(value)

    @classmethod
    def create(
        cls,
        models: Optional[Iterable[str]],
        builder: RequestBuilder,
        *,
        provider: str = "AI",
        timeout_ms: Optional[int] = None,
        max_attempts: Optional[int] = None,
        base_delay_ms: Optional[int] = None,
    ) -> RequestDescriptor:
        return cls(
            models=tuple(normalize_models(models, provider)),
            builder=builder,
            timeout_ms=timeout_ms,
            max_attempts=max_attempts,
            base_delay_ms=base_delay_ms,
        )


class CallOutcome(BaseModel):
    """Winning model, its parsed JSON and the text it came from."""

    model: str
    data: Any = None
    raw_text: str = Field(default="", repr=False)
