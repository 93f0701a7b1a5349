"""Shared pytest fixtures for AI JSON client tests."""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock

import pytest
import structlog
from langchain_core.messages import AIMessage

from ai_json_client.client import AIJsonClient
from ai_json_client.config import get_settings
from ai_json_client.health import ModelHealthTracker

# Anything a developer shell might export that would change test behaviour
_ENV_VARS = (
    "OPENAI_API_KEY",
    "OPEN_API_KEY",
    "GEMINI_API_KEY",
    "GOOGLE_API_KEY",
    "OPENAI_PRIMARY_MODEL",
    "OPENAI_FALLBACK_MODEL",
    "GEMINI_MODELS",
    "AI_REQUEST_TIMEOUT_MS",
    "AI_REQUEST_MAX_ATTEMPTS",
    "AI_JSON_REPAIR_MAX_TRIM_CHARS",
    "AI_MODEL_DEMOTION_THRESHOLD",
    "AI_MODEL_DEMOTION_WINDOW_MS",
    "PROMETHEUS_METRICS_ENABLED",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch):
    """Fresh settings per test, no backoff sleeps, default structlog config."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("AI_RETRY_BASE_DELAY_MS", "0")
    get_settings.cache_clear()
    structlog.reset_defaults()
    yield
    get_settings.cache_clear()
    structlog.reset_defaults()


def ai_message(content: Any = "", **metadata: Any) -> AIMessage:
    """AIMessage as a chat model returns it; ``refusal`` goes to additional_kwargs."""
    refusal = metadata.pop("refusal", None)
    return AIMessage(
        content=content,
        response_metadata=metadata,
        additional_kwargs={"refusal": refusal} if refusal else {},
    )


async def hang(*args: Any, **kwargs: Any) -> AIMessage:
    """Backend call that never finishes within a test deadline."""
    await asyncio.sleep(5)
    return ai_message('{"late": true}')


class FakeChatModel:
    """Stands in for a LangChain chat model: ``bind`` and ``ainvoke`` only."""

    def __init__(self, responses: list[Any]) -> None:
        self.ainvoke = AsyncMock(side_effect=responses)
        self.bound: list[dict[str, Any]] = []

    def bind(self, **kwargs: Any) -> FakeChatModel:
        self.bound.append(kwargs)
        return self


class FakeModelFactory:
    """Chat-model factory with a scripted model per name."""

    def __init__(self) -> None:
        self.models: dict[str, FakeChatModel] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []

    def script(self, model: str, *responses: Any) -> FakeChatModel:
        self.models[model] = FakeChatModel(list(responses))
        return self.models[model]

    def __call__(self, model: str, **params: Any) -> FakeChatModel:
        self.calls.append((model, params))
        return self.models[model]


class FakeClock:
    """Controllable monotonic clock for the health tracker."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingHealthTracker(ModelHealthTracker):
    """Tracker that also remembers every failure reported to it."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.reported: list[tuple[str, BaseException]] = []

    def register_failure(self, model: str, error: BaseException) -> bool:
        self.reported.append((model, error))
        return super().register_failure(model, error)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def tracker(clock: FakeClock) -> RecordingHealthTracker:
    return RecordingHealthTracker(demotion_threshold=3, failure_window_ms=60_000, clock=clock)


@pytest.fixture
def factory() -> FakeModelFactory:
    return FakeModelFactory()


@pytest.fixture
def client(tracker: RecordingHealthTracker, factory: FakeModelFactory) -> AIJsonClient:
    """Client wired to fake chat models for both provider families."""
    return AIJsonClient(
        health=tracker,
        openai_model_factory=factory,
        gemini_model_factory=factory,
    )
