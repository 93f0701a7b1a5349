"""
AI JSON client: the two public entry points, one per provider family.

Provides a clean abstraction over OpenAI and Gemini so that application code
gets back ``CallOutcome(model, data, raw_text)`` or a single error, never a
half-parsed response.

Design decisions:
  - Each client owns its ModelHealthTracker unless one is injected, so
    independent clients never share health signals by accident
  - Per-call timeout/attempt/backoff knobs override the AI_REQUEST_* settings
  - Only the last model's last error surfaces; earlier failures are logged
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any, Optional, Union

import structlog

from ai_json_client.config import Settings, get_settings, redact
from ai_json_client.errors import ConfigurationError
from ai_json_client.health import ModelHealthTracker
from ai_json_client.models import CallOutcome, RequestDescriptor
from ai_json_client.providers.base import ChatModelFactory
from ai_json_client.providers.gemini import GeminiJSONAdapter
from ai_json_client.providers.openai import OpenAIJSONAdapter
from ai_json_client.request_builders import (
    GeminiRequestBuilder,
    OpenAIChatRequestBuilder,
    RequestBody,
    RequestBuilder,
    as_request_builder,
)

logger = structlog.get_logger()

BuildRequest = Union[RequestBuilder, Callable[[str], Union[RequestBody, Mapping[str, Any]]]]


class AIJsonClient:
    """
    JSON-producing AI client with per-model retry, fallback and health demotion.

    - ``request_openai_json``: OpenAI chat models (json_object response format).
    - ``request_gemini_json``: Gemini models (application/json MIME type).
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        health: Optional[ModelHealthTracker] = None,
        openai_model_factory: Optional[ChatModelFactory] = None,
        gemini_model_factory: Optional[ChatModelFactory] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._health = health or ModelHealthTracker(
            demotion_threshold=self._settings.ai.demotion_threshold,
            failure_window_ms=self._settings.ai.demotion_window_ms,
        )
        self._openai = OpenAIJSONAdapter(self._health, model_factory=openai_model_factory)
        self._gemini = GeminiJSONAdapter(self._health, model_factory=gemini_model_factory)
        logger.info(
            "ai_json_client_initialized",
            openai_key=redact(self._settings.llm.openai_api_key),
            gemini_key=redact(self._settings.llm.gemini_api_key),
            timeout_ms=self._settings.ai.timeout_ms,
            max_attempts=self._settings.ai.max_attempts,
        )

    @property
    def health(self) -> ModelHealthTracker:
        return self._health

    def _models_for(self, provider: str, models: Optional[Iterable[str]]) -> Iterable[str]:
        return self._settings.default_models(provider) if models is None else models

    async def request_openai_json(
        self,
        *,
        messages: Optional[Sequence[Any]] = None,
        build_request: Optional[BuildRequest] = None,
        models: Optional[Iterable[str]] = None,
        json_mode: bool = True,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout_ms: Optional[int] = None,
        max_attempts: Optional[int] = None,
        base_delay_ms: Optional[int] = None,
    ) -> CallOutcome:
        """Ask OpenAI models for JSON, falling back across ``models`` in order.

        Pass either static ``messages`` or ``build_request`` (a RequestBuilder
        or ``fn(model)`` returning a RequestBody / chat-completions payload).

        Raises:
            ConfigurationError: no models, no request, or no API key.
            Exception: the last model's last error when every model failed.
        """
        if build_request is not None:
            builder = as_request_builder(build_request)
        elif messages:
            builder = OpenAIChatRequestBuilder(
                messages,
                json_mode=json_mode,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        else:
            raise ConfigurationError("OpenAI request needs messages or build_request")

        descriptor = RequestDescriptor.create(
            self._models_for("openai", models),
            builder,
            provider="OpenAI",
            timeout_ms=timeout_ms,
            max_attempts=max_attempts,
            base_delay_ms=base_delay_ms,
        )
        return await self._openai.request_json(descriptor)

    async def request_gemini_json(
        self,
        *,
        contents: Union[str, Sequence[Any], None] = None,
        build_request: Optional[BuildRequest] = None,
        models: Optional[Iterable[str]] = None,
        generation_config: Optional[Mapping[str, Any]] = None,
        timeout_ms: Optional[int] = None,
        max_attempts: Optional[int] = None,
        base_delay_ms: Optional[int] = None,
    ) -> CallOutcome:
        """Ask Gemini models for JSON, falling back across ``models`` in order.

        ``generation_config`` accepts camelCase or snake_case keys
        (``responseMimeType`` / ``response_mime_type``).
        """
        if build_request is not None:
            builder = as_request_builder(build_request)
        elif contents:
            builder = GeminiRequestBuilder(contents, generation_config)
        else:
            raise ConfigurationError("Gemini request needs contents or build_request")

        descriptor = RequestDescriptor.create(
            self._models_for("gemini", models),
            builder,
            provider="Gemini",
            timeout_ms=timeout_ms,
            max_attempts=max_attempts,
            base_delay_ms=base_delay_ms,
        )
        return await self._gemini.request_json(descriptor)
