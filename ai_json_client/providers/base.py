"""
Shared model-fallback loop for provider adapters.

Models are tried one at a time in health-priority order. Each model gets the
full retry budget; the first model whose output parses wins and later models
are never called. Configuration errors stop the loop immediately; any other
failure is recorded against the model and the next one is tried.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Callable
from functools import partial
from typing import Any, ClassVar, Optional

import structlog
from langchain_core.language_models import BaseChatModel

from ai_json_client.errors import ConfigurationError, error_code, error_status
from ai_json_client.health import ModelHealthTracker
from ai_json_client.json_recovery import parse_model_json
from ai_json_client.models import CallOutcome, RequestDescriptor
from ai_json_client.observability import metrics as obs_metrics
from ai_json_client.request_builders import RequestBody, RequestBuilder
from ai_json_client.retry import run_with_retry

logger = structlog.get_logger()

# (model_name, **params) -> chat model
ChatModelFactory = Callable[..., BaseChatModel]


def extract_message_text(content: Any) -> str:
    """Flatten LangChain message content (str or list of parts) into trimmed text."""
    if isinstance(content, str):
        return content.strip()
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict) and isinstance(item.get("text"), str):
                # "text" and "output_text" parts both carry .text
                parts.append(item["text"])
            elif isinstance(getattr(item, "text", None), str):
                parts.append(item.text)
        return "\n".join(p for p in parts if p).strip()
    return ""


class JSONProviderAdapter(ABC):
    """One backend family: call a model, get its text, parse it, report health."""

    provider: ClassVar[str] = ""

    def __init__(
        self,
        health: ModelHealthTracker,
        model_factory: Optional[ChatModelFactory] = None,
    ) -> None:
        self._health = health
        self._model_factory = model_factory
        self._chat_models: dict[tuple[str, str], BaseChatModel] = {}

    @abstractmethod
    def default_model_factory(self, model: str, **params: Any) -> BaseChatModel:
        """Create the SDK-backed chat model; raises ConfigurationError without credentials."""

    def chat_model(self, model: str, params: Optional[dict[str, Any]] = None) -> BaseChatModel:
        """Chat model for (model, params), created on first use and cached."""
        params = params or {}
        key = (model, json.dumps(params, sort_keys=True, default=str))
        if key not in self._chat_models:
            factory = self._model_factory or self.default_model_factory
            self._chat_models[key] = factory(model, **params)
        return self._chat_models[key]

    @abstractmethod
    async def generate_text(self, model: str, body: RequestBody) -> str:
        """Issue one backend call and return its non-empty text output."""

    async def _attempt(self, model: str, builder: RequestBuilder) -> tuple[str, Any]:
        body = builder.build(model)
        async with obs_metrics.track_llm_call(model=model, provider=self.provider):
            text = await self.generate_text(model, body)
        return text, parse_model_json(text)

    async def request_json(self, descriptor: RequestDescriptor) -> CallOutcome:
        """Try each candidate model until one returns parseable JSON.

        Raises:
            ConfigurationError: immediately, without trying further models.
            Exception: the last model's last error once every model failed.
        """
        models = self._health.prioritize(descriptor.models)
        if not models:
            raise ConfigurationError(f"No {self.provider} model provided for AI request")
        last_error: Optional[BaseException] = None

        for index, model in enumerate(models):
            try:
                raw_text, data = await run_with_retry(
                    partial(self._attempt, model, descriptor.builder),
                    label=f"{self.provider}:{model}",
                    timeout_ms=descriptor.timeout_ms,
                    max_attempts=descriptor.max_attempts,
                    base_delay_ms=descriptor.base_delay_ms,
                )
            except ConfigurationError:
                raise
            except Exception as e:
                last_error = e
                self._health.register_failure(model, e)
                code = error_code(e) or type(e).__name__
                logger.warning(
                    "llm_model_failed",
                    provider=self.provider,
                    model=model,
                    error_code=code,
                    status=error_status(e),
                    error=str(e)[:200],
                    remaining_models=models[index + 1 :],
                )
                obs_metrics.record_llm_fallback(provider=self.provider, failed_model=model, error_code=code)
                continue

            self._health.register_success(model)
            logger.info(
                "ai_request_succeeded",
                provider=self.provider,
                model=model,
                fallback=index > 0,
                chars=len(raw_text),
            )
            return CallOutcome(model=model, data=data, raw_text=raw_text)

        raise last_error
