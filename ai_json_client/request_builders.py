"""
Request shaping: ``build(model) -> RequestBody``, one strategy per provider family.

A RequestBody carries the LangChain message input plus two kinds of model
kwargs: ``bindings`` are applied per call via ``chat_model.bind(...)``;
``model_params`` are construction-time generation settings (Gemini's
response_mime_type, for instance) used when the adapter creates the model.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from langchain_core.messages import HumanMessage

from ai_json_client.errors import ConfigurationError

# Model name prefixes that identify OpenAI reasoning models. These burn tokens
# internally, so need a higher max_tokens budget, and reject response_format
# json_object and custom temperature.
_REASONING_MODEL_PREFIXES = ("o1", "o3", "o4")
_REASONING_MODEL_MAX_TOKENS = 16000

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


@dataclass
class RequestBody:
    """Provider-ready input for one model."""

    messages: list[Any]
    bindings: dict[str, Any] = field(default_factory=dict)
    model_params: dict[str, Any] = field(default_factory=dict)


class RequestBuilder(ABC):
    """Builds the request for a given model id."""

    @abstractmethod
    def build(self, model: str) -> RequestBody:
        ...


def is_reasoning_model(model: str) -> bool:
    """Return True for reasoning models that must not use json_mode."""
    name = model.lower().rsplit("/", 1)[-1]
    return name.startswith(_REASONING_MODEL_PREFIXES)


class OpenAIChatRequestBuilder(RequestBuilder):
    """Static chat messages, JSON-object response format where the model supports it."""

    def __init__(
        self,
        messages: Sequence[Any],
        *,
        json_mode: bool = True,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> None:
        if not messages:
            raise ConfigurationError("OpenAI request needs at least one message")
        self._messages = list(messages)
        self._json_mode = json_mode
        self._temperature = temperature
        self._max_tokens = max_tokens

    def build(self, model: str) -> RequestBody:
        bindings: dict[str, Any] = {}
        if is_reasoning_model(model):
            bindings["max_tokens"] = _REASONING_MODEL_MAX_TOKENS
        else:
            if self._json_mode:
                bindings["response_format"] = {"type": "json_object"}
            if self._temperature is not None:
                bindings["temperature"] = self._temperature
            if self._max_tokens is not None:
                bindings["max_tokens"] = self._max_tokens
        return RequestBody(messages=list(self._messages), bindings=bindings)


def normalize_generation_config(config: Optional[Mapping[str, Any]]) -> dict[str, Any]:
    """Accept camelCase (``responseMimeType``) or snake_case generation config keys."""
    return {_CAMEL_RE.sub("_", key).lower(): value for key, value in (config or {}).items()}


def _contents_to_messages(contents: Union[str, Sequence[Any]]) -> list[Any]:
    if isinstance(contents, str):
        return [HumanMessage(content=contents)]
    items = list(contents)
    if items and all(isinstance(item, str) for item in items):
        if len(items) == 1:
            return [HumanMessage(content=items[0])]
        return [HumanMessage(content=[{"type": "text", "text": item} for item in items])]
    return items


class GeminiRequestBuilder(RequestBuilder):
    """Prompt parts plus generation config; JSON MIME type unless told otherwise."""

    def __init__(
        self,
        contents: Union[str, Sequence[Any]],
        generation_config: Optional[Mapping[str, Any]] = None,
    ) -> None:
        messages = _contents_to_messages(contents)
        if not messages:
            raise ConfigurationError("Gemini request needs non-empty contents")
        self._messages = messages
        self._params = normalize_generation_config(generation_config)
        self._params.setdefault("response_mime_type", "application/json")

    def build(self, model: str) -> RequestBody:
        return RequestBody(messages=list(self._messages), model_params=dict(self._params))


class CallableRequestBuilder(RequestBuilder):
    """Adapts ``fn(model)`` returning a RequestBody or a raw payload dict.

    Payload dicts follow the chat-completions shape: ``messages`` is required,
    ``model`` is ignored, every other key becomes a per-call binding.
    """

    def __init__(self, fn: Callable[[str], Union[RequestBody, Mapping[str, Any]]]) -> None:
        self._fn = fn

    def build(self, model: str) -> RequestBody:
        result = self._fn(model)
        if isinstance(result, RequestBody):
            return result
        if isinstance(result, Mapping):
            payload = dict(result)
            payload.pop("model", None)
            messages = payload.pop("messages", None)
            if not messages:
                raise ConfigurationError(f"Request payload for model {model} has no messages")
            return RequestBody(messages=list(messages), bindings=payload)
        raise ConfigurationError(
            f"Request builder for model {model} returned {type(result).__name__}, "
            "expected RequestBody or dict"
        )


def as_request_builder(
    value: Union[RequestBuilder, Callable[[str], Union[RequestBody, Mapping[str, Any]]]],
) -> RequestBuilder:
    if isinstance(value, RequestBuilder):
        return value
    if callable(value):
        return CallableRequestBuilder(value)
    raise ConfigurationError(f"Not a request builder: {type(value).__name__}")
