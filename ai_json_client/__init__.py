"""Resilient JSON-producing AI request client for OpenAI and Gemini models."""

from ai_json_client.client import AIJsonClient
from ai_json_client.errors import (
    AIClientError,
    AITimeoutError,
    ConfigurationError,
    EmptyContentError,
    ModelJSONParseError,
    ModelRefusalError,
    is_retryable_error,
)
from ai_json_client.health import ModelHealthTracker
from ai_json_client.json_recovery import parse_model_json
from ai_json_client.models import CallOutcome, ModelHealthRecord, RequestDescriptor
from ai_json_client.request_builders import (
    CallableRequestBuilder,
    GeminiRequestBuilder,
    OpenAIChatRequestBuilder,
    RequestBody,
    RequestBuilder,
)
from ai_json_client.retry import run_with_retry

__all__ = [
    "AIClientError",
    "AIJsonClient",
    "AITimeoutError",
    "CallOutcome",
    "CallableRequestBuilder",
    "ConfigurationError",
    "EmptyContentError",
    "GeminiRequestBuilder",
    "ModelHealthRecord",
    "ModelHealthTracker",
    "ModelJSONParseError",
    "ModelRefusalError",
    "OpenAIChatRequestBuilder",
    "RequestBody",
    "RequestBuilder",
    "RequestDescriptor",
    "is_retryable_error",
    "parse_model_json",
    "run_with_retry",
]
