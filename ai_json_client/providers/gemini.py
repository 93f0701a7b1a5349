"""Google Gemini adapter (LangChain ChatGoogleGenerativeAI)."""

from __future__ import annotations

from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_google_genai import ChatGoogleGenerativeAI

from ai_json_client.config import get_settings
from ai_json_client.errors import ConfigurationError, EmptyContentError, ModelRefusalError
from ai_json_client.providers.base import JSONProviderAdapter, extract_message_text
from ai_json_client.request_builders import RequestBody

# Finish reasons meaning the model was stopped by a content filter
_BLOCKED_FINISH_REASONS = frozenset({
    "SAFETY",
    "RECITATION",
    "BLOCKLIST",
    "PROHIBITED_CONTENT",
    "SPII",
})


class GeminiJSONAdapter(JSONProviderAdapter):
    """JSON requests against Gemini models, with model fallback.

    Generation config (response MIME type, temperature, ...) is fixed when the
    model object is created, so models are cached per (name, config).
    """

    provider = "gemini"

    def default_model_factory(self, model: str, **params: Any) -> BaseChatModel:
        settings = get_settings().llm
        api_key = settings.gemini_api_key.strip()
        if not api_key:
            raise ConfigurationError("Gemini API key is not configured (set GEMINI_API_KEY)")
        kwargs: dict[str, Any] = {
            "temperature": settings.temperature,
            "max_output_tokens": settings.max_tokens,
            **params,
        }
        # langchain-google-genai counts max_retries as total attempts, so 1 means no SDK retry.
        # Retries happen in run_with_retry.
        return ChatGoogleGenerativeAI(model=model, google_api_key=api_key, max_retries=1, **kwargs)

    async def generate_text(self, model: str, body: RequestBody) -> str:
        chat = self.chat_model(model, body.model_params)
        if body.bindings:
            chat = chat.bind(**body.bindings)
        response = await chat.ainvoke(body.messages)

        text = extract_message_text(getattr(response, "content", response))
        if text:
            return text

        metadata = getattr(response, "response_metadata", None) or {}
        finish_reason = str(metadata.get("finish_reason") or "").strip()
        block_reason = (metadata.get("prompt_feedback") or {}).get("block_reason")
        if finish_reason.upper() in _BLOCKED_FINISH_REASONS or block_reason:
            reason = finish_reason or str(block_reason)
            raise ModelRefusalError(
                f"Gemini blocked the response for model {model} ({reason})",
                model=model,
                refusal=reason,
            )
        raise EmptyContentError(
            f"Gemini returned empty content for model {model}",
            model=model,
            finish_reason=finish_reason,
        )
