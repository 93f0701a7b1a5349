"""OpenAI chat-completions adapter (LangChain ChatOpenAI)."""

from __future__ import annotations

from typing import Any

from langchain_core.language_models import BaseChatModel
from langchain_openai import ChatOpenAI

from ai_json_client.config import get_settings
from ai_json_client.errors import ConfigurationError, EmptyContentError, ModelRefusalError
from ai_json_client.providers.base import JSONProviderAdapter, extract_message_text
from ai_json_client.request_builders import RequestBody


class OpenAIJSONAdapter(JSONProviderAdapter):
    """JSON requests against OpenAI chat models, with model fallback."""

    provider = "openai"

    def default_model_factory(self, model: str, **params: Any) -> BaseChatModel:
        settings = get_settings().llm
        api_key = settings.openai_api_key.strip()
        if not api_key:
            raise ConfigurationError("OpenAI API key is not configured (set OPENAI_API_KEY)")
        kwargs: dict[str, Any] = {
            "temperature": settings.temperature,
            "max_tokens": settings.max_tokens,
            **params,
        }
        # max_retries=0: the retry orchestrator owns retries and deadlines
        return ChatOpenAI(model=model, api_key=api_key, max_retries=0, **kwargs)

    async def generate_text(self, model: str, body: RequestBody) -> str:
        chat = self.chat_model(model, body.model_params)
        if body.bindings:
            chat = chat.bind(**body.bindings)
        response = await chat.ainvoke(body.messages)

        text = extract_message_text(getattr(response, "content", response))
        if text:
            return text

        extra = getattr(response, "additional_kwargs", None) or {}
        metadata = getattr(response, "response_metadata", None) or {}
        refusal = str(extra.get("refusal") or "").strip()
        finish_reason = str(metadata.get("finish_reason") or "").strip()
        if refusal:
            raise ModelRefusalError(
                f"OpenAI refusal for model {model}: {refusal}",
                model=model,
                refusal=refusal,
            )
        if finish_reason:
            raise EmptyContentError(
                f"OpenAI returned empty content for model {model} (finish_reason={finish_reason})",
                model=model,
                finish_reason=finish_reason,
            )
        raise EmptyContentError(f"OpenAI returned empty content for model {model}", model=model)
