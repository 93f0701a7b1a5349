"""Provider adapters: one per backend family, sharing the model-fallback loop."""

from ai_json_client.providers.base import JSONProviderAdapter, extract_message_text
from ai_json_client.providers.gemini import GeminiJSONAdapter
from ai_json_client.providers.openai import OpenAIJSONAdapter

__all__ = [
    "GeminiJSONAdapter",
    "JSONProviderAdapter",
    "OpenAIJSONAdapter",
    "extract_message_text",
]
