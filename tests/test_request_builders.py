"""Tests for request shaping strategies and request descriptors."""

import pytest
from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import ValidationError

from ai_json_client.errors import ConfigurationError
from ai_json_client.models import RequestDescriptor, normalize_models
from ai_json_client.request_builders import (
    CallableRequestBuilder,
    GeminiRequestBuilder,
    OpenAIChatRequestBuilder,
    RequestBody,
    as_request_builder,
    is_reasoning_model,
    normalize_generation_config,
)


class TestOpenAIChatRequestBuilder:
    def test_json_mode_for_chat_models(self) -> None:
        builder = OpenAIChatRequestBuilder([("human", "hi")], temperature=0.0, max_tokens=256)
        body = builder.build("gpt-4o")
        assert body.messages == [("human", "hi")]
        assert body.bindings == {
            "response_format": {"type": "json_object"},
            "temperature": 0.0,
            "max_tokens": 256,
        }

    def test_json_mode_can_be_disabled(self) -> None:
        body = OpenAIChatRequestBuilder([("human", "hi")], json_mode=False).build("gpt-4o-mini")
        assert body.bindings == {}

    @pytest.mark.parametrize("model", ["o1", "o3-mini", "o4-mini", "openai/o3"])
    def test_reasoning_models_get_token_budget_not_json_mode(self, model: str) -> None:
        assert is_reasoning_model(model)
        body = OpenAIChatRequestBuilder([("human", "hi")], temperature=0.5).build(model)
        assert body.bindings == {"max_tokens": 16000}

    def test_gpt_models_are_not_reasoning_models(self) -> None:
        assert not is_reasoning_model("gpt-4o")

    def test_empty_messages_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            OpenAIChatRequestBuilder([])

    def test_each_build_returns_fresh_message_list(self) -> None:
        builder = OpenAIChatRequestBuilder([("human", "hi")])
        first = builder.build("gpt-4o")
        first.messages.append(("human", "mutated"))
        assert builder.build("gpt-4o").messages == [("human", "hi")]


class TestGeminiRequestBuilder:
    def test_string_contents_default_to_json_mime_type(self) -> None:
        body = GeminiRequestBuilder("Grade this essay").build("gemini-2.0-flash")
        assert body.messages == [HumanMessage(content="Grade this essay")]
        assert body.model_params == {"response_mime_type": "application/json"}
        assert body.bindings == {}

    def test_camel_case_generation_config(self) -> None:
        config = {"responseMimeType": "text/plain", "maxOutputTokens": 512, "temperature": 0.1}
        body = GeminiRequestBuilder("hi", config).build("gemini-2.0-flash")
        assert body.model_params == {
            "response_mime_type": "text/plain",
            "max_output_tokens": 512,
            "temperature": 0.1,
        }

    def test_string_parts_become_one_message(self) -> None:
        body = GeminiRequestBuilder(["You are a grader.", "Grade this."]).build("gemini-2.0-flash")
        assert len(body.messages) == 1
        assert body.messages[0].content == [
            {"type": "text", "text": "You are a grader."},
            {"type": "text", "text": "Grade this."},
        ]

    def test_message_objects_pass_through(self) -> None:
        messages = [SystemMessage(content="sys"), HumanMessage(content="hi")]
        assert GeminiRequestBuilder(messages).build("gemini-2.0-flash").messages == messages

    def test_empty_contents_rejected(self) -> None:
        with pytest.raises(ConfigurationError):
            GeminiRequestBuilder([])

    def test_normalize_generation_config_keeps_snake_case(self) -> None:
        assert normalize_generation_config({"top_p": 0.9, "topK": 3}) == {"top_p": 0.9, "top_k": 3}
        assert normalize_generation_config(None) == {}


class TestCallableRequestBuilder:
    def test_payload_dict(self) -> None:
        builder = CallableRequestBuilder(
            lambda model: {"model": model, "messages": [("human", model)], "temperature": 0}
        )
        body = builder.build("gpt-4o-mini")
        assert body.messages == [("human", "gpt-4o-mini")]
        assert body.bindings == {"temperature": 0}

    def test_request_body_passes_through(self) -> None:
        expected = RequestBody(messages=[("human", "hi")], bindings={"max_tokens": 10})
        assert CallableRequestBuilder(lambda model: expected).build("m") is expected

    def test_payload_without_messages_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="has no messages"):
            CallableRequestBuilder(lambda model: {"model": model}).build("m")

    def test_unexpected_return_type_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="expected RequestBody or dict"):
            CallableRequestBuilder(lambda model: "hi").build("m")

    def test_as_request_builder(self) -> None:
        builder = OpenAIChatRequestBuilder([("human", "hi")])
        assert as_request_builder(builder) is builder
        assert isinstance(as_request_builder(lambda model: {"messages": ["x"]}), CallableRequestBuilder)
        with pytest.raises(ConfigurationError):
            as_request_builder(42)


class TestRequestDescriptor:
    def test_models_deduplicated_in_order(self) -> None:
        assert normalize_models(["gpt-4o", " gpt-4o ", "", "gpt-4o-mini", "gpt-4o"]) == [
            "gpt-4o",
            "gpt-4o-mini",
        ]

    @pytest.mark.parametrize("models", [None, [], ["", "   "]])
    def test_empty_model_list_rejected(self, models) -> None:
        with pytest.raises(ConfigurationError, match="No OpenAI model provided for AI request"):
            normalize_models(models, "OpenAI")

    def test_direct_construction_normalizes_models(self) -> None:
        descriptor = RequestDescriptor(
            models=["m1", " m1", "", "m2"],
            builder=OpenAIChatRequestBuilder([("human", "hi")]),
        )
        assert descriptor.models == ("m1", "m2")

    def test_direct_construction_rejects_empty_models(self) -> None:
        with pytest.raises(ConfigurationError, match="No AI model provided"):
            RequestDescriptor(models=(), builder=OpenAIChatRequestBuilder([("human", "hi")]))

    def test_descriptor_is_immutable(self) -> None:
        descriptor = RequestDescriptor.create(
            ["m1", "m1", "m2"],
            OpenAIChatRequestBuilder([("human", "hi")]),
            timeout_ms=1000,
        )
        assert descriptor.models == ("m1", "m2")
        with pytest.raises(ValidationError):
            descriptor.timeout_ms = 5
