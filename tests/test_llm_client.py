import asyncio
from types import SimpleNamespace

import pytest

from creative_studio.llm.client import LLMClient, LLMClientConfigError, LLMGenerationParams


def test_openai_text_format_lifts_chat_completions_json_schema() -> None:
    response_format = {
        "type": "json_schema",
        "json_schema": {"name": "ReasoningStep", "strict": True, "schema": {"type": "object"}},
    }

    fmt = LLMClient._openai_text_format_from_response_format(response_format)

    assert fmt["type"] == "json_schema"
    assert fmt["name"] == "ReasoningStep"
    assert fmt["schema"] == {"type": "object"}
    assert "json_schema" not in fmt


def test_openai_text_format_passes_through_responses_shape() -> None:
    response_format = {"type": "json_schema", "name": "ReasoningStep", "schema": {"type": "object"}, "strict": True}

    assert LLMClient._openai_text_format_from_response_format(response_format) == response_format


def test_openai_text_format_errors_on_missing_name() -> None:
    response_format = {"type": "json_schema", "json_schema": {"strict": True, "schema": {"type": "object"}}}

    with pytest.raises(ValueError, match=r"text\.format\.name"):
        LLMClient._openai_text_format_from_response_format(response_format)


def test_openai_text_format_errors_on_missing_schema() -> None:
    response_format = {"type": "json_schema", "json_schema": {"name": "ReasoningStep", "strict": True}}

    with pytest.raises(ValueError, match=r"text\.format\.schema"):
        LLMClient._openai_text_format_from_response_format(response_format)


def test_missing_openai_key_raises_config_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    with pytest.raises(LLMClientConfigError, match="OPENAI_API_KEY"):
        asyncio.run(LLMClient().generate_text("hello", LLMGenerationParams(model="gpt-4o")))


def test_chat_completion_request_carries_response_format() -> None:
    captured: dict = {}

    class FakeCompletions:
        async def create(self, **kwargs):
            captured.update(kwargs)
            message = SimpleNamespace(content='{"ok": true}')
            return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    client = LLMClient()
    client._openai_client = SimpleNamespace(chat=SimpleNamespace(completions=FakeCompletions()))
    response_format = {"type": "json_schema", "json_schema": {"name": "X", "schema": {"type": "object"}}}

    text = asyncio.run(
        client.generate_text(
            "hello",
            LLMGenerationParams(model="gpt-4o", temperature=0.7, response_format=response_format),
        )
    )

    assert text == '{"ok": true}'
    assert captured["model"] == "gpt-4o"
    assert captured["temperature"] == 0.7
    assert captured["response_format"] == response_format
    assert captured["messages"] == [{"role": "user", "content": "hello"}]
