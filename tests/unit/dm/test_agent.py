"""Tests for the narrating-agent boundary."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import httpx
import openai
import pytest

from dungeon_chronicle.core.config import AIProviderSettings
from dungeon_chronicle.core.exceptions import AIConnectionError, AIResponseError
from dungeon_chronicle.dm.agent import AgentReply, OpenAINarrator, ToolCall


class FakeCompletions:
    """Stands in for ``client.chat.completions``."""

    def __init__(self, outcomes: list[Any]) -> None:
        self.outcomes = list(outcomes)
        self.calls: list[dict[str, Any]] = []

    def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def _client(outcomes: list[Any]) -> Any:
    return SimpleNamespace(chat=SimpleNamespace(completions=FakeCompletions(outcomes)))


def _response(content: str | None, tool_calls: list[Any] | None = None) -> Any:
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _raw_call(call_id: str, name: str, arguments: str) -> Any:
    return SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=arguments))


@pytest.fixture
def ai_settings() -> AIProviderSettings:
    return AIProviderSettings(model="test-model", max_retries=1, _env_file=None)


class TestToolCall:
    """Tests for decoding raw tool calls."""

    def test_decodes_object(self) -> None:
        """Test JSON objects become the argument dict."""
        call = ToolCall.from_raw("c1", "advance_time", '{"minutes": 5}')

        assert call.arguments == {"minutes": 5}
        assert call.argument_error is None

    def test_missing_arguments(self) -> None:
        """Test absent arguments decode to an empty object."""
        call = ToolCall.from_raw("c1", "end_combat", None)

        assert call.arguments == {}
        assert call.raw_arguments == "{}"

    def test_invalid_json_recorded(self) -> None:
        """Test undecodable arguments are recorded rather than raised."""
        call = ToolCall.from_raw("c1", "roll_dice", "{oops")

        assert call.argument_error is not None
        assert call.argument_error.startswith("arguments are not valid JSON")
        assert call.raw_arguments == "{oops"


class TestAgentReply:
    """Tests for echoing replies back to the model."""

    def test_assistant_message_with_calls(self) -> None:
        """Test tool calls are echoed with their raw arguments."""
        call = ToolCall.from_raw("c1", "roll_dice", '{"expression": "1d6"}')
        reply = AgentReply(tool_calls=[call])

        message = reply.to_assistant_message()

        assert message["content"] is None
        assert message["tool_calls"][0] == {
            "id": "c1",
            "type": "function",
            "function": {"name": "roll_dice", "arguments": '{"expression": "1d6"}'},
        }

    def test_assistant_message_text_only(self) -> None:
        """Test plain replies carry no tool_calls key."""
        message = AgentReply(text="Hello.").to_assistant_message()

        assert message == {"role": "assistant", "content": "Hello."}


class TestOpenAINarrator:
    """Tests for the OpenAI-backed narrator."""

    def test_decodes_reply(self, ai_settings: AIProviderSettings) -> None:
        """Test narration and tool calls are decoded from the response."""
        client = _client(
            [_response("You hear footsteps.", [_raw_call("c1", "advance_time", '{"minutes": 1}')])]
        )
        narrator = OpenAINarrator(settings=ai_settings, client=client)

        reply = narrator.respond([{"role": "user", "content": "Listen"}], [])

        assert reply.text == "You hear footsteps."
        assert reply.model == "test-model"
        assert reply.tool_calls[0].arguments == {"minutes": 1}

    def test_tools_passed_through(self, ai_settings: AIProviderSettings) -> None:
        """Test the tool catalog is sent with automatic tool choice."""
        client = _client([_response("Ok.")])
        narrator = OpenAINarrator(settings=ai_settings, client=client)
        tools = [{"type": "function", "function": {"name": "end_combat"}}]

        narrator.respond([{"role": "user", "content": "Stop"}], tools)

        sent = client.chat.completions.calls[0]
        assert sent["tools"] == tools
        assert sent["tool_choice"] == "auto"
        assert sent["model"] == "test-model"

    def test_no_choices(self, ai_settings: AIProviderSettings) -> None:
        """Test an empty choice list raises AIResponseError."""
        narrator = OpenAINarrator(
            settings=ai_settings, client=_client([SimpleNamespace(choices=[])])
        )

        with pytest.raises(AIResponseError):
            narrator.respond([{"role": "user", "content": "Hi"}], [])

    def test_connection_error_mapped(self, ai_settings: AIProviderSettings) -> None:
        """Test SDK connection errors surface as AIConnectionError."""
        request = httpx.Request("POST", "https://example.invalid/chat/completions")
        client = _client([openai.APIConnectionError(request=request)])
        narrator = OpenAINarrator(settings=ai_settings, client=client)

        with pytest.raises(AIConnectionError) as exc_info:
            narrator.respond([{"role": "user", "content": "Hi"}], [])

        assert exc_info.value.details["model"] == "test-model"
