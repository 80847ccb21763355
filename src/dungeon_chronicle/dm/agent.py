"""Narrating-agent boundary.

The orchestrator talks to the language model only through the
``NarratorAgent`` protocol: it sends chat messages plus the tool catalog
and receives narration text with zero or more tool calls. ``OpenAINarrator``
implements the protocol on the OpenAI SDK against any OpenAI-compatible
endpoint (OpenRouter by default). Network retries live here, never in the
orchestrator.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Protocol

from openai import (
    NOT_GIVEN,
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    OpenAI,
    RateLimitError,
)
from pydantic import BaseModel, Field
from tenacity import Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from dungeon_chronicle.core.config import AIProviderSettings, get_settings
from dungeon_chronicle.core.exceptions import (
    AIConnectionError,
    AIRateLimitError,
    AIResponseError,
)
from dungeon_chronicle.core.logging import get_logger


logger = get_logger(__name__)


# =============================================================================
# Wire Types
# =============================================================================


class ToolCall(BaseModel):
    """One tool call requested by the agent.

    Attributes:
        call_id: Identifier assigned by the agent; unique per completed reply.
        tool_name: Catalog name the agent asked for.
        arguments: Decoded argument object.
        raw_arguments: Arguments exactly as received.
        argument_error: Set when the raw arguments were not a JSON object.
    """

    call_id: str
    tool_name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    raw_arguments: str = "{}"
    argument_error: str | None = None

    @classmethod
    def from_raw(cls, call_id: str, tool_name: str, raw_arguments: str | None) -> ToolCall:
        """Decode raw JSON arguments, recording rather than raising on failure."""
        raw = raw_arguments or "{}"
        try:
            decoded = json.loads(raw)
        except json.JSONDecodeError as exc:
            return cls(
                call_id=call_id,
                tool_name=tool_name,
                raw_arguments=raw,
                argument_error=f"arguments are not valid JSON: {exc.msg}",
            )
        if not isinstance(decoded, dict):
            return cls(
                call_id=call_id,
                tool_name=tool_name,
                raw_arguments=raw,
                argument_error="arguments must be a JSON object",
            )
        return cls(call_id=call_id, tool_name=tool_name, arguments=decoded, raw_arguments=raw)


@dataclass
class AgentReply:
    """A completed reply from the narrating agent.

    Attributes:
        text: Narration text (may be empty when only tools were called).
        tool_calls: Tool calls in the order the agent requested them.
        model: Model that produced the reply.
    """

    text: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    model: str = ""

    def to_assistant_message(self) -> dict[str, Any]:
        """Echo the reply back as an assistant message for the follow-up request."""
        message: dict[str, Any] = {"role": "assistant", "content": self.text or None}
        if self.tool_calls:
            message["tool_calls"] = [
                {
                    "id": call.call_id,
                    "type": "function",
                    "function": {"name": call.tool_name, "arguments": call.raw_arguments},
                }
                for call in self.tool_calls
            ]
        return message


class NarratorAgent(Protocol):
    """Anything that can narrate: the OpenAI client in production, scripts in tests."""

    def respond(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> AgentReply: ...


# =============================================================================
# OpenAI Implementation
# =============================================================================


def create_openai_client(settings: AIProviderSettings | None = None) -> OpenAI:
    """Create an OpenAI SDK client for the configured endpoint."""
    settings = settings or get_settings().ai
    return OpenAI(
        api_key=settings.resolve_api_key(),
        base_url=settings.base_url,
        timeout=settings.timeout_seconds,
        max_retries=0,
        default_headers={"X-Title": "Dungeon Chronicle"},
    )


_RETRYABLE = (RateLimitError, APIConnectionError, APITimeoutError)


class OpenAINarrator:
    """NarratorAgent backed by the OpenAI chat completions API.

    Attributes:
        model: Model identifier.
        temperature: Sampling temperature.
        max_tokens: Maximum tokens per reply.
        max_retries: Attempts for rate-limit and connection failures.
    """

    provider = "openai-compatible"

    def __init__(
        self,
        *,
        settings: AIProviderSettings | None = None,
        client: OpenAI | None = None,
    ) -> None:
        """Initialize the narrator.

        Args:
            settings: Provider settings; application settings when omitted.
            client: Preconfigured client; created from settings when omitted.
        """
        settings = settings or get_settings().ai
        self.model = settings.model
        self.temperature = settings.temperature
        self.max_tokens = settings.max_tokens
        self.max_retries = settings.max_retries
        self._settings = settings
        self._client = client

        logger.info("OpenAINarrator initialized", model=self.model, base_url=settings.base_url)

    def _get_client(self) -> OpenAI:
        if self._client is None:
            self._client = create_openai_client(self._settings)
        return self._client

    def _complete(self, messages: list[dict[str, Any]], tools: list[dict[str, Any]]) -> Any:
        client = self._get_client()
        retrying = Retrying(
            retry=retry_if_exception_type(_RETRYABLE),
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(
                        "Retrying narrator request",
                        attempt=attempt.retry_state.attempt_number,
                        max_attempts=self.max_retries,
                    )
                return client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    tools=tools or NOT_GIVEN,
                    tool_choice="auto" if tools else NOT_GIVEN,
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                )
        raise AIResponseError("Narrator request produced no response", model=self.model)

    def respond(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> AgentReply:
        """Send one request and decode the reply.

        Raises:
            AIRateLimitError: If rate limited after all retries.
            AIConnectionError: If the endpoint cannot be reached.
            AIResponseError: If the API rejects the request or the reply is empty.
        """
        try:
            response = self._complete(messages, tools)
        except RateLimitError as exc:
            raise AIRateLimitError(
                f"Rate limit exceeded after {self.max_retries} attempts",
                model=self.model,
                provider=self.provider,
            ) from exc
        except (APIConnectionError, APITimeoutError) as exc:
            raise AIConnectionError(
                f"Failed to connect to AI provider: {exc}",
                model=self.model,
                provider=self.provider,
            ) from exc
        except APIStatusError as exc:
            raise AIResponseError(
                f"AI API error: {exc}",
                model=self.model,
                provider=self.provider,
                details={"status_code": exc.status_code},
            ) from exc

        if not response.choices:
            raise AIResponseError("AI reply has no choices", model=self.model)

        message = response.choices[0].message
        tool_calls = [
            ToolCall.from_raw(tc.id, tc.function.name, tc.function.arguments)
            for tc in message.tool_calls or []
        ]
        logger.info(
            "Narrator replied",
            model=self.model,
            tool_calls=len(tool_calls),
            text_preview=(message.content or "")[:80],
        )
        return AgentReply(text=message.content or "", tool_calls=tool_calls, model=self.model)


__all__ = [
    "ToolCall",
    "AgentReply",
    "NarratorAgent",
    "create_openai_client",
    "OpenAINarrator",
]
