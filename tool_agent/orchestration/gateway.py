"""
Model Gateway - the single boundary to the language-model provider.

A gateway receives the full session history and returns either a final
answer or a structured tool request. Provider problems surface as
``ProviderFailure``; the orchestration loop decides what to do with them.
"""

import json
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence, Union

from openai import AsyncOpenAI, OpenAIError

from ..config import ModelConfig
from ..errors import ProviderFailure
from ..messages import Message, Role, ToolCall

logger = logging.getLogger(__name__)

TokenCallback = Callable[[str], None]


@dataclass(frozen=True)
class FinalAnswer:
    """The model answered without requesting tools."""

    text: str
    usage: Optional[dict] = None


@dataclass(frozen=True)
class ToolRequest:
    """The model asked for one or more tool calls, in order."""

    calls: tuple[ToolCall, ...]
    usage: Optional[dict] = None


ModelResponse = Union[FinalAnswer, ToolRequest]


class ModelGateway(ABC):
    """Interface the orchestration loop talks to."""

    model_name: str = "unknown"

    @abstractmethod
    async def invoke(
        self,
        history: Sequence[Message],
        on_token: Optional[TokenCallback] = None,
    ) -> ModelResponse:
        """
        Ask the model for its next action.

        Args:
            history: The complete session history, oldest first.
            on_token: Receives text fragments as they stream in.

        Returns:
            FinalAnswer or ToolRequest.

        Raises:
            ProviderFailure: The provider could not produce a usable response.
        """

    async def close(self) -> None:
        """Release provider resources."""


def to_wire_message(message: Message) -> dict:
    """Convert a history message to the chat completions message format."""
    if message.role == Role.TOOL:
        return {
            "role": "tool",
            "tool_call_id": message.tool_call_id,
            "content": message.content,
        }
    if message.role == Role.ASSISTANT and message.tool_calls:
        return {
            "role": "assistant",
            "content": None,
            "tool_calls": [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {
                        "name": call.name,
                        "arguments": json.dumps(call.arguments),
                    },
                }
                for call in message.tool_calls
            ],
        }
    role = "user" if message.role == Role.HUMAN else message.role.value
    return {"role": role, "content": message.content}


def parse_tool_call(call_id: Optional[str], name: Optional[str], arguments: Optional[str]) -> ToolCall:
    """
    Build a ToolCall from the provider's raw fields.

    Raises:
        ProviderFailure: If the name is missing or arguments are not a JSON object.
    """
    if not name:
        raise ProviderFailure("Provider returned a tool call without a name")
    raw = (arguments or "").strip()
    try:
        parsed = json.loads(raw) if raw else {}
    except json.JSONDecodeError as e:
        raise ProviderFailure(
            f"Provider returned undecodable arguments for tool '{name}': {raw[:200]}"
        ) from e
    if not isinstance(parsed, dict):
        raise ProviderFailure(f"Arguments for tool '{name}' are not a JSON object")
    return ToolCall(id=call_id or f"call_{uuid.uuid4().hex[:12]}", name=name, arguments=parsed)


def build_response(text: str, calls: list[ToolCall], usage: Optional[dict]) -> ModelResponse:
    """Apply the content/tool-call policy: tool calls win over text."""
    if calls:
        if text.strip():
            logger.debug("Discarding assistant text sent alongside tool calls: %s", text[:200])
        ids = [call.id for call in calls]
        if len(set(ids)) != len(ids):
            raise ProviderFailure(f"Provider returned duplicate tool call ids: {ids}")
        return ToolRequest(calls=tuple(calls), usage=usage)
    return FinalAnswer(text=text, usage=usage)


def _usage_dict(usage: Any) -> Optional[dict]:
    if usage is None:
        return None
    return {
        "prompt_tokens": usage.prompt_tokens,
        "completion_tokens": usage.completion_tokens,
        "total_tokens": usage.total_tokens,
    }


class OpenAIGateway(ModelGateway):
    """
    Gateway for any OpenAI-compatible chat completions endpoint.

    Tool definitions are bound once at construction and sent with every
    request through the native ``tools`` parameter.
    """

    def __init__(
        self,
        config: ModelConfig,
        tool_definitions: Optional[list[dict]] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.config = config
        self.model_name = config.model
        self.tool_definitions = list(tool_definitions or [])
        self._client = client or AsyncOpenAI(
            base_url=config.base_url,
            api_key=config.api_key or "not-needed",
            max_retries=1,
        )

    def _request_kwargs(self, history: Sequence[Message]) -> dict:
        kwargs: dict[str, Any] = {
            "model": self.config.model,
            "messages": [to_wire_message(m) for m in history],
            "temperature": self.config.temperature,
        }
        if self.tool_definitions:
            kwargs["tools"] = self.tool_definitions
        return kwargs

    async def invoke(
        self,
        history: Sequence[Message],
        on_token: Optional[TokenCallback] = None,
    ) -> ModelResponse:
        kwargs = self._request_kwargs(history)
        try:
            if self.config.streaming:
                return await self._invoke_streaming(kwargs, on_token)
            return await self._invoke_blocking(kwargs)
        except OpenAIError as e:
            raise ProviderFailure(f"Model provider error: {e}") from e

    async def _invoke_blocking(self, kwargs: dict) -> ModelResponse:
        response = await self._client.chat.completions.create(**kwargs)
        if not response.choices:
            raise ProviderFailure("Provider returned no choices")

        message = response.choices[0].message
        calls = [
            parse_tool_call(tc.id, tc.function.name, tc.function.arguments)
            for tc in (message.tool_calls or [])
            if tc.type == "function"
        ]
        return build_response(message.content or "", calls, _usage_dict(response.usage))

    async def _invoke_streaming(
        self, kwargs: dict, on_token: Optional[TokenCallback]
    ) -> ModelResponse:
        stream = await self._client.chat.completions.create(stream=True, **kwargs)

        text_parts: list[str] = []
        # Tool-call fragments arrive keyed by index; id and name come first.
        partial_calls: dict[int, dict] = {}
        usage = None
        saw_choice = False

        async for chunk in stream:
            if getattr(chunk, "usage", None):
                usage = _usage_dict(chunk.usage)
            if not chunk.choices:
                continue
            saw_choice = True
            delta = chunk.choices[0].delta

            if delta.content:
                text_parts.append(delta.content)
                if on_token is not None:
                    on_token(delta.content)

            for fragment in delta.tool_calls or []:
                entry = partial_calls.setdefault(
                    fragment.index, {"id": None, "name": "", "arguments": ""}
                )
                if fragment.id:
                    entry["id"] = fragment.id
                if fragment.function is not None:
                    if fragment.function.name:
                        entry["name"] += fragment.function.name
                    if fragment.function.arguments:
                        entry["arguments"] += fragment.function.arguments

        if not saw_choice:
            raise ProviderFailure("Provider stream ended without any choices")

        calls = [
            parse_tool_call(entry["id"], entry["name"], entry["arguments"])
            for _, entry in sorted(partial_calls.items())
        ]
        return build_response("".join(text_parts), calls, usage)

    async def close(self) -> None:
        await self._client.close()
