"""
Conversation message model.

A session history is an ordered sequence of immutable ``Message`` objects.
Assistant messages either answer or request tools, never both, and every
tool message resolves exactly one call from the assistant message that
precedes its block.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Sequence


class Role(str, Enum):
    """Author of a message."""

    SYSTEM = "system"
    HUMAN = "human"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True)
class ToolCall:
    """A structured request from the model to run one tool."""

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "arguments": dict(self.arguments)}

    @classmethod
    def from_dict(cls, data: dict) -> "ToolCall":
        return cls(
            id=data["id"],
            name=data["name"],
            arguments=dict(data.get("arguments") or {}),
        )


@dataclass(frozen=True)
class Message:
    """A single entry in a session history."""

    role: Role
    content: str = ""
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: Optional[str] = None
    name: Optional[str] = None
    is_error: bool = False

    def __post_init__(self) -> None:
        # Accept lists for convenience but store an immutable tuple.
        object.__setattr__(self, "tool_calls", tuple(self.tool_calls))

        if self.tool_calls:
            if self.role != Role.ASSISTANT:
                raise ValueError("Only assistant messages can carry tool calls")
            if self.content:
                raise ValueError(
                    "An assistant message either answers or requests tools, not both"
                )
            ids = [call.id for call in self.tool_calls]
            if len(set(ids)) != len(ids):
                raise ValueError(f"Duplicate tool call ids in one message: {ids}")

        if self.role == Role.TOOL and not self.tool_call_id:
            raise ValueError("Tool messages require the originating tool_call_id")

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def human(cls, content: str) -> "Message":
        return cls(role=Role.HUMAN, content=content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        return cls(role=Role.ASSISTANT, content=content)

    @classmethod
    def tool_request(cls, calls: Sequence[ToolCall]) -> "Message":
        if not calls:
            raise ValueError("A tool request needs at least one tool call")
        return cls(role=Role.ASSISTANT, tool_calls=tuple(calls))

    @classmethod
    def tool_result(
        cls,
        tool_call_id: str,
        name: str,
        content: str,
        is_error: bool = False,
    ) -> "Message":
        return cls(
            role=Role.TOOL,
            content=content,
            tool_call_id=tool_call_id,
            name=name,
            is_error=is_error,
        )

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def to_dict(self) -> dict:
        """Serialize to a JSON-compatible dict."""
        data: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_calls:
            data["tool_calls"] = [call.to_dict() for call in self.tool_calls]
        if self.role == Role.TOOL:
            data["tool_call_id"] = self.tool_call_id
            data["name"] = self.name
            data["is_error"] = self.is_error
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "Message":
        """Rebuild a message produced by ``to_dict``."""
        return cls(
            role=Role(data["role"]),
            content=data.get("content") or "",
            tool_calls=tuple(
                ToolCall.from_dict(call) for call in data.get("tool_calls") or []
            ),
            tool_call_id=data.get("tool_call_id"),
            name=data.get("name"),
            is_error=bool(data.get("is_error", False)),
        )


def pending_tool_calls(messages: Sequence[Message]) -> list[ToolCall]:
    """
    Return the tool calls of the last assistant message that have no result yet.

    Args:
        messages: Session history in order.

    Returns:
        Unresolved calls in request order (empty when none are pending).
    """
    for index in range(len(messages) - 1, -1, -1):
        message = messages[index]
        if message.role == Role.ASSISTANT:
            if not message.tool_calls:
                return []
            resolved = {
                m.tool_call_id for m in messages[index + 1 :] if m.role == Role.TOOL
            }
            return [call for call in message.tool_calls if call.id not in resolved]
    return []


def validate_history(messages: Sequence[Message], allow_pending: bool = False) -> None:
    """
    Check the ordering invariants of a session history.

    - A system message may only appear first.
    - The messages following an assistant tool-call message are exactly one
      tool message per call, in call order, before anything else.

    Args:
        messages: Session history in order.
        allow_pending: Accept unresolved calls at the very end of the history
            (a gated session waiting for approval).

    Raises:
        ValueError: Describing the first violation found.
    """
    pending: list[ToolCall] = []

    for index, message in enumerate(messages):
        if message.role == Role.SYSTEM and index != 0:
            raise ValueError(
                f"System message at position {index}; it must be the first message"
            )

        if message.role == Role.TOOL:
            if not pending:
                raise ValueError(
                    f"Tool message at position {index} "
                    f"('{message.tool_call_id}') has no matching tool call"
                )
            expected = pending.pop(0)
            if message.tool_call_id != expected.id:
                raise ValueError(
                    f"Tool message at position {index} resolves "
                    f"'{message.tool_call_id}' but '{expected.id}' was next"
                )
            continue

        if pending:
            raise ValueError(
                f"Message at position {index} interrupts unresolved tool calls: "
                f"{[call.id for call in pending]}"
            )

        if message.role == Role.ASSISTANT and message.tool_calls:
            pending = list(message.tool_calls)

    if pending and not allow_pending:
        raise ValueError(
            f"History ends with unresolved tool calls: {[call.id for call in pending]}"
        )
