"""Tests for the conversation message model and history invariants."""

import pytest

from tool_agent.messages import (
    Message,
    Role,
    ToolCall,
    pending_tool_calls,
    validate_history,
)


def call(call_id: str, name: str = "additionTool") -> ToolCall:
    return ToolCall(id=call_id, name=name, arguments={"a": 1, "b": 2})


class TestMessage:
    """Tests for Message construction rules."""

    def test_assistant_cannot_answer_and_request_tools(self):
        """Text and tool calls in one assistant message are rejected."""
        with pytest.raises(ValueError, match="not both"):
            Message(role=Role.ASSISTANT, content="hi", tool_calls=(call("c1"),))

    def test_only_assistant_carries_tool_calls(self):
        """Tool calls on a human message are rejected."""
        with pytest.raises(ValueError):
            Message(role=Role.HUMAN, tool_calls=(call("c1"),))

    def test_duplicate_call_ids_rejected(self):
        """Call ids are unique within one message."""
        with pytest.raises(ValueError, match="Duplicate"):
            Message.tool_request([call("c1"), call("c1")])

    def test_empty_tool_request_rejected(self):
        """A tool request needs at least one call."""
        with pytest.raises(ValueError):
            Message.tool_request([])

    def test_tool_message_requires_call_id(self):
        """Tool results must reference the originating call."""
        with pytest.raises(ValueError):
            Message(role=Role.TOOL, content="5")

    def test_list_of_calls_stored_as_tuple(self):
        """Messages stay hashable and immutable."""
        message = Message.tool_request([call("c1")])
        assert isinstance(message.tool_calls, tuple)
        assert message.has_tool_calls

    def test_dict_round_trip_keeps_tool_fields(self):
        """to_dict/from_dict preserve tool call ids and the error flag."""
        original = [
            Message.system("sys"),
            Message.human("hi"),
            Message.tool_request([call("c1")]),
            Message.tool_result("c1", "additionTool", "boom", is_error=True),
            Message.assistant("done"),
        ]
        restored = [Message.from_dict(m.to_dict()) for m in original]
        assert restored == original

    def test_tool_result_dict_fields(self):
        """Serialized tool results carry id, name and error flag."""
        data = Message.tool_result("c1", "additionTool", "3").to_dict()
        assert data == {
            "role": "tool",
            "content": "3",
            "tool_call_id": "c1",
            "name": "additionTool",
            "is_error": False,
        }


class TestPendingToolCalls:
    """Tests for pending_tool_calls."""

    def test_no_pending_after_answer(self):
        """A history ending in an answer has nothing pending."""
        history = [Message.human("hi"), Message.assistant("hello")]
        assert pending_tool_calls(history) == []

    def test_unresolved_calls_in_order(self):
        """Calls without a result are returned in request order."""
        history = [
            Message.human("hi"),
            Message.tool_request([call("c1"), call("c2"), call("c3")]),
            Message.tool_result("c1", "additionTool", "3"),
        ]
        assert [c.id for c in pending_tool_calls(history)] == ["c2", "c3"]

    def test_empty_history(self):
        assert pending_tool_calls([]) == []


class TestValidateHistory:
    """Tests for the ordering invariants."""

    def test_valid_history(self):
        """A complete tool round validates."""
        validate_history(
            [
                Message.system("sys"),
                Message.human("hi"),
                Message.tool_request([call("c1"), call("c2")]),
                Message.tool_result("c1", "additionTool", "3"),
                Message.tool_result("c2", "additionTool", "3"),
                Message.assistant("done"),
            ]
        )

    def test_system_message_only_first(self):
        """A system message after position 0 is rejected."""
        with pytest.raises(ValueError, match="System message"):
            validate_history([Message.human("hi"), Message.system("sys")])

    def test_orphan_tool_message(self):
        """A tool message without a preceding request is rejected."""
        with pytest.raises(ValueError, match="no matching tool call"):
            validate_history([Message.human("hi"), Message.tool_result("c1", "x", "y")])

    def test_results_out_of_order(self):
        """Results must follow call order."""
        with pytest.raises(ValueError, match="'c1' was next"):
            validate_history(
                [
                    Message.tool_request([call("c1"), call("c2")]),
                    Message.tool_result("c2", "additionTool", "3"),
                    Message.tool_result("c1", "additionTool", "3"),
                ]
            )

    def test_interrupted_block(self):
        """Nothing else may appear between a request and its results."""
        with pytest.raises(ValueError, match="interrupts"):
            validate_history(
                [
                    Message.tool_request([call("c1")]),
                    Message.human("wait"),
                ]
            )

    def test_trailing_pending_calls(self):
        """Unresolved calls at the end only pass with allow_pending."""
        history = [Message.human("hi"), Message.tool_request([call("c1")])]
        with pytest.raises(ValueError, match="unresolved"):
            validate_history(history)
        validate_history(history, allow_pending=True)
