"""
Tool-calling orchestration: model gateway, session state, and the loop.
"""

from .gateway import FinalAnswer, ModelGateway, ModelResponse, OpenAIGateway, ToolRequest
from .loop import LoopState, OrchestrationLoop, TurnResult, TurnStatus
from .session_store import (
    FileSessionStore,
    InMemorySessionStore,
    Session,
    SessionStore,
    create_session_store,
)
from .tool_defs import build_tool_definitions

__all__ = [
    "FinalAnswer",
    "ModelGateway",
    "ModelResponse",
    "OpenAIGateway",
    "ToolRequest",
    "LoopState",
    "OrchestrationLoop",
    "TurnResult",
    "TurnStatus",
    "FileSessionStore",
    "InMemorySessionStore",
    "Session",
    "SessionStore",
    "create_session_store",
    "build_tool_definitions",
]
