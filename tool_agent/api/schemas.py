"""
OpenAI-compatible Pydantic schemas for the API.

Chat completion schemas follow the OpenAI Chat API format so that any
OpenAI client can talk to the agent; session and approval schemas expose
the agent's conversation state.
"""

import time
import uuid
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

MODEL_ID = "tool-agent"


class ContentPart(BaseModel):
    """A single part of multimodal content."""

    type: Literal["text", "image_url"] = Field(..., description="The type of content part")
    text: Optional[str] = Field(default=None, description="Text content (for type='text')")
    image_url: Optional[dict] = Field(
        default=None, description="Image URL object (for type='image_url')"
    )


class ChatMessage(BaseModel):
    """A single message in a chat conversation."""

    role: Literal["system", "user", "assistant", "tool"] = Field(
        ..., description="The role of the message author"
    )
    content: Union[str, list[ContentPart], None] = Field(
        default=None, description="The content of the message (string or list of content parts)"
    )

    @field_validator("content", mode="before")
    @classmethod
    def normalize_content(cls, v):
        if isinstance(v, list):
            return [ContentPart(**item) if isinstance(item, dict) else item for item in v]
        return v

    def get_text_content(self) -> str:
        """Extract text content regardless of format."""
        if self.content is None:
            return ""
        if isinstance(self.content, str):
            return self.content
        return "\n".join(part.text for part in self.content if part.type == "text" and part.text)


class ChatCompletionRequest(BaseModel):
    """Request body for /v1/chat/completions endpoint."""

    model: str = Field(default=MODEL_ID, description="Model ID to use (always tool-agent)")
    messages: list[ChatMessage] = Field(
        ..., description="List of messages in the conversation", min_length=1
    )
    session_id: Optional[str] = Field(
        default=None,
        min_length=1,
        description="Conversation to continue; a new one is created when omitted",
    )
    temperature: Optional[float] = Field(
        default=None, ge=0.0, le=2.0, description="Ignored; the configured temperature is used"
    )
    stream: Optional[bool] = Field(
        default=False, description="Return the answer as a single server-sent event chunk"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "model": MODEL_ID,
                "session_id": "demo",
                "messages": [{"role": "user", "content": "What is 2 + 3?"}],
            }
        }
    }


class FunctionCall(BaseModel):
    name: str
    arguments: str = Field(..., description="JSON-encoded arguments")


class ToolCallInfo(BaseModel):
    """A tool call in OpenAI format."""

    id: str
    type: Literal["function"] = "function"
    function: FunctionCall


class ChatCompletionMessage(BaseModel):
    """Message in a chat completion response."""

    role: Literal["assistant"] = "assistant"
    content: Optional[str] = None
    tool_calls: Optional[list[ToolCallInfo]] = None


class ChatCompletionChoice(BaseModel):
    """A single choice in a chat completion response."""

    index: int = 0
    message: ChatCompletionMessage
    finish_reason: Literal["stop", "length", "tool_calls", "error"] = "stop"


class UsageInfo(BaseModel):
    """Token usage information."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletionResponse(BaseModel):
    """Response body for /v1/chat/completions and the approval endpoint."""

    id: str = Field(default_factory=lambda: f"chatcmpl-{uuid.uuid4().hex[:12]}")
    object: Literal["chat.completion"] = "chat.completion"
    created: int = Field(default_factory=lambda: int(time.time()))
    model: str = MODEL_ID
    choices: list[ChatCompletionChoice]
    usage: UsageInfo = Field(default_factory=UsageInfo)
    session_id: str = Field(..., description="Conversation the turn belongs to")
    status: Literal["completed", "awaiting_approval", "degraded"] = "completed"


class ModelInfo(BaseModel):
    """Information about an available model."""

    id: str
    object: Literal["model"] = "model"
    created: int = Field(default_factory=lambda: int(time.time()))
    owned_by: str = MODEL_ID


class ModelListResponse(BaseModel):
    """Response body for /v1/models endpoint."""

    object: Literal["list"] = "list"
    data: list[ModelInfo]


class SessionMessage(BaseModel):
    """One history entry as stored by the agent."""

    role: Literal["system", "human", "assistant", "tool"]
    content: str = ""
    tool_calls: Optional[list[dict[str, Any]]] = None
    tool_call_id: Optional[str] = None
    name: Optional[str] = None
    is_error: Optional[bool] = None


class SessionResponse(BaseModel):
    """Response body for GET /v1/sessions/{session_id}."""

    session_id: str
    awaiting_approval: bool
    pending_tool_calls: list[ToolCallInfo] = Field(default_factory=list)
    messages: list[SessionMessage]


class SessionListResponse(BaseModel):
    object: Literal["list"] = "list"
    data: list[str]


class ApprovalRequest(BaseModel):
    """Request body for POST /v1/sessions/{session_id}/approval."""

    approved: bool = Field(..., description="Run the pending tool calls (true) or reject them")


class HealthResponse(BaseModel):
    """Response body for /health endpoint."""

    status: Literal["healthy", "unhealthy"]
    version: str
    model: str


class ErrorDetail(BaseModel):
    """Error detail in OpenAI format."""

    message: str
    type: str = "server_error"
    code: Optional[str] = None


class ErrorResponse(BaseModel):
    """Error response in OpenAI format."""

    error: ErrorDetail
