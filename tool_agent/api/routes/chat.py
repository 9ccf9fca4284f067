"""
OpenAI-compatible chat completion endpoints.

Implements /v1/chat/completions and /v1/models so OpenAI client libraries
can drive the agent. Conversations are continued by passing ``session_id``.
"""

import json
import logging
import time
import uuid
from typing import Generator, Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from ...messages import ToolCall
from ...orchestration import OrchestrationLoop, TurnResult
from ..dependencies import get_orchestration_loop
from ..schemas import (
    MODEL_ID,
    ChatCompletionChoice,
    ChatCompletionMessage,
    ChatCompletionRequest,
    ChatCompletionResponse,
    ErrorResponse,
    FunctionCall,
    ModelInfo,
    ModelListResponse,
    ToolCallInfo,
    UsageInfo,
)

logger = logging.getLogger(__name__)

router = APIRouter()

MODEL_CREATED = int(time.time())


@router.get(
    "/v1/models",
    response_model=ModelListResponse,
    summary="List models",
    description="List available models. Returns the tool agent as the only model.",
)
def list_models() -> ModelListResponse:
    return ModelListResponse(data=[ModelInfo(id=MODEL_ID, created=MODEL_CREATED)])


@router.get(
    "/v1/models/{model_id}",
    response_model=ModelInfo,
    summary="Get model",
    description="Get information about a specific model.",
)
def get_model(model_id: str) -> ModelInfo:
    if model_id != MODEL_ID:
        raise HTTPException(
            status_code=404,
            detail=f"Model '{model_id}' not found. Available model: {MODEL_ID}",
        )
    return ModelInfo(id=MODEL_ID, created=MODEL_CREATED)


def to_tool_call_info(call: ToolCall) -> ToolCallInfo:
    return ToolCallInfo(
        id=call.id,
        function=FunctionCall(name=call.name, arguments=json.dumps(call.arguments)),
    )


def build_completion_response(result: TurnResult) -> ChatCompletionResponse:
    """Render a turn result as an OpenAI chat completion."""
    if result.awaiting_approval:
        message = ChatCompletionMessage(
            content=None,
            tool_calls=[to_tool_call_info(call) for call in result.pending_tool_calls],
        )
        finish_reason = "tool_calls"
    else:
        message = ChatCompletionMessage(content=result.answer or "")
        finish_reason = "stop"

    completion_tokens = len((result.answer or "").split()) * 2
    return ChatCompletionResponse(
        choices=[ChatCompletionChoice(index=0, message=message, finish_reason=finish_reason)],
        usage=UsageInfo(completion_tokens=completion_tokens, total_tokens=completion_tokens),
        session_id=result.session_id,
        status=result.status,
    )


def _create_sse_chunk(
    delta: dict,
    completion_id: str,
    finish_reason: Optional[str] = None,
) -> str:
    """Create a Server-Sent Events formatted chunk for streaming responses."""
    chunk = {
        "id": completion_id,
        "object": "chat.completion.chunk",
        "created": int(time.time()),
        "model": MODEL_ID,
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
    }
    return f"data: {json.dumps(chunk)}\n\n"


def _generate_streaming_response(response: ChatCompletionResponse) -> Generator[str, None, None]:
    """Generate SSE chunks for a streaming response.

    The whole answer is sent as a single chunk once the turn has finished,
    which satisfies clients that insist on streaming.
    """
    choice = response.choices[0]
    if choice.message.tool_calls:
        delta = {
            "role": "assistant",
            "tool_calls": [
                {"index": i, **call.model_dump()}
                for i, call in enumerate(choice.message.tool_calls)
            ],
        }
    else:
        delta = {"role": "assistant", "content": choice.message.content or ""}

    yield _create_sse_chunk(delta, response.id)
    yield _create_sse_chunk({}, response.id, finish_reason=choice.finish_reason)
    yield "data: [DONE]\n\n"


@router.post(
    "/v1/chat/completions",
    response_model=ChatCompletionResponse,
    responses={
        409: {"model": ErrorResponse, "description": "Approval flow misuse"},
        503: {"model": ErrorResponse, "description": "Session state unavailable"},
    },
    summary="Create chat completion",
    description=(
        "Send the last user message to the agent. The agent may call tools "
        "before answering; with approval enabled the response may instead list "
        "the tool calls awaiting approval (finish_reason='tool_calls')."
    ),
)
async def create_chat_completion(
    request: ChatCompletionRequest,
    loop: OrchestrationLoop = Depends(get_orchestration_loop),
):
    """
    Run one turn for the request's session.

    Only the last user message is used; earlier context comes from the
    session history the agent keeps itself.
    """
    user_messages = [msg for msg in request.messages if msg.role == "user"]
    if not user_messages:
        logger.warning("No user message found in request")
        raise HTTPException(status_code=400, detail="No user message found in the request.")

    query = user_messages[-1].get_text_content()
    if not query.strip():
        raise HTTPException(status_code=400, detail="The last user message is empty.")

    session_id = request.session_id or f"session-{uuid.uuid4().hex[:12]}"
    logger.info(f"[{session_id}] Processing chat completion request: {query[:100]}")

    result = await loop.run_turn(session_id, query)
    response = build_completion_response(result)

    if request.stream:
        return StreamingResponse(
            _generate_streaming_response(response),
            media_type="text/event-stream",
        )
    return response
