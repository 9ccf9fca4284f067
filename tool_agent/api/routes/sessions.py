"""Session inspection and tool-call approval endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from ...messages import pending_tool_calls
from ...orchestration import OrchestrationLoop
from ..dependencies import get_orchestration_loop
from ..schemas import (
    ApprovalRequest,
    ChatCompletionResponse,
    ErrorResponse,
    SessionListResponse,
    SessionMessage,
    SessionResponse,
)
from .chat import build_completion_response, to_tool_call_info

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/v1/sessions",
    response_model=SessionListResponse,
    summary="List sessions",
)
async def list_sessions(
    loop: OrchestrationLoop = Depends(get_orchestration_loop),
) -> SessionListResponse:
    return SessionListResponse(data=await loop.store.list_sessions())


@router.get(
    "/v1/sessions/{session_id}",
    response_model=SessionResponse,
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    summary="Get session",
    description="Return the full message history of a session and whether it awaits approval.",
)
async def get_session(
    session_id: str,
    loop: OrchestrationLoop = Depends(get_orchestration_loop),
) -> SessionResponse:
    if not await loop.store.exists(session_id):
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")

    session = await loop.store.get(session_id)
    pending = pending_tool_calls(session.messages) if session.awaiting_approval else []
    return SessionResponse(
        session_id=session.session_id,
        awaiting_approval=session.awaiting_approval,
        pending_tool_calls=[to_tool_call_info(call) for call in pending],
        messages=[SessionMessage(**m.to_dict()) for m in session.messages],
    )


@router.post(
    "/v1/sessions/{session_id}/approval",
    response_model=ChatCompletionResponse,
    responses={
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse, "description": "Session is not awaiting approval"},
        503: {"model": ErrorResponse},
    },
    summary="Approve or reject pending tool calls",
    description=(
        "Resume a turn paused for approval. Approved calls run and the turn "
        "continues; rejected calls are reported to the model as failures."
    ),
)
async def submit_approval(
    session_id: str,
    body: ApprovalRequest,
    loop: OrchestrationLoop = Depends(get_orchestration_loop),
) -> ChatCompletionResponse:
    if not await loop.store.exists(session_id):
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")

    result = await loop.resume(session_id, body.approved)
    return build_completion_response(result)
