"""
Core tool-calling orchestration loop.

A turn alternates between asking the model for its next action and running
the tools it requests, until the model answers in plain text. Every step is
appended to the session history, so the conversation can be resumed, audited,
or restored from a checkpoint at any point.

States:
    AWAITING_MODEL    -> DONE              model answered
    AWAITING_MODEL    -> AWAITING_TOOLS    model requested tools
    AWAITING_MODEL    -> AWAITING_APPROVAL tools requested, approval required
    AWAITING_APPROVAL -> AWAITING_TOOLS    approved via ``resume``
    AWAITING_APPROVAL -> AWAITING_MODEL    rejected via ``resume``
    AWAITING_TOOLS    -> AWAITING_MODEL    every call resolved
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence

from ..config import Config
from ..errors import ApprovalStateError
from ..messages import Message, ToolCall, pending_tool_calls
from ..tools import ToolExecutor, ToolRegistry, ToolResult, build_default_registry
from ..tracing import TracingClient, TracingContext
from .gateway import FinalAnswer, ModelGateway, ModelResponse, OpenAIGateway, TokenCallback
from .session_store import Session, SessionStore, create_session_store
from .tool_defs import build_tool_definitions

logger = logging.getLogger(__name__)

APOLOGY_MESSAGE = (
    "Sorry, I encountered an error while processing your request. Please try again later."
)
MAX_ITERATIONS_MESSAGE = (
    "I could not complete this request within the allowed number of steps. "
    "Please try a simpler or more specific request."
)
REJECTED_MESSAGE = "Tool call rejected by the user."
CANCELLED_MESSAGE = "Tool call cancelled before completion."


class LoopState(str, Enum):
    AWAITING_MODEL = "awaiting_model"
    AWAITING_APPROVAL = "awaiting_approval"
    AWAITING_TOOLS = "awaiting_tools"
    DONE = "done"


class TurnStatus:
    COMPLETED = "completed"
    AWAITING_APPROVAL = "awaiting_approval"
    DEGRADED = "degraded"


@dataclass
class TurnResult:
    """Outcome of ``run_turn`` or ``resume``."""

    session_id: str
    status: str
    answer: Optional[str] = None
    pending_tool_calls: list[ToolCall] = field(default_factory=list)
    iterations: int = 0

    @property
    def awaiting_approval(self) -> bool:
        return self.status == TurnStatus.AWAITING_APPROVAL

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "status": self.status,
            "answer": self.answer,
            "pending_tool_calls": [call.to_dict() for call in self.pending_tool_calls],
            "iterations": self.iterations,
        }


class OrchestrationLoop:
    """
    Drives turns for any number of sessions.

    The loop holds no per-session state of its own; everything lives in the
    session store, and a per-session lock serialises turns on one session
    while different sessions proceed concurrently.

    Args:
        gateway: Model provider boundary.
        executor: Runs tool calls against its registry.
        store: Session state backend.
        max_iterations: Model calls allowed per turn; None or 0 for no limit.
        require_approval: Pause before running tools until ``resume`` is called.
        parallel_tools: Run the calls of one request concurrently.
        model_timeout: Seconds allowed per model call; None or 0 for no limit.
        tracing: Langfuse client; tracing is skipped when absent or disabled.
    """

    def __init__(
        self,
        gateway: ModelGateway,
        executor: ToolExecutor,
        store: SessionStore,
        max_iterations: Optional[int] = None,
        require_approval: bool = False,
        parallel_tools: bool = False,
        model_timeout: Optional[float] = None,
        tracing: Optional[TracingClient] = None,
    ):
        self.gateway = gateway
        self.executor = executor
        self.store = store
        self.max_iterations = max_iterations or None
        self.require_approval = require_approval
        self.parallel_tools = parallel_tools
        self.model_timeout = model_timeout or None
        self.tracing = tracing

    @classmethod
    def from_config(
        cls,
        config: Config,
        registry: Optional[ToolRegistry] = None,
        store: Optional[SessionStore] = None,
        gateway: Optional[ModelGateway] = None,
        tracing: Optional[TracingClient] = None,
    ) -> "OrchestrationLoop":
        """Wire a loop from configuration, building any component not supplied."""
        registry = registry or build_default_registry(config.tools)
        if gateway is None:
            gateway = OpenAIGateway(config.model, build_tool_definitions(registry))
        if store is None:
            store = create_session_store(config.store, config.loop.system_prompt)
        return cls(
            gateway=gateway,
            executor=ToolExecutor(registry, timeout=config.loop.tool_timeout),
            store=store,
            max_iterations=config.loop.max_iterations,
            require_approval=config.loop.require_approval,
            parallel_tools=config.loop.parallel_tools,
            model_timeout=config.model.timeout,
            tracing=tracing,
        )

    @property
    def registry(self) -> ToolRegistry:
        return self.executor.registry

    async def run_turn(
        self,
        session_id: str,
        human_text: str,
        on_token: Optional[TokenCallback] = None,
    ) -> TurnResult:
        """
        Process one human message.

        A session that is still waiting for approval has its pending calls
        rejected first.

        Args:
            session_id: Conversation to extend (created if new).
            human_text: The user's message.
            on_token: Receives streamed answer text.

        Returns:
            TurnResult with the final answer or the calls awaiting approval.

        Raises:
            StoreFailure: The session could not be loaded or persisted.
        """
        async with self.store.lock(session_id):
            session = await self.store.get(session_id)
            if session.awaiting_approval:
                logger.info(f"[{session_id}] New message while awaiting approval; rejecting pending calls")
                await self._reject_pending(session)
            await self._commit(session_id, [Message.human(human_text)])
            return await self._run_traced(
                session_id, LoopState.AWAITING_MODEL, [], on_token, {"human": human_text}
            )

    async def resume(
        self,
        session_id: str,
        approved: bool,
        on_token: Optional[TokenCallback] = None,
    ) -> TurnResult:
        """
        Deliver the approval decision for a paused turn and continue it.

        Raises:
            ApprovalStateError: The session is not awaiting approval.
            StoreFailure: The session could not be loaded or persisted.
        """
        async with self.store.lock(session_id):
            session = await self.store.get(session_id)
            if not session.awaiting_approval:
                raise ApprovalStateError(f"Session '{session_id}' is not awaiting approval")

            calls = pending_tool_calls(session.messages)
            logger.info(
                f"[{session_id}] Tool calls {'approved' if approved else 'rejected'}: "
                f"{[call.name for call in calls]}"
            )
            if approved and calls:
                # The flag is cleared by the write that resolves the calls.
                state = LoopState.AWAITING_TOOLS
            else:
                await self._reject_pending(session)
                state = LoopState.AWAITING_MODEL
            return await self._run_traced(
                session_id, state, calls, on_token, {"approved": approved}
            )

    async def _reject_pending(self, session: Session) -> None:
        rejections = [
            Message.tool_result(call.id, call.name, REJECTED_MESSAGE, is_error=True)
            for call in pending_tool_calls(session.messages)
        ]
        await self._commit(session.session_id, rejections, awaiting_approval=False)

    async def _commit(
        self,
        session_id: str,
        messages: Sequence[Message],
        awaiting_approval: Optional[bool] = None,
    ) -> None:
        """
        Append to the session store.

        A write that has started always finishes before a cancellation
        propagates, so the session lock is never released mid-write.
        """
        write = asyncio.ensure_future(
            self.store.append(session_id, messages, awaiting_approval=awaiting_approval)
        )
        try:
            await asyncio.shield(write)
        except asyncio.CancelledError:
            await asyncio.wait([write])
            if write.exception() is not None:
                logger.error(f"[{session_id}] Session write failed during cancellation: {write.exception()}")
            raise

    async def _run_traced(
        self,
        session_id: str,
        state: LoopState,
        calls: list[ToolCall],
        on_token: Optional[TokenCallback],
        trace_input: dict,
    ) -> TurnResult:
        trace = TracingContext(self.tracing, session_id=session_id, turn_id=uuid.uuid4().hex[:12])
        trace.start_trace(name="turn", input=trace_input)
        result: Optional[TurnResult] = None
        try:
            result = await self._drive(session_id, state, calls, on_token, trace)
            return result
        finally:
            await trace.end_trace(
                output=result.to_dict() if result else None,
                status=result.status if result else "error",
            )

    async def _drive(
        self,
        session_id: str,
        state: LoopState,
        calls: list[ToolCall],
        on_token: Optional[TokenCallback],
        trace: TracingContext,
    ) -> TurnResult:
        """Run the state machine until it reaches DONE or pauses for approval."""
        iterations = 0
        # Set while the model's tool request is not yet in the store.
        request: Optional[Message] = None

        while True:
            if state == LoopState.AWAITING_TOOLS:
                await self._run_tools(session_id, calls, trace, request)
                request = None
                state = LoopState.AWAITING_MODEL
                continue

            if self.max_iterations and iterations >= self.max_iterations:
                logger.warning(f"[{session_id}] Max iterations ({self.max_iterations}) reached")
                await self._commit(session_id, [Message.assistant(MAX_ITERATIONS_MESSAGE)])
                return TurnResult(
                    session_id, TurnStatus.DEGRADED, MAX_ITERATIONS_MESSAGE, iterations=iterations
                )

            iterations += 1
            session = await self.store.get(session_id)
            try:
                response = await self._call_model(session, iterations, on_token, trace)
            except Exception as e:
                logger.error(f"[{session_id}] Model call {iterations} failed: {e}")
                await self._commit(session_id, [Message.assistant(APOLOGY_MESSAGE)])
                return TurnResult(
                    session_id, TurnStatus.DEGRADED, APOLOGY_MESSAGE, iterations=iterations
                )

            if isinstance(response, FinalAnswer):
                await self._commit(session_id, [Message.assistant(response.text)])
                logger.info(f"[{session_id}] Turn completed after {iterations} model call(s)")
                return TurnResult(
                    session_id, TurnStatus.COMPLETED, response.text, iterations=iterations
                )

            calls = list(response.calls)
            request = Message.tool_request(calls)
            logger.info(f"[{session_id}] Model requested tools: {[call.name for call in calls]}")

            if self.require_approval:
                await self._commit(session_id, [request], awaiting_approval=True)
                return TurnResult(
                    session_id,
                    TurnStatus.AWAITING_APPROVAL,
                    pending_tool_calls=calls,
                    iterations=iterations,
                )
            state = LoopState.AWAITING_TOOLS

    async def _call_model(
        self,
        session: Session,
        iteration: int,
        on_token: Optional[TokenCallback],
        trace: TracingContext,
    ) -> ModelResponse:
        with trace.generation(
            name=f"model_call_{iteration}",
            model=self.gateway.model_name,
            input=[m.to_dict() for m in session.messages],
        ) as gen:
            try:
                invocation = self.gateway.invoke(session.messages, on_token=on_token)
                if self.model_timeout:
                    response = await asyncio.wait_for(invocation, self.model_timeout)
                else:
                    response = await invocation
            except Exception:
                gen.set_status("error")
                raise

            if isinstance(response, FinalAnswer):
                gen.set_output(response.text[:2000])
            else:
                gen.set_output({"tool_calls": [call.to_dict() for call in response.calls]})
            if response.usage:
                gen.set_usage(**response.usage)
            return response

    async def _run_tools(
        self,
        session_id: str,
        calls: Sequence[ToolCall],
        trace: TracingContext,
        request: Optional[Message] = None,
    ) -> None:
        """
        Execute a batch of calls and store the results in request order.

        The results go into the store in a single write, preceded by
        ``request`` when the tool request itself is not stored yet, and that
        write clears the approval flag. The history therefore never holds
        unresolved calls outside an approval pause.

        If the turn is cancelled midway, every call without a result gets a
        cancellation failure message before the cancellation propagates.
        """
        leading = [request] if request is not None else []
        results: dict[str, ToolResult] = {}

        async def run_one(call: ToolCall) -> None:
            logger.debug(f"[{session_id}] Executing tool '{call.name}'")
            with trace.span(name=f"tool:{call.name}", input=call.arguments) as span:
                results[call.id] = await self.executor.execute(call, span=span)

        try:
            if self.parallel_tools and len(calls) > 1:
                await asyncio.gather(*(run_one(call) for call in calls))
            else:
                for call in calls:
                    await run_one(call)
        except asyncio.CancelledError:
            logger.warning(f"[{session_id}] Turn cancelled while running tools")
            resolution = [
                results[call.id].to_message()
                if call.id in results
                else Message.tool_result(call.id, call.name, CANCELLED_MESSAGE, is_error=True)
                for call in calls
            ]
            await self._commit(session_id, leading + resolution, awaiting_approval=False)
            raise

        await self._commit(
            session_id,
            leading + [results[call.id].to_message() for call in calls],
            awaiting_approval=False,
        )

    async def close(self) -> None:
        await self.gateway.close()
