"""
Tool Executor - validates, dispatches and normalises a single tool call.

Every outcome, including unknown tools, invalid arguments, exceptions and
timeouts, comes back as a ``ToolResult``. Only task cancellation escapes.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError

from ..errors import SchemaViolation, ToolError, ToolRuntimeFailure, UnknownTool
from ..messages import Message, ToolCall
from ..tracing import SpanContext
from .registry import ToolRegistry, ToolSpec

logger = logging.getLogger(__name__)

MAX_ERROR_CHARS = 500


@dataclass(frozen=True)
class ToolResult:
    """Outcome of one tool call."""

    call_id: str
    name: str
    content: str
    success: bool

    def to_message(self) -> Message:
        return Message.tool_result(
            self.call_id, self.name, self.content, is_error=not self.success
        )


def format_validation_errors(error: ValidationError) -> list[str]:
    """Turn pydantic errors into "field: reason" strings."""
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "arguments"
        problems.append(f"{location}: {item.get('msg', 'invalid value')}")
    return problems


def _truncate(message: str) -> str:
    if len(message) > MAX_ERROR_CHARS:
        return message[:MAX_ERROR_CHARS] + "..."
    return message


class ToolExecutor:
    """
    Executes tool calls against a registry bound at construction.

    Args:
        registry: The tools available to this executor.
        timeout: Per-call timeout in seconds; None or 0 disables it.
    """

    def __init__(self, registry: ToolRegistry, timeout: Optional[float] = None):
        self.registry = registry
        self.timeout = timeout or None

    def validate(self, call: ToolCall) -> tuple[ToolSpec, object]:
        """
        Resolve the tool and validate its arguments.

        Raises:
            UnknownTool: If the name is not registered.
            SchemaViolation: If the arguments do not match the input model.
        """
        spec = self.registry.get(call.name)
        if spec is None:
            raise UnknownTool(call.name)
        try:
            args = spec.input_model.model_validate(call.arguments)
        except ValidationError as e:
            raise SchemaViolation(call.name, format_validation_errors(e)) from e
        return spec, args

    async def execute(
        self, call: ToolCall, span: Optional[SpanContext] = None
    ) -> ToolResult:
        """
        Run one tool call to completion.

        Args:
            call: The requested call.
            span: Optional tracing span that receives output and status.

        Returns:
            ToolResult; ``success`` is False for every failure kind.
        """
        try:
            spec, args = self.validate(call)
            content = await self._invoke(spec, args)
        except ToolError as e:
            logger.warning(f"Tool '{call.name}' failed: {e.message}")
            result = ToolResult(call.id, call.name, e.message, success=False)
        else:
            result = ToolResult(call.id, call.name, content, success=True)

        if span is not None:
            span.set_output({"result": result.content[:MAX_ERROR_CHARS]})
            if not result.success:
                span.set_status("error")
        return result

    async def _invoke(self, spec: ToolSpec, args: object) -> str:
        """Call the implementation, mapping every failure to ToolRuntimeFailure."""
        try:
            if self.timeout:
                content = await asyncio.wait_for(spec.implementation(args), self.timeout)
            else:
                content = await spec.implementation(args)
        except asyncio.TimeoutError as e:
            raise ToolRuntimeFailure(
                f"Tool '{spec.name}' timed out after {self.timeout:g}s", spec.name
            ) from e
        except Exception as e:
            logger.error(f"Tool '{spec.name}' execution failed: {e}")
            raise ToolRuntimeFailure(
                f"Tool '{spec.name}' execution error: {_truncate(str(e) or type(e).__name__)}",
                spec.name,
            ) from e

        if not isinstance(content, str):
            content = str(content)
        return content
