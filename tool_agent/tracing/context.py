"""
Turn-scoped tracing context using Langfuse SDK v3.

Uses explicit trace_context propagation for parent-child linking: every
span or generation receives the root span's trace_id and span_id, so
nesting is correct even when tool calls run in separate asyncio tasks.
"""

import asyncio
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Generator, Optional

from langfuse.types import TraceContext

from .client import TracingClient

logger = logging.getLogger(__name__)


@dataclass
class TracingContext:
    """
    Tracing context for one orchestration turn.

    The Langfuse trace is tagged with the conversation's session id so all
    turns of a conversation are grouped together.
    """

    client: Optional[TracingClient]
    session_id: str
    turn_id: str = ""
    _context_manager: Any = field(default=None, repr=False)
    _root_span: Any = field(default=None, repr=False)
    _start_time: float = field(default_factory=time.time, repr=False)
    _trace_id: Optional[str] = field(default=None, repr=False)
    _root_span_id: Optional[str] = field(default=None, repr=False)

    @property
    def enabled(self) -> bool:
        return self.client is not None and self.client.enabled and self.client.client is not None

    def start_trace(
        self,
        name: str = "turn",
        input: Optional[Any] = None,
        metadata: Optional[dict] = None,
    ) -> None:
        """Open the root span for this turn."""
        if not self.enabled:
            return

        try:
            trace_metadata = {"turn_id": self.turn_id, **(metadata or {})}
            self._context_manager = self.client.client.start_as_current_observation(
                as_type="span",
                name=name,
                input=input,
                metadata=trace_metadata,
            )
            self._root_span = self._context_manager.__enter__()
            self._trace_id = getattr(self._root_span, "trace_id", None)
            self._root_span_id = getattr(self._root_span, "id", None)
            self._root_span.update_trace(session_id=self.session_id)
            self._start_time = time.time()
        except Exception as e:
            logger.warning(f"[{self.session_id}] Failed to start trace: {e}")
            self._root_span = None

    def get_trace_context(self) -> Optional[TraceContext]:
        """TraceContext pointing at the root span, or None before start_trace."""
        if not self._trace_id or not self._root_span_id:
            return None
        return TraceContext(trace_id=self._trace_id, parent_span_id=self._root_span_id)

    async def end_trace(
        self,
        output: Optional[Any] = None,
        status: str = "success",
        metadata: Optional[dict] = None,
    ) -> None:
        """Close the root span and export the turn off the event loop."""
        if not self._root_span:
            return

        try:
            duration_ms = (time.time() - self._start_time) * 1000
            self._root_span.update(
                output=output,
                metadata={"status": status, "duration_ms": round(duration_ms, 2), **(metadata or {})},
            )
            if self._context_manager:
                self._context_manager.__exit__(None, None, None)
        except Exception as e:
            logger.warning(f"[{self.session_id}] Failed to end trace: {e}")
        finally:
            self._root_span = None
        # Langfuse flush blocks on the network export.
        await asyncio.to_thread(self.client.flush)

    @contextmanager
    def span(
        self,
        name: str,
        metadata: Optional[dict] = None,
        input: Optional[Any] = None,
    ) -> Generator["SpanContext", None, None]:
        """
        Create a span context manager.

        Args:
            name: Name of the span (e.g. "tool:calculate")
            metadata: Additional metadata
            input: Input data for the span

        Yields:
            SpanContext for the span
        """
        span_ctx = SpanContext(
            name=name,
            client=self.client if self.enabled else None,
            metadata=metadata,
            input=input,
            _trace_context=self.get_trace_context(),
        )
        try:
            span_ctx.start()
            yield span_ctx
        finally:
            span_ctx.end()

    @contextmanager
    def generation(
        self,
        name: str,
        model: str,
        input: Optional[Any] = None,
        metadata: Optional[dict] = None,
        model_parameters: Optional[dict] = None,
    ) -> Generator["GenerationContext", None, None]:
        """
        Create a generation context manager for model calls.

        Args:
            name: Name of the generation (e.g., "model_call_1")
            model: Model name/identifier
            input: Messages sent to the model
            metadata: Additional metadata
            model_parameters: Parameters like temperature

        Yields:
            GenerationContext for the generation
        """
        gen_ctx = GenerationContext(
            name=name,
            model=model,
            client=self.client if self.enabled else None,
            input=input,
            metadata=metadata,
            model_parameters=model_parameters,
            _trace_context=self.get_trace_context(),
        )
        try:
            gen_ctx.start()
            yield gen_ctx
        finally:
            gen_ctx.end()


@dataclass
class SpanContext:
    """A single Langfuse span; inert when ``client`` is None."""

    name: str
    client: Optional[TracingClient] = None
    metadata: Optional[dict] = None
    input: Optional[Any] = None
    _context_manager: Any = field(default=None, repr=False)
    _observation: Any = field(default=None, repr=False)
    _start_time: float = field(default=0.0, repr=False)
    _output: Optional[Any] = field(default=None, repr=False)
    _status: str = field(default="success", repr=False)
    _trace_context: Optional[TraceContext] = field(default=None, repr=False)

    def _observation_kwargs(self) -> dict:
        return {"as_type": "span", "name": self.name, "metadata": self.metadata, "input": self.input}

    def start(self) -> None:
        if self.client is None or self.client.client is None:
            return
        try:
            self._start_time = time.time()
            self._context_manager = self.client.client.start_as_current_observation(
                trace_context=self._trace_context,
                **self._observation_kwargs(),
            )
            self._observation = self._context_manager.__enter__()
        except Exception as e:
            logger.warning(f"Failed to start observation '{self.name}': {e}")
            self._observation = None

    def _update_kwargs(self) -> dict:
        duration_ms = (time.time() - self._start_time) * 1000
        kwargs: dict[str, Any] = {
            "metadata": {"status": self._status, "duration_ms": round(duration_ms, 2)}
        }
        if self._output is not None:
            kwargs["output"] = self._output
        return kwargs

    def end(self) -> None:
        if not self._observation:
            return
        try:
            self._observation.update(**self._update_kwargs())
            if self._context_manager:
                self._context_manager.__exit__(None, None, None)
        except Exception as e:
            logger.warning(f"Failed to end observation '{self.name}': {e}")

    def set_output(self, output: Any) -> None:
        self._output = output

    def set_status(self, status: str) -> None:
        self._status = status


@dataclass
class GenerationContext(SpanContext):
    """Langfuse generation for a single model call."""

    model: str = ""
    model_parameters: Optional[dict] = None
    _usage: Optional[dict] = field(default=None, repr=False)

    def _observation_kwargs(self) -> dict:
        return {
            "as_type": "generation",
            "name": self.name,
            "model": self.model,
            "input": self.input,
            "metadata": self.metadata,
            "model_parameters": self.model_parameters,
        }

    def _update_kwargs(self) -> dict:
        kwargs = super()._update_kwargs()
        if self._usage:
            kwargs["usage_details"] = self._usage
        return kwargs

    def set_usage(
        self,
        prompt_tokens: Optional[int] = None,
        completion_tokens: Optional[int] = None,
        total_tokens: Optional[int] = None,
    ) -> None:
        """Set token usage for the generation."""
        self._usage = {}
        if prompt_tokens is not None:
            self._usage["input"] = prompt_tokens
        if completion_tokens is not None:
            self._usage["output"] = completion_tokens
        if total_tokens is not None:
            self._usage["total"] = total_tokens
