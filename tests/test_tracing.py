"""
Tests for Langfuse tracing integration with SDK v3.

Tests cover:
- Client disabled states (credentials, failed auth check, SDK errors)
- Context manager no-ops when disabled
- Full trace lifecycle with mocked Langfuse
- Orchestration loop integration with tracing enabled
"""

import threading
from unittest.mock import MagicMock, Mock, patch

import pytest

from tool_agent.orchestration import FinalAnswer

from helpers import build_loop, tool_request


def mock_langfuse(trace_id: str = "trace-1", root_id: str = "root-1") -> MagicMock:
    """Langfuse stand-in whose observations are MagicMock context managers."""
    langfuse = MagicMock()
    langfuse.auth_check.return_value = True

    def start_observation(**kwargs):
        observation = MagicMock()
        observation.trace_id = trace_id
        observation.id = root_id if kwargs.get("trace_context") is None else "child"
        manager = MagicMock()
        manager.__enter__.return_value = observation
        return manager

    langfuse.start_as_current_observation.side_effect = start_observation
    return langfuse


def enabled_client(langfuse: MagicMock):
    from tool_agent.tracing.client import TracingClient

    with patch("tool_agent.tracing.client.Langfuse", return_value=langfuse):
        return TracingClient(public_key="pk-test", secret_key="sk-test", host="http://lf:3000")


class TestTracingClient:
    """Tests for TracingClient."""

    def test_client_disabled_without_credentials(self):
        """Test client is disabled when credentials not provided."""
        from tool_agent.tracing.client import TracingClient

        client = TracingClient(public_key="", secret_key="")
        assert client.enabled is False
        assert client.client is None
        assert "credentials not configured" in client.error.lower()

    def test_client_disabled_with_partial_credentials(self):
        """Test client is disabled with only public key."""
        from tool_agent.tracing.client import TracingClient

        client = TracingClient(public_key="pk-test", secret_key="")
        assert client.enabled is False

    def test_client_enabled_with_valid_credentials(self):
        """A passing auth check enables tracing."""
        langfuse = mock_langfuse()
        client = enabled_client(langfuse)
        assert client.enabled is True
        assert client.error is None
        assert client.client is langfuse

    @patch("tool_agent.tracing.client.Langfuse")
    def test_host_passed_to_sdk(self, mock_cls):
        from tool_agent.tracing.client import TracingClient

        mock_cls.return_value.auth_check.return_value = True
        TracingClient(public_key="pk", secret_key="sk", host="http://lf:3000")
        assert mock_cls.call_args.kwargs["host"] == "http://lf:3000"

    @patch("tool_agent.tracing.client.Langfuse")
    def test_failed_auth_check_disables(self, mock_cls):
        """An unreachable host or bad key disables tracing at startup."""
        from tool_agent.tracing.client import TracingClient

        mock_cls.return_value.auth_check.return_value = False
        client = TracingClient(public_key="pk", secret_key="sk")
        assert client.enabled is False
        assert client.client is None
        assert "auth_check" in client.error

    @patch("tool_agent.tracing.client.Langfuse")
    def test_auth_check_exception_disables(self, mock_cls):
        from tool_agent.tracing.client import TracingClient

        mock_cls.return_value.auth_check.side_effect = ConnectionError("refused")
        client = TracingClient(public_key="pk", secret_key="sk")
        assert client.enabled is False
        assert "refused" in client.error

    @patch("tool_agent.tracing.client.Langfuse", side_effect=ValueError("bad config"))
    def test_sdk_init_error_disables(self, mock_cls):
        from tool_agent.tracing.client import TracingClient

        client = TracingClient(public_key="pk", secret_key="sk")
        assert client.enabled is False
        assert "bad config" in client.error

    def test_flush_and_shutdown_no_op_when_disabled(self):
        from tool_agent.tracing.client import TracingClient

        client = TracingClient()
        client.flush()
        client.shutdown()
        assert client.enabled is False

    def test_shutdown_flushes_and_disables(self):
        langfuse = mock_langfuse()
        client = enabled_client(langfuse)
        client.shutdown()
        langfuse.shutdown.assert_called_once()
        assert client.enabled is False

    def test_create_tracing_client_from_config(self):
        """Missing keys in configuration give a disabled client."""
        from tool_agent.config import LangfuseConfig
        from tool_agent.tracing import create_tracing_client

        client = create_tracing_client(LangfuseConfig(public_key="", secret_key=""))
        assert client.enabled is False


class TestTracingContextDisabled:
    """Context managers are inert without an enabled client."""

    @pytest.mark.asyncio
    async def test_context_disabled_without_client(self):
        from tool_agent.tracing import TracingContext

        ctx = TracingContext(None, session_id="s1")
        assert ctx.enabled is False
        ctx.start_trace(name="turn", input={"human": "hi"})
        assert ctx.get_trace_context() is None
        await ctx.end_trace(output="done")

    def test_span_and_generation_no_op(self):
        from tool_agent.tracing import TracingContext
        from tool_agent.tracing.client import TracingClient

        ctx = TracingContext(TracingClient(), session_id="s1")
        with ctx.span(name="tool:x", input={"a": 1}) as span:
            span.set_output("out")
            span.set_status("error")
            assert span._observation is None
        with ctx.generation(name="model_call_1", model="m") as gen:
            gen.set_output("text")
            assert gen._observation is None

    def test_generation_set_usage(self):
        """Token counts map onto Langfuse usage_details keys."""
        from tool_agent.tracing import GenerationContext

        gen = GenerationContext(name="test", model="model")
        gen.set_usage(prompt_tokens=10, completion_tokens=20, total_tokens=30)
        assert gen._usage == {"input": 10, "output": 20, "total": 30}

    def test_span_set_status(self):
        from tool_agent.tracing import SpanContext

        span = SpanContext(name="test")
        span.set_status("error")
        assert span._status == "error"


class TestTracingLifecycle:
    """Full trace lifecycle with a mocked Langfuse client."""

    def test_trace_tagged_with_session(self):
        from tool_agent.tracing import TracingContext

        langfuse = mock_langfuse()
        ctx = TracingContext(enabled_client(langfuse), session_id="s1", turn_id="t1")

        ctx.start_trace(name="turn", input={"human": "hi"})

        root = ctx._root_span
        root.update_trace.assert_called_once_with(session_id="s1")
        kwargs = langfuse.start_as_current_observation.call_args.kwargs
        assert kwargs["as_type"] == "span"
        assert kwargs["metadata"]["turn_id"] == "t1"
        assert ctx.get_trace_context() == {"trace_id": "trace-1", "parent_span_id": "root-1"}

    def test_children_linked_to_root(self):
        """Spans and generations carry the root's trace context."""
        from tool_agent.tracing import TracingContext

        langfuse = mock_langfuse()
        ctx = TracingContext(enabled_client(langfuse), session_id="s1")
        ctx.start_trace()

        with ctx.generation(name="model_call_1", model="gpt-test") as gen:
            gen.set_usage(prompt_tokens=1, completion_tokens=2, total_tokens=3)
            gen.set_output("hello")

        kwargs = langfuse.start_as_current_observation.call_args.kwargs
        assert kwargs["as_type"] == "generation"
        assert kwargs["model"] == "gpt-test"
        assert kwargs["trace_context"] == {"trace_id": "trace-1", "parent_span_id": "root-1"}
        update = gen._observation.update.call_args.kwargs
        assert update["output"] == "hello"
        assert update["usage_details"] == {"input": 1, "output": 2, "total": 3}

    @pytest.mark.asyncio
    async def test_end_trace_flushes(self):
        from tool_agent.tracing import TracingContext

        langfuse = mock_langfuse()
        ctx = TracingContext(enabled_client(langfuse), session_id="s1")
        ctx.start_trace()
        root = ctx._root_span

        await ctx.end_trace(output={"answer": "ok"}, status="completed")

        update = root.update.call_args.kwargs
        assert update["output"] == {"answer": "ok"}
        assert update["metadata"]["status"] == "completed"
        langfuse.flush.assert_called_once()

    @pytest.mark.asyncio
    async def test_flush_runs_off_event_loop_thread(self):
        """The blocking export never runs on the thread serving other sessions."""
        from tool_agent.tracing import TracingContext

        langfuse = mock_langfuse()
        flush_threads = []
        langfuse.flush.side_effect = lambda: flush_threads.append(threading.get_ident())
        ctx = TracingContext(enabled_client(langfuse), session_id="s1")
        ctx.start_trace()

        await ctx.end_trace(output="done")

        assert len(flush_threads) == 1
        assert flush_threads[0] != threading.get_ident()

    def test_sdk_errors_do_not_escape(self):
        """A failing observation start leaves the span inert."""
        from tool_agent.tracing import TracingContext

        langfuse = mock_langfuse()
        ctx = TracingContext(enabled_client(langfuse), session_id="s1")
        langfuse.start_as_current_observation.side_effect = RuntimeError("exporter down")

        ctx.start_trace()
        with ctx.span(name="tool:x") as span:
            span.set_output("ok")

        assert ctx._root_span is None
        assert span._observation is None


class TestLoopTracingIntegration:
    """Tests for orchestration loop tracing."""

    @pytest.mark.asyncio
    async def test_turn_traced(self):
        """A tool round produces a generation per model call and a tool span."""
        langfuse = mock_langfuse()
        loop, _ = build_loop(
            [
                tool_request(("c1", "additionTool", {"a": 2, "b": 3})),
                FinalAnswer("5"),
            ],
            tracing=enabled_client(langfuse),
        )

        result = await loop.run_turn("s1", "2 + 3?")

        assert result.answer == "5"
        names = [c.kwargs["name"] for c in langfuse.start_as_current_observation.call_args_list]
        assert names == ["turn", "model_call_1", "tool:additionTool", "model_call_2"]
        langfuse.flush.assert_called_once()

    @pytest.mark.asyncio
    async def test_turn_without_tracing(self):
        loop, _ = build_loop([FinalAnswer("hi")], tracing=None)
        assert (await loop.run_turn("s1", "hello")).answer == "hi"

    @pytest.mark.asyncio
    async def test_disabled_tracing_client(self):
        from tool_agent.tracing.client import TracingClient

        client = TracingClient()
        client.flush = Mock()
        loop, _ = build_loop([FinalAnswer("hi")], tracing=client)
        assert (await loop.run_turn("s1", "hello")).answer == "hi"
        client.flush.assert_not_called()
