"""Tests for OpenAI-compatible chat endpoints."""

import json
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient

from tool_agent.api.dependencies import get_orchestration_loop
from tool_agent.api.main import app
from tool_agent.errors import ProviderFailure, StoreFailure
from tool_agent.orchestration import FinalAnswer
from tool_agent.orchestration.loop import APOLOGY_MESSAGE

from helpers import build_loop, tool_request

client = TestClient(app)


@pytest.fixture
def use_loop():
    """Serve a scripted loop: use_loop(script, **options) -> (loop, gateway)."""

    def install(script, **options):
        loop, gateway = build_loop(script, **options)
        app.dependency_overrides[get_orchestration_loop] = lambda: loop
        return loop, gateway

    yield install
    app.dependency_overrides.clear()


def chat(text: str, session_id=None, **extra):
    body = {"model": "tool-agent", "messages": [{"role": "user", "content": text}], **extra}
    if session_id:
        body["session_id"] = session_id
    return client.post("/v1/chat/completions", json=body)


class TestModelsEndpoint:
    """Tests for /v1/models endpoint."""

    def test_list_models(self):
        """Models list should include tool-agent in OpenAI format."""
        response = client.get("/v1/models")
        assert response.status_code == 200
        data = response.json()
        assert data["object"] == "list"
        assert len(data["data"]) == 1
        model = data["data"][0]
        assert model["id"] == "tool-agent"
        assert model["object"] == "model"
        assert "created" in model
        assert "owned_by" in model

    def test_get_model(self):
        response = client.get("/v1/models/tool-agent")
        assert response.status_code == 200
        assert response.json()["id"] == "tool-agent"

    def test_get_model_not_found(self):
        """Get unknown model should return 404."""
        response = client.get("/v1/models/unknown-model")
        assert response.status_code == 404


class TestChatCompletionsEndpoint:
    """Tests for /v1/chat/completions endpoint."""

    def test_chat_completion_success(self, use_loop):
        """A direct answer is returned in OpenAI format."""
        use_loop([FinalAnswer("Hello!")])

        response = chat("Hi", session_id="s1")

        assert response.status_code == 200
        data = response.json()
        assert data["object"] == "chat.completion"
        assert data["id"].startswith("chatcmpl-")
        assert data["model"] == "tool-agent"
        assert data["session_id"] == "s1"
        assert data["status"] == "completed"
        choice = data["choices"][0]
        assert choice["message"]["role"] == "assistant"
        assert choice["message"]["content"] == "Hello!"
        assert choice["finish_reason"] == "stop"
        assert "usage" in data

    def test_tool_round(self, use_loop):
        """Tools run server-side before the answer is returned."""
        _, gateway = use_loop(
            [
                tool_request(("call_1", "additionTool", {"a": 2, "b": 3})),
                FinalAnswer("2 + 3 = 5"),
            ]
        )

        response = chat("What is 2 + 3?", session_id="s1")

        assert response.json()["choices"][0]["message"]["content"] == "2 + 3 = 5"
        assert gateway.histories[1][-1].content == "5"

    def test_session_continues(self, use_loop):
        """A second request with the same session id sees the first turn."""
        _, gateway = use_loop([FinalAnswer("one"), FinalAnswer("two")])

        chat("first", session_id="s1")
        chat("second", session_id="s1")

        assert [m.content for m in gateway.histories[1][1:]] == ["first", "one", "second"]

    def test_session_id_generated(self, use_loop):
        use_loop([FinalAnswer("Hello!")])
        response = chat("Hi")
        assert response.json()["session_id"].startswith("session-")

    def test_only_last_user_message_used(self, use_loop):
        """Earlier messages in the request are ignored; history is server-side."""
        _, gateway = use_loop([FinalAnswer("ok")])
        client.post(
            "/v1/chat/completions",
            json={
                "session_id": "s1",
                "messages": [
                    {"role": "system", "content": "ignored"},
                    {"role": "user", "content": "old"},
                    {"role": "assistant", "content": "old answer"},
                    {"role": "user", "content": [{"type": "text", "text": "new"}]},
                ],
            },
        )
        assert [m.content for m in gateway.histories[0][1:]] == ["new"]

    def test_provider_failure_degrades(self, use_loop):
        """A model failure still returns 200 with the apology."""
        use_loop([ProviderFailure("down")])
        data = chat("Hi", session_id="s1").json()
        assert data["status"] == "degraded"
        assert data["choices"][0]["message"]["content"] == APOLOGY_MESSAGE

    def test_approval_required_returns_tool_calls(self, use_loop):
        """With approval enabled the pending calls are returned instead of an answer."""
        use_loop(
            [tool_request(("call_1", "additionTool", {"a": 2, "b": 3}))],
            require_approval=True,
        )

        data = chat("What is 2 + 3?", session_id="s1").json()

        assert data["status"] == "awaiting_approval"
        choice = data["choices"][0]
        assert choice["finish_reason"] == "tool_calls"
        assert choice["message"]["content"] is None
        call = choice["message"]["tool_calls"][0]
        assert call["id"] == "call_1"
        assert call["type"] == "function"
        assert call["function"]["name"] == "additionTool"
        assert json.loads(call["function"]["arguments"]) == {"a": 2, "b": 3}

    def test_streaming(self, use_loop):
        """stream=true returns server-sent events ending with [DONE]."""
        use_loop([FinalAnswer("Hello!")])

        response = chat("Hi", session_id="s1", stream=True)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        events = [line[len("data: "):] for line in response.text.split("\n\n") if line]
        assert events[-1] == "[DONE]"
        first = json.loads(events[0])
        assert first["object"] == "chat.completion.chunk"
        assert first["choices"][0]["delta"] == {"role": "assistant", "content": "Hello!"}
        assert json.loads(events[1])["choices"][0]["finish_reason"] == "stop"

    def test_no_user_message(self, use_loop):
        use_loop([])
        response = client.post(
            "/v1/chat/completions",
            json={"messages": [{"role": "system", "content": "hi"}]},
        )
        assert response.status_code == 400

    def test_empty_user_message(self, use_loop):
        use_loop([])
        assert chat("   ").status_code == 400

    def test_empty_messages_list(self, use_loop):
        """Validation errors are reported as 400."""
        use_loop([])
        response = client.post("/v1/chat/completions", json={"messages": []})
        assert response.status_code == 400

    def test_store_failure_returns_503(self):
        """Session state problems are surfaced, not hidden."""
        loop = Mock()
        loop.run_turn = AsyncMock(side_effect=StoreFailure("disk full", "s1"))
        app.dependency_overrides[get_orchestration_loop] = lambda: loop
        try:
            response = chat("Hi", session_id="s1")
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 503
        assert response.json()["error"]["type"] == "store_unavailable"
