"""Tests for API endpoints."""

import json
import uuid
from unittest.mock import AsyncMock

import httpx
import pytest
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

from conftest import FailingAfterTextModel, ScriptedModel, parse_sse, streamed_text, text_turn, tool_turn
from toolchat.dependencies import get_session_store
from toolchat.errors import UpstreamError
from toolchat.main import app
from toolchat.models.llm import ToolResultBlock
from toolchat.models.session import ChatMessage
from toolchat.services.sessions import SessionService
from toolchat.services.store import RedisSessionStore


def answer_with_tool_result(messages):
    block = messages[-1].content[0]
    assert isinstance(block, ToolResultBlock)
    return text_turn(f"15 times 23 is {block.content}.")


@pytest.fixture
def client(api_client):
    return api_client(ScriptedModel(text_turn("Hello! How can I help?")))


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    def test_health_check_returns_200(self, client):
        """Test that health check returns 200 status."""
        response = client.get("/health")
        assert response.status_code == 200

    def test_health_check_response_structure(self, client):
        """Test that health check returns expected JSON structure."""
        data = client.get("/health").json()

        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        assert "timestamp" in data
        assert "store" in data
        assert isinstance(data["model_configured"], bool)

    def test_health_check_unreachable_redis(self, client):
        """Test that an unreachable Redis store reports degraded health."""
        redis_store = RedisSessionStore("redis://localhost:6379/0")
        redis_store._client = AsyncMock()
        redis_store._client.ping.side_effect = RedisConnectionError("refused")
        app.dependency_overrides[get_session_store] = lambda: redis_store

        assert client.get("/health").json()["status"] == "degraded"

    def test_health_check_content_type(self, client):
        """Test that health check returns JSON content type."""
        response = client.get("/health")
        assert response.headers["content-type"] == "application/json"


class TestChatEndpoint:
    """Tests for the streaming chat endpoint."""

    def test_streams_text_and_done(self, client):
        """Test that a plain answer is streamed as text events followed by done."""
        response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "Hi"}]})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")

        events = parse_sse(response.text)
        assert streamed_text(events).strip() == "Hello! How can I help?"
        assert events[-1]["type"] == "done"
        assert events[-1]["finishReason"] == "end_turn"
        assert events[-1]["steps"] == 1
        assert events[-1]["truncated"] is False

    def test_generates_session_id(self, client):
        response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "Hi"}]})
        assert uuid.UUID(response.headers["x-session-id"]).version == 4

    def test_uses_given_session_id(self, client):
        response = client.post(
            "/api/chat",
            json={"messages": [{"role": "user", "content": "Hi"}], "sessionId": "my-session"},
        )
        assert response.headers["x-session-id"] == "my-session"

    def test_calculator_end_to_end(self, api_client):
        """Test a full turn where the model calls the calculator."""
        model = ScriptedModel(tool_turn("calculator", {"expression": "15 * 23"}), answer_with_tool_result)
        client = api_client(model)

        response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "What is 15 * 23?"}]})

        assert response.status_code == 200
        events = parse_sse(response.text)
        assert "345" in streamed_text(events)
        assert events[-1]["steps"] == 2
        assert events[-1]["usage"] == {"inputTokens": 20, "outputTokens": 10}

        # Tool traffic is threaded into the model conversation but not streamed
        assert all(event["type"] in ("text", "done") for event in events)
        assert len(model.calls) == 2

    def test_history_is_sent_to_model(self, api_client):
        model = ScriptedModel(text_turn("Sure"))
        client = api_client(model)

        client.post(
            "/api/chat",
            json={
                "messages": [
                    {"role": "user", "content": "Remember 7"},
                    {"role": "assistant", "content": "OK"},
                    {"role": "tool", "content": "7"},
                    {"role": "user", "content": "What was it?"},
                ]
            },
        )

        sent = model.calls[0]
        assert [m.role for m in sent] == ["user", "assistant", "user", "user"]
        assert sent[2].content == "Tool result: 7"

    def test_empty_messages_rejected(self, client):
        response = client.post("/api/chat", json={"messages": []})
        assert response.status_code == 400
        assert response.json()["error"] == "validation_error"

    def test_invalid_body_rejected(self, client):
        response = client.post("/api/chat", json={"messages": [{"role": "system", "content": "x"}]})
        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "validation_error"
        assert data["details"]

    def test_message_too_long_rejected(self, client):
        response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "x" * 5000}]})
        assert response.status_code == 400
        assert "token limit" in response.json()["message"]

    def test_model_failure_before_streaming(self, api_client):
        """Test that a failure before the first event is a plain JSON 500."""
        client = api_client(ScriptedModel(UpstreamError("Inference provider error: overloaded")))

        response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "Hi"}]})

        assert response.status_code == 500
        assert response.json() == {"error": "upstream_error", "message": "Inference provider error: overloaded"}

    def test_model_failure_mid_stream(self, api_client):
        """Test that a failure after streaming started is reported in-band."""
        client = api_client(FailingAfterTextModel())

        response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "Hi"}]})

        assert response.status_code == 200
        events = parse_sse(response.text)
        assert events[0] == {"type": "text", "content": "Partial "}
        assert events[-1]["type"] == "error"
        assert events[-1]["error"] == "upstream_error"

    def test_transport_failure_mid_stream(self, api_client):
        """Test that an unexpected exception after streaming started is still reported in-band."""
        error = httpx.RemoteProtocolError("peer closed connection without sending complete message body")
        client = api_client(FailingAfterTextModel(error))

        response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "Hi"}]})

        assert response.status_code == 200
        events = parse_sse(response.text)
        assert events[0] == {"type": "text", "content": "Partial "}
        assert events[-1] == {"type": "error", "error": "internal_error", "message": "Internal server error"}

    def test_chat_works_without_store(self, api_client):
        client = api_client(ScriptedModel(text_turn("Still answering")))
        app.dependency_overrides[get_session_store] = lambda: None

        response = client.post("/api/chat", json={"messages": [{"role": "user", "content": "Hi"}]})

        assert response.status_code == 200
        assert streamed_text(parse_sse(response.text)).strip() == "Still answering"


class TestSessionEndpoints:
    """Tests for session creation and lookup."""

    def test_create_session(self, client, store):
        response = client.post("/api/chat/session")

        assert response.status_code == 200
        session_id = response.json()["sessionId"]
        assert uuid.UUID(session_id).version == 4

    def test_read_session(self, client):
        session_id = client.post("/api/chat/session").json()["sessionId"]

        response = client.get("/api/chat/session", params={"sessionId": session_id})

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == session_id
        assert data["messageCount"] == 0
        assert data["createdAt"] == data["lastActivity"]

    @pytest.mark.asyncio
    async def test_read_session_returns_stored_json(self, client, store):
        raw = json.dumps({"id": "s1", "createdAt": 1, "lastActivity": 2, "messageCount": 4})
        await store.put("session:s1", raw, 60)

        response = client.get("/api/chat/session?sessionId=s1")
        assert response.text == raw

    def test_read_session_requires_id(self, client):
        response = client.get("/api/chat/session")
        assert response.status_code == 400
        assert response.json()["message"] == "Session ID required"

    def test_read_unknown_session(self, client):
        response = client.get("/api/chat/session", params={"sessionId": "does-not-exist"})
        assert response.status_code == 404
        assert response.json()["message"] == "Session not found"

    def test_store_not_configured(self, client):
        app.dependency_overrides[get_session_store] = lambda: None

        create = client.post("/api/chat/session")
        read = client.get("/api/chat/session", params={"sessionId": "s1"})

        assert create.status_code == 500
        assert create.json()["message"] == "Chat sessions storage not available"
        assert read.status_code == 500

    def test_redis_server_errors(self, client):
        """Test that Redis command errors map to a JSON 500 on write and a 404 on read."""
        redis_store = RedisSessionStore("redis://localhost:6379/0")
        redis_store._client = AsyncMock()
        redis_store._client.setex.side_effect = ResponseError("OOM command not allowed when used memory > 'maxmemory'")
        redis_store._client.get.side_effect = ResponseError("WRONGTYPE Operation against a key")
        app.dependency_overrides[get_session_store] = lambda: redis_store

        create = client.post("/api/chat/session")
        read = client.get("/api/chat/session", params={"sessionId": "s1"})

        assert create.status_code == 500
        assert create.headers["content-type"] == "application/json"
        assert create.json()["error"] == "store_error"
        assert read.status_code == 404

    def test_unexpected_error_is_json(self, client):
        class BrokenStore:
            async def get(self, key):
                raise RuntimeError("corrupted")

        app.dependency_overrides[get_session_store] = lambda: BrokenStore()
        raw_client = TestClient(app, raise_server_exceptions=False)

        response = raw_client.get("/api/chat/session", params={"sessionId": "s1"})

        assert response.status_code == 500
        assert response.json() == {"error": "internal_error", "message": "Internal server error"}


class TestConversationEndpoint:
    """Tests for reading back a recorded transcript."""

    @pytest.mark.asyncio
    async def test_read_conversation(self, client, store):
        messages = [ChatMessage(role="user", content="What is 15 * 23?"), ChatMessage(role="assistant", content="345")]
        await SessionService(store).record_turn("s1", messages)

        response = client.get("/api/chat/conversation", params={"sessionId": "s1"})

        assert response.status_code == 200
        data = response.json()
        assert data["sessionId"] == "s1"
        assert data["messages"] == [
            {"role": "user", "content": "What is 15 * 23?"},
            {"role": "assistant", "content": "345"},
        ]
        assert isinstance(data["lastUpdated"], int)

    def test_requires_id(self, client):
        response = client.get("/api/chat/conversation")
        assert response.status_code == 400
        assert response.json()["message"] == "Session ID required"

    def test_unknown_session(self, client):
        response = client.get("/api/chat/conversation", params={"sessionId": "does-not-exist"})
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_store_not_configured(self, client):
        app.dependency_overrides[get_session_store] = lambda: None

        response = client.get("/api/chat/conversation", params={"sessionId": "s1"})

        assert response.status_code == 500
        assert response.json()["message"] == "Chat sessions storage not available"


class TestDocs:
    """Tests for the generated API documentation."""

    def test_openapi_lists_routes(self, client):
        paths = client.get("/openapi.json").json()["paths"]
        assert "/api/chat" in paths
        assert "/api/chat/session" in paths
        assert "/api/chat/conversation" in paths
        assert "/health" in paths

    def test_docs_page(self, client):
        assert client.get("/docs").status_code == 200
