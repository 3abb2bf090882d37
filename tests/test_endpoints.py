"""Tests for API endpoints."""

from datetime import timedelta
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from maestro.exceptions import TransportError
from maestro.main import app
from maestro.models.llm import ToolExecutionResult
from maestro.models.settings import SettingsData
from maestro.services.conversation import ConversationService
from maestro.services.orchestrator import OrchestrationEngine
from maestro.services.session_manager import InMemorySessionManager
from maestro.tools.registry import ToolsRegistry
from tests.fakes import FakeExecutor, ScriptedClient, make_response, text, tool_use

client = TestClient(app)


def build_service(responses, api_key: str = "test-key") -> ConversationService:
    scripted = ScriptedClient(responses)
    executor = FakeExecutor(lambda name, args: ToolExecutionResult(output="a.txt\nb.txt"))
    engine = OrchestrationEngine(executor, ToolsRegistry(), client_factory=lambda key: scripted)
    return ConversationService(engine=engine, settings=SettingsData(api_key=api_key))


@pytest.fixture
def sessions():
    manager = InMemorySessionManager()
    with patch("maestro.api.endpoints.session_manager", manager):
        yield manager


class TestHealthEndpoint:
    """Tests for the health check endpoint."""

    def test_health_check_response_structure(self):
        """Test that health check returns expected JSON structure."""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["version"] == "0.1.0"
        assert "timestamp" in data


class TestConversationEndpoint:
    """Tests for the conversation endpoint."""

    def test_conversation_runs_tool_loop(self, sessions):
        """Test that a message produces the tool exchange and final answer."""
        service = build_service(
            [
                make_response([tool_use("toolu_1", "bash", {"command": "ls /tmp"})], stop_reason="tool_use"),
                make_response([text("Found 2 files.")]),
            ]
        )
        with patch("maestro.api.endpoints.conversation_service", service):
            response = client.post("/conversation", json={"message": "list files in /tmp"})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["turns"] == 2
        assert [message["role"] for message in data["messages"]] == ["user", "assistant", "user", "assistant"]
        assert data["messages"][2]["content"][0]["type"] == "tool_result"
        assert data["messages"][3]["content"][0]["text"] == "Found 2 files."
        assert sessions.get_session(data["session_id"]) is not None

    def test_conversation_continues_session(self, sessions):
        """Test that a second message only returns the messages it added."""
        service = build_service([make_response([text("First")]), make_response([text("Second")])])
        with patch("maestro.api.endpoints.conversation_service", service):
            first = client.post("/conversation", json={"message": "one"}).json()
            second = client.post("/conversation", json={"message": "two", "session_id": first["session_id"]}).json()

        assert second["session_id"] == first["session_id"]
        assert [message["role"] for message in second["messages"]] == ["user", "assistant"]
        assert len(sessions.get_session(first["session_id"]).messages) == 4

    def test_unknown_session_returns_404(self, sessions):
        response = client.post("/conversation", json={"message": "Hello", "session_id": "missing"})
        assert response.status_code == 404

    def test_missing_api_key_returns_400(self, sessions):
        """Test that missing credentials are reported without touching history."""
        service = build_service([], api_key="")
        session = sessions.get_or_create_session()
        with patch("maestro.api.endpoints.conversation_service", service):
            response = client.post("/conversation", json={"message": "Hello", "session_id": session.session_id})

        assert response.status_code == 400
        assert "API key" in response.json()["detail"]
        assert session.messages == []

    def test_empty_message_returns_400(self, sessions):
        service = build_service([])
        with patch("maestro.api.endpoints.conversation_service", service):
            response = client.post("/conversation", json={"message": "   "})
        assert response.status_code == 400

    def test_transport_error_returns_502(self, sessions):
        service = build_service([TransportError("Anthropic API error 500: boom", status_code=500)])
        with patch("maestro.api.endpoints.conversation_service", service):
            response = client.post("/conversation", json={"message": "Hello"})
        assert response.status_code == 502

    def test_missing_message_field(self):
        response = client.post("/conversation", json={})
        assert response.status_code == 422


class TestCancelEndpoint:
    """Tests for the cancel endpoint."""

    def test_cancel_without_active_run(self):
        service = build_service([])
        with patch("maestro.api.endpoints.conversation_service", service):
            response = client.post("/conversation/idle-session/cancel")

        assert response.status_code == 200
        assert response.json() == {"session_id": "idle-session", "cancelled": False}


class TestSessionEndpoint:
    """Tests for reading session history."""

    def test_create_session(self, sessions):
        """Test that a session can be created before its first message."""
        response = client.post("/sessions")

        assert response.status_code == 201
        data = response.json()
        assert data["message_count"] == 0
        assert sessions.get_session(data["session_id"]) is not None

    def test_get_session_history(self, sessions):
        session = sessions.get_or_create_session(title="Files")
        session.append_user_text("list files")

        response = client.get(f"/sessions/{session.session_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == session.session_id
        assert data["title"] == "Files"
        assert data["messages"][0]["content"][0]["text"] == "list files"

    def test_get_unknown_session(self, sessions):
        assert client.get("/sessions/missing").status_code == 404

    def test_list_sessions(self, sessions):
        """Test that sessions are listed most recently active first."""
        older = sessions.get_or_create_session(title="Older")
        newer = sessions.get_or_create_session(title="Newer")
        newer.append_user_text("hi")
        older.last_activity -= timedelta(minutes=1)

        response = client.get("/sessions")

        assert response.status_code == 200
        data = response.json()
        assert [entry["session_id"] for entry in data] == [newer.session_id, older.session_id]
        assert data[0]["message_count"] == 1

    def test_delete_session(self, sessions):
        session = sessions.get_or_create_session()
        service = build_service([])
        with patch("maestro.api.endpoints.conversation_service", service):
            assert client.delete(f"/sessions/{session.session_id}").status_code == 204
            assert client.delete(f"/sessions/{session.session_id}").status_code == 404
        assert sessions.get_session_count() == 0
