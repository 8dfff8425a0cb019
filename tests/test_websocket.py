"""
Feature: WebSocket endpoint end to end
  As a frontend application
  I want to talk to the chat engine over /api/ws
  So that teammates see each other type and leave in real time

Scenario: Two members in one project room
  Given two authenticated sockets joined to the same project
  When socket A starts typing
  Then socket B receives user-typing with isTyping true
  When socket A disconnects
  Then socket B receives user-typing with isTyping false and user-disconnected

Scenario: Connection statistics
  When requesting /api/ws/stats
  Then the number of live connections is returned
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine, Session, SQLModel
from models.auth import User, Token, TokenUser
from services import membership
from database import get_session
from main import create_app
from datetime import datetime, timezone, timedelta


@pytest.fixture(name="engine")
def engine_fixture():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="client")
def client_fixture(engine):
    app = create_app(session_factory=lambda: Session(engine))

    def get_session_override():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = get_session_override
    with TestClient(app) as client:
        yield client


@pytest.fixture(name="project_id")
def project_fixture(engine):
    with Session(engine) as session:
        users = []
        for username in ("alice", "bob"):
            user = User(username=username, email=f"{username}@example.com", hashed_password="hashed_secret")
            token = Token(
                access_token=f"{username}_token",
                expires_at=datetime.now(timezone.utc) + timedelta(hours=1)
            )
            session.add_all([user, token])
            session.commit()
            session.add(TokenUser(token_id=token.id, user_id=user.id))
            session.commit()
            users.append(user.id)

        project = membership.create_project(session, owner_id=users[0], name="Socket Project")
        membership.add_member(session, project, users[1])
        return project.id


def receive_until(websocket, event):
    """Skip frames until `event` arrives."""
    while True:
        frame = websocket.receive_json()
        if frame["event"] == event:
            return frame["data"]


def open_session(websocket, username, project_id):
    receive_until(websocket, "connection-established")
    websocket.send_json({"event": "authenticate", "data": {"token": f"{username}_token"}})
    authenticated = receive_until(websocket, "authenticated")
    websocket.send_json({"event": "join-project", "data": {"projectId": project_id}})
    return authenticated["userId"]


def test_typing_and_disconnect_between_two_sockets(client, project_id):
    with client.websocket_connect("/api/ws") as socket_b:
        with client.websocket_connect("/api/ws") as socket_a:
            user_a = open_session(socket_a, "alice", project_id)
            open_session(socket_b, "bob", project_id)

            # B is in the room once A hears about it
            receive_until(socket_a, "user-joined-project")

            socket_a.send_json({
                "event": "typing-start",
                "data": {"projectId": project_id, "username": "alice"}
            })
            typing = receive_until(socket_b, "user-typing")
            assert typing == {"userId": user_a, "username": "alice", "projectId": project_id, "isTyping": True}

        # A disconnected
        stopped = receive_until(socket_b, "user-typing")
        assert stopped["isTyping"] is False
        assert stopped["userId"] == user_a

        gone = receive_until(socket_b, "user-disconnected")
        assert gone["userId"] == user_a


def test_send_message_reaches_room_and_rest_history(client, project_id):
    with client.websocket_connect("/api/ws") as socket_a:
        open_session(socket_a, "alice", project_id)

        socket_a.send_json({
            "event": "send-message",
            "data": {"projectId": project_id, "content": "", "attachment": {"filename": "report.pdf"}}
        })
        event = receive_until(socket_a, "new-message")
        assert event["message"]["content"] == "report.pdf"

    response = client.get(
        f"/api/messages/project/{project_id}",
        headers={"Authorization": "Bearer bob_token"}
    )
    assert response.status_code == 200
    data = response.json()
    assert [m["content"] for m in data["messages"]] == ["report.pdf"]
    assert data["totalMessages"] == 1


def test_unauthenticated_socket_is_refused_events(client, project_id):
    with client.websocket_connect("/api/ws") as websocket:
        receive_until(websocket, "connection-established")

        websocket.send_json({"event": "join-project", "data": {"projectId": project_id}})
        assert receive_until(websocket, "authentication-error") == {"message": "Authentication required"}

        websocket.send_text("not json")
        assert receive_until(websocket, "error") == {"message": "Invalid JSON"}

        websocket.send_json({"event": "ping", "data": {"timestamp": "2025-01-01T00:00:00Z"}})
        assert receive_until(websocket, "pong")["timestamp"] == "2025-01-01T00:00:00Z"


def test_websocket_stats_endpoint(client):
    response = client.get("/api/ws/stats")
    assert response.status_code == 200
    assert response.json()["activeConnections"] == 0
    assert response.json()["status"] == "running"

    with client.websocket_connect("/api/ws") as websocket:
        receive_until(websocket, "connection-established")
        assert client.get("/api/ws/stats").json()["activeConnections"] == 1


def test_health(client):
    assert client.get("/api/health").json() == {"message": "Team Board API is running"}
