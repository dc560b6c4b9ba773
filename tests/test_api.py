import httpx
import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from jurisly.backend import build_backend
from jurisly.config import Settings
from jurisly.main import create_app

from conftest import ANON_KEY, HOSTED_URL


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["backend_mode"] == "local"
    assert "X-Request-ID" in response.headers


def test_signup_login_and_session(client):
    signup = client.post(
        "/api/auth/signup",
        json={"email": "asha@example.com", "password": "secret123", "name": "Asha"},
    )
    assert signup.status_code == 201
    assert signup.json()["message"] == "Account created successfully!"

    login = client.post("/api/auth/login", json={"email": "asha@example.com", "password": "secret123"})
    assert login.status_code == 200
    token = login.json()["session"]["access_token"]

    me = client.get("/api/auth/session", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["name"] == "Asha"
    assert me.json()["email_verified"] is True


def test_duplicate_signup_is_conflict(client, auth_headers):
    response = client.post(
        "/api/auth/signup",
        json={"email": "asha@example.com", "password": "secret123", "name": "Asha"},
    )

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "ERR_3003"


def test_bad_login_uses_error_envelope(client, auth_headers):
    response = client.post("/api/auth/login", json={"email": "asha@example.com", "password": "nope"})

    assert response.status_code == 401
    error = response.json()["error"]
    assert error["code"] == "ERR_3001"
    assert error["message"] == "Invalid email or password."
    assert "request_id" in error


def test_requests_without_token_are_rejected(client):
    response = client.get("/api/chat/messages")

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "ERR_1003"


def test_logout_ends_session(client, auth_headers):
    assert client.post("/api/auth/logout", headers=auth_headers).status_code == 200
    assert client.get("/api/users/me", headers=auth_headers).status_code == 401


def test_send_list_delete_clear(client, auth_headers):
    sent = client.post("/api/chat/messages", json={"message": "hello"}, headers=auth_headers)
    assert sent.status_code == 201
    message_id = sent.json()["id"]
    client.post("/api/chat/messages", json={"message": "second"}, headers=auth_headers)

    listed = client.get("/api/chat/messages", headers=auth_headers).json()
    assert [m["message"] for m in listed] == ["hello", "second"]

    assert client.delete(f"/api/chat/messages/{message_id}", headers=auth_headers).status_code == 200
    missing = client.delete(f"/api/chat/messages/{message_id}", headers=auth_headers)
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "ERR_3004"

    cleared = client.delete("/api/chat/messages", headers=auth_headers)
    assert cleared.json() == {"success": True, "deleted_count": 1}
    assert client.get("/api/chat/messages", headers=auth_headers).json() == []


def test_ask_stores_question_and_reply(client, auth_headers, webhook):
    _, calls = webhook

    response = client.post("/api/chat/ask", json={"message": "What is IPC 420?"}, headers=auth_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["fallback"] is False
    assert body["assistant_message"]["role"] == "assistant"
    assert body["assistant_message"]["message"] == "Under Section 420 IPC, cheating is punishable."
    assert calls[0]["message"] == "What is IPC 420?"
    assert len(client.get("/api/chat/messages", headers=auth_headers).json()) == 2


def test_conversations_and_export(client, auth_headers):
    created = client.post("/api/chat/conversations", json={}, headers=auth_headers).json()
    assert created["title"] == "New Chat"
    client.post("/api/chat/ask", json={"message": "Tenant rights?"}, headers=auth_headers)

    summaries = client.get("/api/chat/conversations", headers=auth_headers).json()
    assert summaries[0]["id"] == created["id"]
    assert summaries[0]["is_active"] is True
    assert summaries[0]["message_count"] == 2
    assert summaries[0]["title"] == "Tenant rights?"

    export = client.get(f"/api/chat/conversations/{created['id']}/export?format=pdf", headers=auth_headers)
    assert export.status_code == 200
    assert export.headers["content-type"].startswith("text/html")
    assert f"jurisly-chat-{created['id']}.html" in export.headers["content-disposition"]

    bad = client.get("/api/chat/export?format=docx", headers=auth_headers)
    assert bad.status_code == 422
    assert bad.json()["error"]["code"] == "ERR_3006"

    welcome = summaries[-1]["id"]
    switched = client.put("/api/chat/conversations/active", json={"conversation_id": welcome}, headers=auth_headers)
    assert switched.status_code == 200

    deleted = client.delete(f"/api/chat/conversations/{created['id']}", headers=auth_headers)
    assert deleted.json()["deleted_count"] == 2
    assert client.get(f"/api/chat/conversations/{created['id']}", headers=auth_headers).status_code == 404


def test_profile_and_preferences(client, auth_headers):
    patched = client.patch(
        "/api/users/me",
        json={"name": "Asha K", "account_type": "Advocate", "date_of_birth": "1990-04-12"},
        headers=auth_headers,
    )
    assert patched.status_code == 200
    assert patched.json()["name"] == "Asha K"
    assert patched.json()["date_of_birth"] == "1990-04-12"

    defaults = client.get("/api/users/me/preferences", headers=auth_headers).json()
    assert defaults == {
        "language": "en",
        "voice_enabled": True,
        "ai_mode": "text",
        "theme": "dark",
        "notification_tone": True,
    }

    updated = client.put("/api/users/me/preferences", json={"language": "hi", "theme": "purple"}, headers=auth_headers)
    assert updated.json()["language"] == "hi"
    assert updated.json()["voice_enabled"] is True
    assert client.get("/api/users/me/preferences", headers=auth_headers).json()["theme"] == "purple"


def test_change_password(client, auth_headers):
    wrong = client.post(
        "/api/users/me/password",
        json={"current_password": "nope", "new_password": "newsecret"},
        headers=auth_headers,
    )
    assert wrong.status_code == 401

    ok = client.post(
        "/api/users/me/password",
        json={"current_password": "secret123", "new_password": "newsecret"},
        headers=auth_headers,
    )
    assert ok.status_code == 200
    assert ok.json()["message"] == "Password updated successfully!"


def test_avatar_upload_is_served_locally(client, auth_headers):
    png = b"\x89PNG\r\n\x1a\n" + b"0" * 32

    response = client.post(
        "/api/users/me/avatar",
        files={"file": ("me.png", png, "image/png")},
        headers=auth_headers,
    )

    assert response.status_code == 200
    avatar = response.json()["avatar"]
    assert avatar.startswith("/media/avatars/") and avatar.endswith(".png")
    assert client.get(avatar).content == png

    rejected = client.post(
        "/api/users/me/avatar",
        files={"file": ("notes.txt", b"hello", "text/plain")},
        headers=auth_headers,
    )
    assert rejected.status_code == 422


def test_avatar_extension_follows_content_type(client, auth_headers):
    response = client.post(
        "/api/users/me/avatar",
        files={"file": ("x.html", b"<script>alert(1)</script>", "image/png")},
        headers=auth_headers,
    )

    assert response.status_code == 200
    avatar = response.json()["avatar"]
    assert avatar.endswith(".png")

    served = client.get(avatar)
    assert served.headers["content-type"] == "image/png"


def test_websocket_snapshot_events_and_commands(client, auth_headers):
    token = auth_headers["Authorization"].split(" ", 1)[1]
    client.post("/api/chat/messages", json={"message": "existing"}, headers=auth_headers)

    with client.websocket_connect(f"/api/chat/ws?token={token}") as ws:
        snapshot = ws.receive_json()
        assert snapshot["type"] == "snapshot"
        assert [m["message"] for m in snapshot["messages"]] == ["existing"]

        ws.send_json({"action": "send", "message": "live hello"})
        result = ws.receive_json()
        assert result["type"] == "result"
        assert result["success"] is True
        sent_id = result["message"]["id"]

        client.post("/api/chat/messages", json={"message": "from rest"}, headers=auth_headers)
        event = ws.receive_json()
        assert event["type"] == "insert"
        assert event["message"]["message"] == "from rest"

        ws.send_json({"action": "delete", "id": sent_id})
        assert ws.receive_json() == {"type": "result", "action": "delete", "success": True, "id": sent_id}

        ws.send_json({"action": "delete", "id": sent_id})
        assert ws.receive_json()["success"] is False

        ws.send_json({"action": "dance"})
        assert ws.receive_json()["success"] is False


def test_websocket_rejects_invalid_token(client):
    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/api/chat/ws?token=bogus") as ws:
            ws.receive_json()

    assert exc_info.value.code == 4401


def test_hosted_mode_end_to_end(tmp_path, identity_service):
    config = Settings(
        BACKEND_MODE="hosted",
        SUPABASE_URL=HOSTED_URL,
        SUPABASE_ANON_KEY=ANON_KEY,
        N8N_WEBHOOK_URL="",
        RATE_LIMIT_ENABLED=False,
    )
    from jurisly.database import build_engine, build_session_factory, create_tables

    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path}/hosted.db")
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(identity_service.handler))
    backend = build_backend(config, session_factory=build_session_factory(engine), http_client=http_client)
    app = create_app(config, backend)

    with TestClient(app) as client:
        client.portal.call(create_tables, engine)

        signup = client.post(
            "/api/auth/signup",
            json={"email": "meera@example.com", "password": "secret123", "name": "Meera"},
        )
        assert signup.status_code == 201
        assert signup.json()["session"] is None

        refused = client.post("/api/auth/login", json={"email": "meera@example.com", "password": "secret123"})
        assert refused.status_code == 403
        assert refused.json()["error"]["code"] == "ERR_3002"

        verified = client.post(
            "/api/auth/verify",
            json={"email": "meera@example.com", "code": identity_service.VERIFICATION_CODE},
        )
        assert verified.status_code == 200

        login = client.post("/api/auth/login", json={"email": "meera@example.com", "password": "secret123"})
        headers = {"Authorization": f"Bearer {login.json()['session']['access_token']}"}

        asked = client.post("/api/chat/ask", json={"message": "Is a verbal will valid?"}, headers=headers)
        assert asked.json()["fallback"] is True
        assert len(client.get("/api/chat/messages", headers=headers).json()) == 2

        avatar = client.post(
            "/api/users/me/avatar",
            files={"file": ("me.jpg", b"\xff\xd8\xff" + b"0" * 16, "image/jpeg")},
            headers=headers,
        )
        user_id = login.json()["user"]["id"]
        assert avatar.json()["avatar"] == f"{HOSTED_URL}/storage/v1/object/public/avatars/avatars/{user_id}.jpg"

        token = login.json()["session"]["access_token"]
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(f"/api/chat/ws?token={token}&conversation_id=not-a-uuid") as ws:
                ws.receive_json()
        assert exc_info.value.code == 1008

        client.portal.call(engine.dispose)
