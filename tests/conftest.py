import json
import os
import tempfile
import uuid

# Settings are read at import time; point everything at throwaway locations first
_TEST_DATA_DIR = tempfile.mkdtemp(prefix="jurisly-tests-")
os.environ["BACKEND_MODE"] = "local"
os.environ["LOCAL_DATA_DIR"] = _TEST_DATA_DIR
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_DATA_DIR}/jurisly.db"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["ENABLE_FILE_LOGGING"] = "false"
os.environ["N8N_WEBHOOK_URL"] = ""
os.environ["SUPABASE_URL"] = ""
os.environ["SUPABASE_ANON_KEY"] = ""

import httpx
import pytest
from fastapi.testclient import TestClient

from jurisly.backend import build_backend
from jurisly.chats.database_store import DatabaseChatStore
from jurisly.chats.feed import ChangeFeed
from jurisly.chats.local_store import LocalChatStore
from jurisly.chats.replies import ReplyClient
from jurisly.chats.service import ChatService
from jurisly.config import Settings
from jurisly.database import build_engine, build_session_factory, create_tables
from jurisly.local_storage import LocalStorage
from jurisly.main import create_app

WEBHOOK_URL = "https://hooks.example.com/webhook/legal-ai"
HOSTED_URL = "https://project.supabase.example.com"
ANON_KEY = "anon-test-key"


class FakeIdentityService:
    """Just enough of the hosted auth REST API to drive the provider"""

    VERIFICATION_CODE = "123456"

    def __init__(self):
        self.users = {}
        self.tokens = {}
        self.requests = []

    def _user_json(self, user):
        return {
            "id": user["id"],
            "email": user["email"],
            "email_confirmed_at": "2024-01-01T00:00:00Z" if user["confirmed"] else None,
            "user_metadata": user["metadata"],
            "identities": [{"id": user["id"], "provider": "email"}],
        }

    def _session_json(self, user):
        token = f"token-{uuid.uuid4()}"
        self.tokens[token] = user["email"]
        return {
            "access_token": token,
            "refresh_token": f"refresh-{uuid.uuid4()}",
            "expires_in": 3600,
            "token_type": "bearer",
            "user": self._user_json(user),
        }

    def _current(self, request):
        token = request.headers.get("Authorization", "").removeprefix("Bearer ")
        email = self.tokens.get(token)
        return self.users.get(email) if email else None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path.startswith("/storage/v1/object/"):
            return httpx.Response(200, json={"Key": path})

        body = json.loads(request.content) if request.content else {}

        if path == "/auth/v1/signup":
            email = body["email"]
            if email in self.users:
                existing = dict(self._user_json(self.users[email]), identities=[])
                return httpx.Response(200, json=existing)
            user = {
                "id": str(uuid.uuid4()),
                "email": email,
                "password": body["password"],
                "confirmed": False,
                "metadata": body.get("data", {}),
            }
            self.users[email] = user
            return httpx.Response(200, json=self._user_json(user))

        if path == "/auth/v1/token":
            user = self.users.get(body["email"])
            if not user or user["password"] != body["password"]:
                return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Invalid login credentials"})
            if not user["confirmed"]:
                return httpx.Response(400, json={"error_code": "email_not_confirmed", "msg": "Email not confirmed"})
            return httpx.Response(200, json=self._session_json(user))

        if path == "/auth/v1/verify":
            user = self.users.get(body["email"])
            if not user or body["token"] != self.VERIFICATION_CODE:
                return httpx.Response(403, json={"msg": "Token has expired or is invalid"})
            user["confirmed"] = True
            return httpx.Response(200, json=self._session_json(user))

        if path == "/auth/v1/user":
            user = self._current(request)
            if user is None:
                return httpx.Response(401, json={"msg": "invalid JWT"})
            if request.method == "PUT":
                user["metadata"].update(body.get("data", {}))
                if "password" in body:
                    user["password"] = body["password"]
            return httpx.Response(200, json=self._user_json(user))

        if path == "/auth/v1/logout":
            token = request.headers.get("Authorization", "").removeprefix("Bearer ")
            self.tokens.pop(token, None)
            return httpx.Response(204)

        if path in ("/auth/v1/recover", "/auth/v1/resend"):
            return httpx.Response(200, json={})

        return httpx.Response(404, json={"msg": f"no route {path}"})


def webhook_transport(reply=None, status_code=200):
    """Mock webhook: answers with `reply` as aiResponse, or fails with status_code"""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(json.loads(request.content))
        if status_code >= 400:
            return httpx.Response(status_code, json={"error": "workflow failed"})
        return httpx.Response(200, json={"aiResponse": reply or "Section 420 deals with cheating."})

    return httpx.MockTransport(handler), calls


@pytest.fixture
def storage(tmp_path):
    return LocalStorage(tmp_path / "data")


@pytest.fixture
def local_store(storage):
    return LocalChatStore(storage)


@pytest.fixture
async def db_store(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path}/chat.db")
    await create_tables(engine)
    yield DatabaseChatStore(build_session_factory(engine))
    await engine.dispose()


@pytest.fixture(params=["local", "database"])
async def store(request, local_store, tmp_path):
    if request.param == "local":
        yield local_store
        return
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path}/store.db")
    await create_tables(engine)
    yield DatabaseChatStore(build_session_factory(engine))
    await engine.dispose()


@pytest.fixture
def feed():
    return ChangeFeed(queue_size=16)


@pytest.fixture
def failing_replies():
    transport, _ = webhook_transport(status_code=500)
    return ReplyClient(WEBHOOK_URL, client=httpx.AsyncClient(transport=transport))


@pytest.fixture
def chat_service(local_store, feed, failing_replies):
    return ChatService(local_store, feed, failing_replies)


@pytest.fixture
def identity_service():
    return FakeIdentityService()


@pytest.fixture
def webhook():
    transport, calls = webhook_transport(reply="Under Section 420 IPC, cheating is punishable.")
    return transport, calls


@pytest.fixture
def client(tmp_path, webhook):
    """TestClient over a local-mode app with a mocked reply webhook"""
    transport, _ = webhook
    config = Settings(
        BACKEND_MODE="local",
        LOCAL_DATA_DIR=str(tmp_path / "data"),
        N8N_WEBHOOK_URL=WEBHOOK_URL,
        RATE_LIMIT_ENABLED=False,
    )
    backend = build_backend(config, http_client=httpx.AsyncClient(transport=transport))
    with TestClient(create_app(config, backend)) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(client):
    response = client.post(
        "/api/auth/signup",
        json={"email": "asha@example.com", "password": "secret123", "name": "Asha"},
    )
    assert response.status_code == 201
    token = response.json()["session"]["access_token"]
    return {"Authorization": f"Bearer {token}"}
