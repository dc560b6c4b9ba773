import json

import httpx

from jurisly.chats.replies import FALLBACK_REPLIES, UNEXPECTED_REPLY, ReplyClient, extract_reply
from jurisly.users.schemas import Language

from conftest import WEBHOOK_URL


def client_for(handler):
    return ReplyClient(WEBHOOK_URL, client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


async def test_posts_question_and_reads_ai_response():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"aiResponse": "Article 21 protects life and liberty."})

    reply = await client_for(handler).generate("What is Article 21?", "user-1", Language.EN, "conv-1")

    assert reply.text == "Article 21 protects life and liberty."
    assert reply.fallback is False
    payload = seen[0]
    assert payload["message"] == payload["query"] == "What is Article 21?"
    assert payload["userId"] == "user-1"
    assert payload["language"] == "en"
    assert payload["conversationId"] == "conv-1"
    assert "timestamp" in payload


def test_reply_field_precedence():
    assert extract_reply({"aiResponse": "a", "reply": "b", "response": "c"}) == "a"
    assert extract_reply({"reply": "b", "response": "c"}) == "b"
    assert extract_reply({"response": "c"}) == "c"
    assert extract_reply({"output": "?"}) == UNEXPECTED_REPLY
    assert extract_reply(["not", "a", "dict"]) == UNEXPECTED_REPLY


async def test_http_error_falls_back_in_users_language():
    reply = await client_for(lambda request: httpx.Response(502)).generate("प्रश्न", "user-1", Language.HI)

    assert reply.fallback is True
    assert reply.text == FALLBACK_REPLIES[Language.HI]


async def test_transport_error_falls_back():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    reply = await client_for(handler).generate("question", "user-1")

    assert reply.fallback is True
    assert reply.text == FALLBACK_REPLIES[Language.EN]


async def test_invalid_json_falls_back():
    reply = await client_for(lambda request: httpx.Response(200, text="<html>oops</html>")).generate("q", "user-1")

    assert reply.fallback is True


async def test_unconfigured_webhook_uses_fallback():
    reply = await ReplyClient(None).generate("q", "user-1", Language.EN)

    assert reply.fallback is True
    assert reply.text == FALLBACK_REPLIES[Language.EN]
