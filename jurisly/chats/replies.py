# jurisly/chats/replies.py
"""
AI replies come from a user-supplied automation webhook. The webhook is a
black box: we POST the question and read the answer field back. Any
failure is answered with a canned text in the user's language.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx

from ..logging_config import get_logger, log_business_event
from ..monitoring import track_external_api_call
from ..users.schemas import Language

logger = get_logger(__name__)

SERVICE_NAME = "reply_webhook"

REPLY_FIELDS = ("aiResponse", "reply", "response")

UNEXPECTED_REPLY = "I apologize, but I received an unexpected response. Please try again."

FALLBACK_REPLIES = {
    Language.EN: (
        "I'm having trouble reaching the legal research service right now. "
        "Please try again in a moment. For urgent matters, consult a qualified lawyer."
    ),
    Language.HI: (
        "मुझे अभी कानूनी शोध सेवा से जुड़ने में समस्या हो रही है। "
        "कृपया कुछ देर बाद फिर से प्रयास करें। तत्काल मामलों के लिए किसी योग्य वकील से परामर्श लें।"
    ),
}


@dataclass
class Reply:
    text: str
    fallback: bool = False


def fallback_reply(language: Language) -> Reply:
    return Reply(text=FALLBACK_REPLIES.get(Language(language), FALLBACK_REPLIES[Language.EN]), fallback=True)


def extract_reply(data: Any) -> str:
    """First non-empty answer field, or the apology text"""
    if isinstance(data, dict):
        for field in REPLY_FIELDS:
            value = data.get(field)
            if value:
                return str(value)
    return UNEXPECTED_REPLY


class ReplyClient:
    def __init__(
        self,
        webhook_url: Optional[str],
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.webhook_url = webhook_url
        self.client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def configured(self) -> bool:
        return bool(self.webhook_url)

    def build_payload(
        self,
        message: str,
        user_id: str,
        language: Language,
        conversation_id: Optional[str],
    ) -> Dict[str, Any]:
        return {
            "message": message,
            "query": message,
            "userId": user_id,
            "language": Language(language).value,
            "conversationId": conversation_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def generate(
        self,
        message: str,
        user_id: str,
        language: Language = Language.EN,
        conversation_id: Optional[str] = None,
    ) -> Reply:
        if not self.configured:
            logger.debug("No reply webhook configured, using fallback", extra={"user_id": user_id})
            return self._fallback(user_id, language, "not_configured")

        payload = self.build_payload(message, user_id, language, conversation_id)
        try:
            with track_external_api_call(SERVICE_NAME, "generate_reply", user_id=user_id):
                response = await self.client.post(self.webhook_url, json=payload)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(
                "Reply webhook failed, using fallback",
                extra={"user_id": user_id, "extra_data": {"error": str(e), "error_type": type(e).__name__}}
            )
            return self._fallback(user_id, language, type(e).__name__)

        return Reply(text=extract_reply(data))

    def _fallback(self, user_id: str, language: Language, reason: str) -> Reply:
        log_business_event("webhook_fallback_used", user_id=user_id, reason=reason, language=Language(language).value)
        return fallback_reply(language)

    async def aclose(self) -> None:
        await self.client.aclose()
