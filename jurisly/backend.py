# jurisly/backend.py
"""
Service container. The backend mode (hosted or local) is resolved once at
startup and every collaborator is built for that mode; nothing downstream
checks the mode again.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx
from fastapi import Request
from sqlalchemy.ext.asyncio import async_sessionmaker

from .auth.base import AuthProvider, BackendMode
from .auth.hosted import HostedAuthProvider
from .auth.local import LocalAuthProvider
from .chats.database_store import DatabaseChatStore
from .chats.feed import ChangeFeed
from .chats.local_store import LocalChatStore
from .chats.replies import ReplyClient
from .chats.service import ChatService
from .chats.store import ChatStore
from .config import Settings
from .local_storage import LocalStorage
from .logging_config import get_logger
from .storage import AvatarStorage, HostedAvatarStorage, LocalAvatarStorage
from .users.service import ProfileService

logger = get_logger(__name__)

MEDIA_URL_PREFIX = "/media"


@dataclass
class Backend:
    mode: BackendMode
    auth: AuthProvider
    chat_store: ChatStore
    avatars: AvatarStorage
    feed: ChangeFeed
    replies: ReplyClient
    chats: ChatService
    profiles: ProfileService
    media_root: Optional[Path] = None

    async def aclose(self) -> None:
        self.feed.close()
        await self.replies.aclose()
        await self.avatars.aclose()
        await self.auth.aclose()


def build_backend(
    config: Settings,
    session_factory: Optional[async_sessionmaker] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> Backend:
    """
    Wire the collaborators for the configured mode.

    Args:
        config: application settings
        session_factory: database sessions for the hosted chat table
            (defaults to the application's engine)
        http_client: shared client for the hosted services and the webhook
            (tests pass one with a mock transport)
    """
    mode = BackendMode(config.resolved_backend_mode)

    if mode == BackendMode.HOSTED:
        if not config.hosted_identity_configured:
            raise ValueError("Hosted mode requires SUPABASE_URL and SUPABASE_ANON_KEY")
        if session_factory is None:
            from .database import async_session
            session_factory = async_session
        auth: AuthProvider = HostedAuthProvider(
            config.SUPABASE_URL, config.SUPABASE_ANON_KEY, config.AUTH_REDIRECT_URL, client=http_client
        )
        chat_store: ChatStore = DatabaseChatStore(session_factory)
        avatars: AvatarStorage = HostedAvatarStorage(
            config.SUPABASE_URL, config.SUPABASE_ANON_KEY, config.SUPABASE_AVATAR_BUCKET, client=http_client
        )
        media_root = None
    else:
        storage = LocalStorage(config.LOCAL_DATA_DIR)
        media_root = Path(config.LOCAL_DATA_DIR) / "media"
        auth = LocalAuthProvider(storage, auto_verify=config.LOCAL_AUTO_VERIFY)
        chat_store = LocalChatStore(storage)
        avatars = LocalAvatarStorage(media_root, url_prefix=MEDIA_URL_PREFIX)

    feed = ChangeFeed(queue_size=config.FEED_QUEUE_SIZE)
    replies = ReplyClient(config.N8N_WEBHOOK_URL or None, timeout=config.WEBHOOK_TIMEOUT_SECONDS, client=http_client)

    logger.info(
        f"Backend configured in {mode.value} mode",
        extra={"extra_data": {
            "mode": mode.value,
            "webhook_configured": replies.configured,
            "auto_verify": config.LOCAL_AUTO_VERIFY if mode == BackendMode.LOCAL else None,
        }}
    )
    if mode == BackendMode.LOCAL:
        logger.warning("Hosted identity not configured; accounts and chats are stored on local disk")

    return Backend(
        mode=mode,
        auth=auth,
        chat_store=chat_store,
        avatars=avatars,
        feed=feed,
        replies=replies,
        chats=ChatService(chat_store, feed, replies),
        profiles=ProfileService(auth, avatars),
        media_root=media_root,
    )


def get_backend(request: Request) -> Backend:
    return request.app.state.backend
