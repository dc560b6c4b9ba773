import asyncio
import json
from contextlib import suppress
from typing import Annotated, Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Response, WebSocket, WebSocketDisconnect, status

from ..auth.base import AuthSession
from ..auth.dependencies import get_current_session
from ..backend import Backend, get_backend
from ..error_handlers import AppException, ErrorCode, NotFoundException
from ..logging_config import get_logger
from . import schemas
from .service import LiveChatSession

logger = get_logger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])

WS_UNAUTHORIZED = 4401


@router.get("/messages", response_model=List[schemas.ChatMessage])
async def list_messages(
    session: Annotated[AuthSession, Depends(get_current_session)],
    backend: Annotated[Backend, Depends(get_backend)],
    conversation_id: Optional[str] = None,
):
    """The caller's messages, oldest first"""
    return await backend.chats.history(session.user.id, conversation_id)


@router.post("/messages", response_model=schemas.ChatMessage, status_code=status.HTTP_201_CREATED)
async def send_message(
    body: schemas.SendMessageRequest,
    session: Annotated[AuthSession, Depends(get_current_session)],
    backend: Annotated[Backend, Depends(get_backend)],
):
    return await backend.chats.send(session.user.id, body.message, body.role, body.conversation_id)


@router.post("/ask", response_model=schemas.AskResponse)
async def ask(
    body: schemas.AskRequest,
    session: Annotated[AuthSession, Depends(get_current_session)],
    backend: Annotated[Backend, Depends(get_backend)],
):
    """Store the question and the assistant's reply (or the fallback text)"""
    result = await backend.chats.ask(session.user, body.message, body.conversation_id, body.language)
    return schemas.AskResponse(
        user_message=result.user_message,
        assistant_message=result.assistant_message,
        fallback=result.fallback,
    )


@router.delete("/messages/{message_id}", response_model=schemas.DeleteResponse)
async def delete_message(
    message_id: str,
    session: Annotated[AuthSession, Depends(get_current_session)],
    backend: Annotated[Backend, Depends(get_backend)],
):
    if not await backend.chats.delete_message(session.user.id, message_id):
        raise NotFoundException("Message", message_id, ErrorCode.MESSAGE_NOT_FOUND)
    return schemas.DeleteResponse(success=True, deleted_count=1)


@router.delete("/messages", response_model=schemas.DeleteResponse)
async def clear_messages(
    session: Annotated[AuthSession, Depends(get_current_session)],
    backend: Annotated[Backend, Depends(get_backend)],
    conversation_id: Optional[str] = None,
):
    """Clear one conversation, or the whole history when no id is given"""
    removed = await backend.chats.clear_messages(session.user.id, conversation_id)
    return schemas.DeleteResponse(success=True, deleted_count=len(removed))


@router.get("/conversations", response_model=List[schemas.ConversationSummary])
async def list_conversations(
    session: Annotated[AuthSession, Depends(get_current_session)],
    backend: Annotated[Backend, Depends(get_backend)],
):
    conversations, active_id = await backend.chats.list_conversations(session.user.id)
    return [schemas.ConversationSummary.from_conversation(c, active_id) for c in conversations]


@router.post("/conversations", response_model=schemas.Conversation, status_code=status.HTTP_201_CREATED)
async def create_conversation(
    body: schemas.CreateConversationRequest,
    session: Annotated[AuthSession, Depends(get_current_session)],
    backend: Annotated[Backend, Depends(get_backend)],
):
    return await backend.chats.create_conversation(session.user.id, body.title)


@router.put("/conversations/active", response_model=schemas.Conversation)
async def switch_conversation(
    body: schemas.SwitchConversationRequest,
    session: Annotated[AuthSession, Depends(get_current_session)],
    backend: Annotated[Backend, Depends(get_backend)],
):
    return await backend.chats.switch_conversation(session.user.id, body.conversation_id)


@router.get("/conversations/{conversation_id}", response_model=schemas.Conversation)
async def get_conversation(
    conversation_id: str,
    session: Annotated[AuthSession, Depends(get_current_session)],
    backend: Annotated[Backend, Depends(get_backend)],
):
    return await backend.chats.get_conversation(session.user.id, conversation_id)


@router.delete("/conversations/{conversation_id}", response_model=schemas.DeleteResponse)
async def delete_conversation(
    conversation_id: str,
    session: Annotated[AuthSession, Depends(get_current_session)],
    backend: Annotated[Backend, Depends(get_backend)],
):
    removed = await backend.chats.delete_conversation(session.user.id, conversation_id)
    return schemas.DeleteResponse(success=True, deleted_count=len(removed))


def _download(export) -> Response:
    return Response(
        content=export.content,
        media_type=export.media_type,
        headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
    )


@router.get("/conversations/{conversation_id}/export")
async def export_conversation(
    conversation_id: str,
    session: Annotated[AuthSession, Depends(get_current_session)],
    backend: Annotated[Backend, Depends(get_backend)],
    format: str = Query("txt", description="txt, html or pdf (printable html)"),
):
    return _download(await backend.chats.export_conversation(session.user.id, conversation_id, format))


@router.get("/export")
async def export_all(
    session: Annotated[AuthSession, Depends(get_current_session)],
    backend: Annotated[Backend, Depends(get_backend)],
    format: str = Query("txt", description="txt, html or pdf (printable html)"),
):
    return _download(await backend.chats.export_all(session.user, format))


# ============================================================================
# LIVE FEED
# ============================================================================

async def _forward_changes(websocket: WebSocket, live: LiveChatSession) -> None:
    try:
        while True:
            event = await live.next_change()
            if event is None:
                return
            await websocket.send_json(event.payload())
    except WebSocketDisconnect:
        logger.debug("Live feed closed while forwarding", extra={"user_id": live.user_id})


async def _run_command(live: LiveChatSession, command: Dict[str, Any]) -> Dict[str, Any]:
    action = command.get("action")
    reply: Dict[str, Any] = {"type": "result", "action": action}

    try:
        if action == "send":
            role = schemas.MessageRole(command.get("role") or schemas.MessageRole.USER.value)
            body = str(command.get("message") or "").strip()
            if not body:
                return {**reply, "success": False, "error": "Message is empty"}
            message = await live.send(body, role)
            return {**reply, "success": True, "message": message.model_dump(mode="json")}

        if action == "delete":
            deleted = await live.delete_one(str(command.get("id") or ""))
            return {**reply, "success": deleted, "id": command.get("id")}

        if action == "clear":
            removed = await live.clear_all()
            return {**reply, "success": True, "deleted_count": len(removed)}

    except ValueError as e:
        return {**reply, "success": False, "error": str(e)}
    except AppException as e:
        return {**reply, "success": False, "error": e.message, "code": e.error_code}

    return {**reply, "success": False, "error": f"Unknown action: {action}"}


@router.websocket("/ws")
async def chat_socket(
    websocket: WebSocket,
    token: str = Query(""),
    conversation_id: Optional[str] = Query(None),
):
    """
    Live message feed. Sends a snapshot, then insert/update/delete events;
    accepts send/delete/clear commands.
    """
    backend: Backend = websocket.app.state.backend
    user = await backend.auth.get_user(token) if token else None
    if user is None:
        await websocket.close(code=WS_UNAUTHORIZED)
        return

    live = LiveChatSession(backend.chats, user.id, conversation_id)
    try:
        snapshot = await live.open()
    except AppException as e:
        live.close()
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=e.message)
        return

    await websocket.accept()
    await websocket.send_json({"type": "snapshot", "messages": [m.model_dump(mode="json") for m in snapshot]})
    logger.info("Live feed connected", extra={"user_id": user.id, "extra_data": {"conversation_id": conversation_id}})

    forwarder = asyncio.create_task(_forward_changes(websocket, live))
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                command = json.loads(raw)
            except ValueError:
                await websocket.send_json({"type": "error", "error": "Invalid JSON"})
                continue
            if not isinstance(command, dict):
                await websocket.send_json({"type": "error", "error": "Expected a JSON object"})
                continue
            await websocket.send_json(await _run_command(live, command))
    except WebSocketDisconnect:
        logger.info("Live feed disconnected", extra={"user_id": user.id})
    finally:
        live.close()
        forwarder.cancel()
        with suppress(asyncio.CancelledError):
            await forwarder
