from typing import Annotated

from fastapi import APIRouter, Depends, File, UploadFile

from ..auth.base import AuthSession
from ..auth.dependencies import get_current_session
from ..auth.schemas import MessageResponse
from ..backend import Backend, get_backend
from ..logging_config import get_logger
from . import schemas
from .service import read_preferences

logger = get_logger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=schemas.UserOut)
async def get_me(session: Annotated[AuthSession, Depends(get_current_session)]):
    return schemas.UserOut.from_auth_user(session.user)


@router.patch("/me", response_model=schemas.UserOut)
async def update_me(
    body: schemas.ProfileUpdate,
    session: Annotated[AuthSession, Depends(get_current_session)],
    backend: Annotated[Backend, Depends(get_backend)],
):
    """Partial profile update; only the fields sent are changed"""
    user = await backend.profiles.update_profile(session.access_token, session.user, body)
    return schemas.UserOut.from_auth_user(user)


@router.post("/me/password", response_model=MessageResponse)
async def change_password(
    body: schemas.PasswordChange,
    session: Annotated[AuthSession, Depends(get_current_session)],
    backend: Annotated[Backend, Depends(get_backend)],
):
    message = await backend.profiles.change_password(session.access_token, body)
    logger.info("Password changed", extra={"user_id": session.user.id})
    return MessageResponse(message=message)


@router.get("/me/preferences", response_model=schemas.Preferences)
async def get_preferences(session: Annotated[AuthSession, Depends(get_current_session)]):
    return read_preferences(session.user)


@router.put("/me/preferences", response_model=schemas.Preferences)
async def update_preferences(
    body: schemas.PreferencesUpdate,
    session: Annotated[AuthSession, Depends(get_current_session)],
    backend: Annotated[Backend, Depends(get_backend)],
):
    return await backend.profiles.update_preferences(session.access_token, session.user, body)


@router.post("/me/avatar", response_model=schemas.UserOut)
async def upload_avatar(
    session: Annotated[AuthSession, Depends(get_current_session)],
    backend: Annotated[Backend, Depends(get_backend)],
    file: UploadFile = File(...),
):
    content = await file.read()
    user = await backend.profiles.upload_avatar(
        session.access_token,
        session.user,
        file.filename or "",
        file.content_type or "",
        content,
    )
    return schemas.UserOut.from_auth_user(user)
