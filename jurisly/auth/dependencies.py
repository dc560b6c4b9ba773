from typing import Annotated, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..backend import Backend, get_backend
from ..error_handlers import UnauthorizedException
from .base import AuthSession

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_session(
    request: Request,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
    backend: Annotated[Backend, Depends(get_backend)],
) -> AuthSession:
    """Session probe for every authenticated request"""
    if credentials is None or not credentials.credentials:
        raise UnauthorizedException("Missing bearer token")

    token = credentials.credentials
    user = await backend.auth.get_user(token)
    if user is None:
        raise UnauthorizedException("Invalid or expired session")

    request.state.user_id = user.id
    return AuthSession(access_token=token, user=user)
