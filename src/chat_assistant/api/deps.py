"""Request dependencies: caller identity and shared services."""

import logging

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from chat_assistant import config
from chat_assistant.chat import (
    ANONYMOUS,
    ChatService,
    CompletionBackend,
    LocalAccount,
    OwnerIdentity,
    ProvidedAccount,
    SessionManager,
)

logger = logging.getLogger(__name__)

bearer = HTTPBearer(auto_error=False)


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


def get_chat_service(request: Request) -> ChatService:
    return request.app.state.chat_service


def get_completion_backend(request: Request) -> CompletionBackend:
    return request.app.state.completion_backend


def _decode_token(token: str) -> ProvidedAccount:
    try:
        payload = jwt.decode(
            token,
            config.AUTH_JWT_SECRET,
            algorithms=[config.AUTH_JWT_ALGORITHM],
            options={"verify_aud": False},
        )
    except JWTError as e:
        logger.info("Rejected bearer token: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return ProvidedAccount(id=str(user_id), email=payload.get("email"))


async def get_owner(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer),
    x_local_user: str | None = Header(default=None),
) -> OwnerIdentity:
    """
    Resolve who is calling.

    A provider bearer token wins over a local username header; with
    neither, the caller is anonymous. Tokens are ignored when no signing
    secret is configured.
    """
    if credentials is not None and config.AUTH_JWT_SECRET:
        return _decode_token(credentials.credentials)
    if x_local_user and x_local_user.strip():
        return LocalAccount(username=x_local_user.strip())
    return ANONYMOUS
