# opsdesk/core/security.py
"""Session boundary: the chat core only needs a user id and a role.

Tokens are issued by the auth subsystem; here they are only verified.
EventSource clients cannot set headers, so the stream endpoint also accepts
the token as an ``access_token`` query parameter.
"""
from dataclasses import dataclass
from typing import Optional
from uuid import UUID
import logging

import jwt
from fastapi import Request

from .config import settings
from .exceptions import UnauthenticatedError
from ..models.user import UserRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatSession:
    user_id: UUID
    role: UserRole


def create_access_token(user_id: UUID, role: UserRole) -> str:
    """Mint a token in the format the auth subsystem issues (used by tooling and tests)."""
    return jwt.encode(
        {"sub": str(user_id), "role": role.value},
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def decode_session(token: str) -> Optional[ChatSession]:
    try:
        claims = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        return ChatSession(user_id=UUID(claims["sub"]), role=UserRole(claims["role"]))
    except (jwt.PyJWTError, KeyError, ValueError) as e:
        logger.info(f"Rejected session token: {e}")
        return None


def _extract_token(request: Request) -> Optional[str]:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.lower().startswith("bearer "):
        return auth_header[7:].strip()
    return request.query_params.get("access_token")


async def get_optional_session(request: Request) -> Optional[ChatSession]:
    token = _extract_token(request)
    if not token:
        return None
    return decode_session(token)


async def get_current_session(request: Request) -> ChatSession:
    """FastAPI dependency: every chat operation requires a session"""
    session = await get_optional_session(request)
    if session is None:
        raise UnauthenticatedError()
    return session
