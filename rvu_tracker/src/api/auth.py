"""
Caller identity resolution.

Two clients share the API: the mobile app sends `Authorization: Bearer <jwt>`,
the web client sends a session cookie holding the same kind of signed token.
Both resolve to one opaque user id that the services use as a partition key.
"""
import time
from dataclasses import dataclass
from typing import Optional

import jwt
import structlog
from fastapi import Depends, HTTPException, Request

from ..core.config.settings import Settings, get_settings

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AuthenticatedUser:
    id: str
    email: str
    name: Optional[str] = None


def issue_token(user_id: str, email: str, name: Optional[str] = None, settings: Optional[Settings] = None) -> str:
    """Mints a signed token for a user already verified by a sign-in provider."""
    settings = settings or get_settings()
    now = int(time.time())
    payload = {
        "sub": user_id,
        "email": email,
        "iat": now,
        "exp": now + settings.AUTH_TOKEN_TTL_SECONDS,
    }
    if name:
        payload["name"] = name
    return jwt.encode(payload, settings.AUTH_SECRET, algorithm=settings.AUTH_JWT_ALGORITHM)


class AuthResolver:
    def __init__(self, settings: Settings):
        self.settings = settings

    def verify_token(self, token: str) -> Optional[AuthenticatedUser]:
        try:
            payload = jwt.decode(token, self.settings.AUTH_SECRET, algorithms=[self.settings.AUTH_JWT_ALGORITHM])
        except jwt.PyJWTError as e:
            logger.warning("Token verification failed", error=str(e))
            return None

        if not payload.get("sub") or not payload.get("email"):
            logger.warning("Token is missing sub or email claim")
            return None
        return AuthenticatedUser(id=str(payload["sub"]), email=str(payload["email"]), name=payload.get("name"))

    def resolve(self, request: Request) -> Optional[AuthenticatedUser]:
        auth_header = request.headers.get("authorization")
        if auth_header and auth_header.startswith("Bearer "):
            # A bad bearer token does not fall back to the cookie.
            return self.verify_token(auth_header[len("Bearer "):])

        session_token = request.cookies.get(self.settings.SESSION_COOKIE_NAME)
        if session_token:
            return self.verify_token(session_token)
        return None


def get_auth_resolver(settings: Settings = Depends(get_settings)) -> AuthResolver:
    return AuthResolver(settings)


async def get_current_user_id(request: Request, resolver: AuthResolver = Depends(get_auth_resolver)) -> str:
    user = resolver.resolve(request)
    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user.id
