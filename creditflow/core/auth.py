"""
Bearer token handling.

Tokens are issued by the organisation's identity provider; this service only
verifies them and reads the actor's id and role. ``create_access_token`` exists
for operators and tests that need to mint a token with the shared secret.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt as pyjwt
from pydantic import BaseModel

from creditflow.core.config import settings
from creditflow.core.logging import get_logger

logger = get_logger(__name__)


class TokenPayload(BaseModel):
    """Claims this service relies on"""
    user_id: int
    role: str
    exp: int


def create_access_token(user_id: int, role: str, expires_minutes: int | None = None) -> str:
    if not settings.JWT_SECRET_KEY:
        raise ValueError("JWT_SECRET_KEY is not configured; cannot sign tokens")
    minutes = expires_minutes if expires_minutes is not None else settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES
    expire = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    payload = {"user_id": user_id, "role": role, "exp": int(expire.timestamp())}
    return pyjwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def verify_token(token: str) -> Optional[TokenPayload]:
    """Decode and validate a token. Returns None when invalid or expired."""
    if not settings.JWT_SECRET_KEY:
        logger.error("JWT_SECRET_KEY is empty; tokens cannot be verified")
        return None
    try:
        payload = pyjwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
        return TokenPayload(**payload)
    except pyjwt.InvalidTokenError:
        logger.warning("JWT token invalid or expired")
        return None
    except (KeyError, ValueError, TypeError) as e:
        logger.warning("JWT payload malformed", extra_data={"error": str(e)})
        return None
