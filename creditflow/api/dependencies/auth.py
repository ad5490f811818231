"""
FastAPI dependency resolving the bearer token to an ``Actor``

Usage:
    @router.post("/{request_id}/approve")
    async def approve(
        request_id: int,
        actor: Actor = Depends(get_current_actor),
        db: AsyncSession = Depends(get_db),
    ):
        ...
"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from creditflow.core.auth import verify_token
from creditflow.core.logging import get_logger
from creditflow.db.database import get_db
from creditflow.db.models.user import User
from creditflow.domain.roles import Actor, parse_role

logger = get_logger(__name__)

security = HTTPBearer()


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> Actor:
    """
    401 for a missing, invalid or expired token or an unknown role;
    403 when the user behind the token is gone or inactive.
    """
    token_data = verify_token(credentials.credentials)
    if not token_data:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    try:
        role = parse_role(token_data.role)
    except ValueError:
        logger.warning(
            "Token carries an unknown role",
            extra_data={"user_id": token_data.user_id, "role": token_data.role},
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    user = await db.get(User, token_data.user_id)
    if not user or not user.is_active:
        logger.warning(
            "Access denied, user inactive or missing",
            extra_data={"user_id": token_data.user_id, "user_found": user is not None},
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is not active",
        )

    return Actor(user_id=user.id, role=role, name=user.name, email=user.email)
