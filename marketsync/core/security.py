"""
API token authentication for the inbound API
"""

import secrets
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import APIKeyHeader
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketsync.dependencies import get_db
from marketsync.models.user import User

api_token_header = APIKeyHeader(name="X-Api-Token", auto_error=False)


async def get_current_user(
    token: Optional[str] = Depends(api_token_header),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Resolve the X-Api-Token header to a user
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API token is required",
        )

    result = await db.execute(select(User).where(User.api_token == token))
    user = result.scalars().first()

    # Constant-time check on the stored value
    if not user or not secrets.compare_digest(user.api_token.encode("utf8"), token.encode("utf8")):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API token",
        )

    return user


def require_auth():
    """
    Usage: app.include_router(router, dependencies=[require_auth()])
    """
    return Depends(get_current_user)
