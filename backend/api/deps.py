"""
TradeDesk API Dependencies

Dependency injection for DB sessions, auth and the refresh bus.
"""

import uuid
from collections.abc import AsyncGenerator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from db.session import AsyncSessionLocal
from events.bus import RefreshBus
from events.bus import get_refresh_bus as _process_bus

settings = get_settings()
security = HTTPBearer(auto_error=not settings.debug)

# Dev user_id must match scripts/seed_dev_data.py
DEV_USER_ID = "00000000-0000-0000-0000-000000000001"


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> dict:
    """Decode JWT and return user payload. Bypassed in debug mode."""
    if settings.debug:
        return {"sub": DEV_USER_ID, "email": "dev@tradedesk.local"}

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    from core.security import decode_access_token

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    return payload


async def get_user_id(user: dict = Depends(get_current_user)) -> uuid.UUID:
    """The token subject is the user id."""
    try:
        return uuid.UUID(str(user.get("sub")))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token subject is not a user id",
        )


def get_refresh_bus() -> RefreshBus:
    return _process_bus()
