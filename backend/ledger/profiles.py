"""Business profile lookup. A user without a profile is a valid empty state."""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import NotFoundError
from db.models import BusinessProfile
from db.queries import fetch_one, fetch_rows


async def get_business_profile(db: AsyncSession, user_id: uuid.UUID) -> BusinessProfile | None:
    return await fetch_one(
        db,
        select(BusinessProfile).where(BusinessProfile.user_id == user_id),
        source="business_profiles",
    )


async def require_business_profile(db: AsyncSession, user_id: uuid.UUID) -> BusinessProfile:
    profile = await get_business_profile(db, user_id)
    if profile is None:
        raise NotFoundError("Business profile", str(user_id))
    return profile


async def list_profiled_user_ids(db: AsyncSession) -> list[uuid.UUID]:
    """Every user that has a business profile, oldest first."""
    return await fetch_rows(
        db,
        select(BusinessProfile.user_id).order_by(BusinessProfile.created_at),
        source="business_profiles",
    )
