"""
Insights Router — market tips, trade insights, trust score, achievements, goal progress.

Agent: full-stack-engineer
Skill: fastapi
"""

from datetime import date, datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db, get_user_id
from core.config import get_settings
from db.models import AchievementDefinition, AchievementUnlock
from db.queries import fetch_rows, gather_sources
from insights.inventory_insights import refresh_inventory_insights
from insights.market_tips import generate_market_tips, prioritize_tips
from insights.trade_insights import list_trade_insights
from metrics.goals import calculate_daily_progress
from trust.score import get_trust_score

router = APIRouter(prefix="/api/v1/insights", tags=["insights"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class MarketTipResponse(BaseModel):
    title: str
    message: str
    type: str
    priority: str
    icon: str

    model_config = {"from_attributes": True}


class MarketTipsResponse(BaseModel):
    tips: list[MarketTipResponse]
    rotation_seconds: int


class TradeInsightResponse(BaseModel):
    id: UUID
    product_name: str
    insight_type: str
    message: str
    priority: str
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class GeneratedInsightResponse(BaseModel):
    product_name: str
    insight_type: str
    message: str
    priority: str

    model_config = {"from_attributes": True}


class TrustScoreResponse(BaseModel):
    trust_score: float


class AchievementResponse(BaseModel):
    code: str
    title: str
    description: str
    icon: str
    category: str
    unlocked: bool
    unlocked_at: datetime | None = None
    progress_data: dict | None = None


class DailyProgressResponse(BaseModel):
    date: date
    amount: float
    goal_amount: float
    percentage: float

    model_config = {"from_attributes": True}


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/tips", response_model=MarketTipsResponse)
async def get_market_tips(
    user_id: UUID = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Tips ordered high → medium → low; the client rotates through them."""
    tips = prioritize_tips(await generate_market_tips(db, user_id))
    return MarketTipsResponse(
        tips=[MarketTipResponse.model_validate(tip) for tip in tips],
        rotation_seconds=get_settings().tip_rotation_seconds,
    )


@router.get("/trade-insights", response_model=list[TradeInsightResponse])
async def get_trade_insights(
    include_read: bool = Query(True),
    limit: int = Query(50, ge=1, le=200),
    user_id: UUID = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Stored insights, newest first."""
    insights = await list_trade_insights(db, user_id, include_read=include_read, limit=limit)
    return [TradeInsightResponse.model_validate(insight) for insight in insights]


@router.post("/trade-insights/generate", response_model=list[GeneratedInsightResponse])
async def generate_trade_insights(
    user_id: UUID = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Regenerate this user's inventory insights now instead of waiting for the nightly run."""
    drafts = await refresh_inventory_insights(db, user_id)
    return [GeneratedInsightResponse.model_validate(draft) for draft in drafts]


@router.get("/trust-score", response_model=TrustScoreResponse)
async def get_user_trust_score(
    user_id: UUID = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    return TrustScoreResponse(trust_score=await get_trust_score(db, user_id))


@router.get("/achievements", response_model=list[AchievementResponse])
async def list_achievements(
    user_id: UUID = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Every achievement definition with the user's unlock state."""
    sources = await gather_sources(
        definitions=fetch_rows(
            db,
            select(AchievementDefinition).order_by(AchievementDefinition.category, AchievementDefinition.code),
            source="achievement_definitions",
        ),
        unlocks=fetch_rows(
            db,
            select(AchievementUnlock).where(AchievementUnlock.user_id == user_id),
            source="user_achievements",
        ),
    )
    unlocks = {unlock.achievement_code: unlock for unlock in sources["unlocks"]}
    return [
        AchievementResponse(
            code=definition.code,
            title=definition.title,
            description=definition.description,
            icon=definition.icon,
            category=definition.category,
            unlocked=definition.code in unlocks,
            unlocked_at=unlocks[definition.code].unlocked_at if definition.code in unlocks else None,
            progress_data=unlocks[definition.code].progress_data if definition.code in unlocks else None,
        )
        for definition in sources["definitions"]
    ]


@router.get("/goals/{goal_id}/progress", response_model=list[DailyProgressResponse])
async def get_goal_progress(
    goal_id: UUID,
    user_id: UUID = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    progress = await calculate_daily_progress(db, user_id, goal_id)
    return [DailyProgressResponse.model_validate(day) for day in progress]
