"""
Dashboard Router — period summaries, home headline figures, client value.

Agent: full-stack-engineer
Skill: fastapi
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db, get_user_id
from metrics.client_value import calculate_client_value
from metrics.home import calculate_home_metrics
from metrics.summary import PERIODS, calculate_standard_periods, generate_performance_insights

router = APIRouter(prefix="/api/v1/dashboard", tags=["dashboard"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class PeriodSummaryResponse(BaseModel):
    revenue: str
    cost: str
    expenses: str
    miscellaneous: str
    credit: str
    money_owed: str
    profit: str

    model_config = {"from_attributes": True}


class InsightResponse(BaseModel):
    type: str
    message: str
    icon: str

    model_config = {"from_attributes": True}


class SummaryResponse(BaseModel):
    periods: dict[str, PeriodSummaryResponse]
    insights: list[InsightResponse]


class PeriodDetailResponse(BaseModel):
    period: str
    summary: PeriodSummaryResponse
    insights: list[InsightResponse]


class HomeMetricsResponse(BaseModel):
    todays_sales: float
    monthly_goods_traded: float
    current_stock_value: float
    monthly_profit: float

    model_config = {"from_attributes": True}


class ClientValueResponse(BaseModel):
    client_count: int
    total_sales_value: float
    ratio: float
    rating: str

    model_config = {"from_attributes": True}


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/summary", response_model=SummaryResponse)
async def get_summary(
    user_id: UUID = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Summaries for today, week, month, quarter, year and overall."""
    result = await calculate_standard_periods(db, user_id)
    return SummaryResponse(
        periods={name: PeriodSummaryResponse.model_validate(s) for name, s in result.periods.items()},
        insights=[InsightResponse.model_validate(i) for i in result.insights],
    )


@router.get("/summary/{period}", response_model=PeriodDetailResponse)
async def get_period_summary(
    period: str,
    user_id: UUID = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    if period not in PERIODS:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown period '{period}'. Expected one of: {', '.join(PERIODS)}",
        )
    result = await calculate_standard_periods(db, user_id)
    summary = result.periods[period]
    label = period if period in ("today", "overall") else f"this {period}"
    return PeriodDetailResponse(
        period=period,
        summary=PeriodSummaryResponse.model_validate(summary),
        insights=[InsightResponse.model_validate(i) for i in generate_performance_insights(summary, label)],
    )


@router.get("/home", response_model=HomeMetricsResponse)
async def get_home_metrics(
    user_id: UUID = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    return HomeMetricsResponse.model_validate(await calculate_home_metrics(db, user_id))


@router.get("/client-value", response_model=ClientValueResponse)
async def get_client_value(
    user_id: UUID = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Average 30-day sales value per distinct customer."""
    return ClientValueResponse.model_validate(await calculate_client_value(db, user_id))
