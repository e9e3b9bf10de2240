"""
Sales-goal daily progress.

Daily target by goal type:
  daily    target
  weekly   target / 7
  monthly  target / days in the goal period (inclusive)
  yearly   target / 365

One entry per day from period_start through min(period_end, today), with the
day's effective revenue and its percentage of the daily target, capped at 100.
"""

import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import NotFoundError
from db.models import SalesGoal
from db.queries import fetch_one
from ledger.sales import SalesFilter, fetch_sales


@dataclass(frozen=True)
class DailyProgress:
    date: date
    amount: float
    goal_amount: float
    percentage: float


def daily_target(goal_type: str, target_amount: float, period_start: date, period_end: date) -> float:
    total_days = (period_end - period_start).days + 1
    if goal_type == "daily":
        return target_amount
    if goal_type == "weekly":
        return target_amount / 7
    if goal_type == "monthly":
        return target_amount / total_days if total_days > 0 else 0.0
    if goal_type == "yearly":
        return target_amount / 365
    return 0.0


async def calculate_daily_progress(
    db: AsyncSession,
    user_id: uuid.UUID,
    goal_id: uuid.UUID,
    today: date | None = None,
) -> list[DailyProgress]:
    goal = await fetch_one(
        db,
        select(SalesGoal).where(SalesGoal.id == goal_id, SalesGoal.user_id == user_id),
        source="sales_goals",
    )
    if goal is None:
        raise NotFoundError("Sales goal", str(goal_id))

    today = today or datetime.utcnow().date()
    sales = await fetch_sales(
        db,
        user_id,
        SalesFilter(
            start_date=datetime.combine(goal.period_start, time.min),
            end_date=datetime.combine(goal.period_end, time.max),
        ),
    )
    by_day: dict[date, float] = defaultdict(float)
    for sale in sales:
        by_day[sale.purchase_date.date()] += sale.effective_amount

    target = daily_target(goal.goal_type, float(goal.target_amount), goal.period_start, goal.period_end)
    progress = []
    day = goal.period_start
    last_day = min(goal.period_end, today)
    while day <= last_day:
        amount = by_day.get(day, 0.0)
        percentage = amount / target * 100 if target > 0 else 0.0
        progress.append(
            DailyProgress(
                date=day,
                amount=round(amount, 2),
                goal_amount=round(target, 2),
                percentage=round(min(percentage, 100.0), 1),
            )
        )
        day += timedelta(days=1)
    return progress
