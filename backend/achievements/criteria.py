"""
Achievement criteria — typed predicates over a user's aggregates.

A definition's criteria is a JSON object such as
    {"type": "monthly_sales", "count": 50}
    {"type": "weekly_profit", "amount": 1000}
    {"type": "no_stockouts", "days": 7}

Each type maps to one evaluator in CRITERIA. An evaluator returns a
CriterionResult carrying the unlock decision and the progress snapshot stored
with the unlock. Unknown types and invalid thresholds raise CriterionError.

Sales-based criteria read through the sales ledger, so reversed sales never
count toward an achievement.
"""

import math
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import CriterionError
from core.matching import normalize_product_name
from db.models import InventoryMovement, Product
from db.queries import fetch_rows
from ledger.sales import SalesFilter, fetch_sales, sum_effective_amount


@dataclass(frozen=True)
class CriterionContext:
    db: AsyncSession
    user_id: uuid.UUID
    business_id: uuid.UUID
    now: datetime


@dataclass(frozen=True)
class CriterionResult:
    unlocked: bool
    progress: dict[str, Any] = field(default_factory=dict)


Evaluator = Callable[[CriterionContext, dict[str, Any]], Awaitable[CriterionResult]]

CRITERIA: dict[str, Evaluator] = {}

# Longest look-back window a "days" threshold may ask for
MAX_LOOKBACK_DAYS = 3650


def criterion(name: str):
    def register(fn: Evaluator) -> Evaluator:
        CRITERIA[name] = fn
        return fn

    return register


def _threshold(criteria: dict[str, Any], key: str, upper: float | None = None) -> float:
    kind = str(criteria.get("type"))
    value = criteria.get(key)
    if value is None:
        raise CriterionError(kind, f"missing '{key}' threshold")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise CriterionError(kind, f"'{key}' must be numeric, got {value!r}") from exc
    if not math.isfinite(number) or number < 0:
        raise CriterionError(kind, f"'{key}' must be a finite non-negative number, got {value!r}")
    if upper is not None and number > upper:
        raise CriterionError(kind, f"'{key}' must be at most {upper:g}, got {value!r}")
    return number


async def _sales(ctx: CriterionContext, start: datetime | None = None):
    return await fetch_sales(
        ctx.db,
        ctx.user_id,
        SalesFilter(start_date=start, end_date=ctx.now, business_id=ctx.business_id),
    )


@criterion("first_sale")
async def first_sale(ctx: CriterionContext, criteria: dict[str, Any]) -> CriterionResult:
    sales = await _sales(ctx)
    return CriterionResult(len(sales) > 0, {"sales_count": len(sales)})


@criterion("monthly_sales")
async def monthly_sales(ctx: CriterionContext, criteria: dict[str, Any]) -> CriterionResult:
    target = _threshold(criteria, "count")
    sales = await _sales(ctx, datetime(ctx.now.year, ctx.now.month, 1))
    return CriterionResult(len(sales) >= target, {"sales_this_month": len(sales), "target": target})


@criterion("weekly_profit")
async def weekly_profit(ctx: CriterionContext, criteria: dict[str, Any]) -> CriterionResult:
    target = _threshold(criteria, "amount")
    total = sum_effective_amount(await _sales(ctx, ctx.now - timedelta(days=7)))
    return CriterionResult(total >= target, {"weekly_profit": round(total, 2), "target": target})


@criterion("total_profit")
async def total_profit(ctx: CriterionContext, criteria: dict[str, Any]) -> CriterionResult:
    target = _threshold(criteria, "amount")
    total = sum_effective_amount(await _sales(ctx))
    return CriterionResult(total >= target, {"total_profit": round(total, 2), "target": target})


@criterion("product_variety")
async def product_variety(ctx: CriterionContext, criteria: dict[str, Any]) -> CriterionResult:
    target = _threshold(criteria, "count")
    counts = await fetch_rows(
        ctx.db,
        select(func.count(Product.id)).where(Product.user_id == ctx.user_id, Product.current_stock > 0),
        source="user_products",
    )
    active = int(counts[0]) if counts else 0
    return CriterionResult(active >= target, {"active_products": active, "target": target})


@criterion("customer_count")
async def customer_count(ctx: CriterionContext, criteria: dict[str, Any]) -> CriterionResult:
    target = _threshold(criteria, "count")
    customers = {sale.customer_phone for sale in await _sales(ctx) if sale.customer_phone}
    return CriterionResult(len(customers) >= target, {"unique_customers": len(customers), "target": target})


@criterion("no_stockouts")
async def no_stockouts(ctx: CriterionContext, criteria: dict[str, Any]) -> CriterionResult:
    days = _threshold(criteria, "days", upper=MAX_LOOKBACK_DAYS)
    counts = await fetch_rows(
        ctx.db,
        select(func.count(Product.id)).where(
            Product.user_id == ctx.user_id,
            Product.current_stock <= 0,
            Product.updated_at >= ctx.now - timedelta(days=days),
        ),
        source="user_products",
    )
    stockouts = int(counts[0]) if counts else 0
    return CriterionResult(stockouts == 0, {"stockouts_in_period": stockouts, "target_days": days})


def sales_streak(days_with_sales: set[date], today: date) -> int:
    """Consecutive days with sales ending today, or yesterday if today has none yet."""
    cursor = today if today in days_with_sales else today - timedelta(days=1)
    streak = 0
    while cursor in days_with_sales:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


@criterion("consecutive_sales_days")
async def consecutive_sales_days(ctx: CriterionContext, criteria: dict[str, Any]) -> CriterionResult:
    days = _threshold(criteria, "days", upper=MAX_LOOKBACK_DAYS)
    sales = await _sales(ctx, ctx.now - timedelta(days=days + 1))
    streak = sales_streak({sale.purchase_date.date() for sale in sales}, ctx.now.date())
    return CriterionResult(streak >= days, {"recent_sales_days": streak, "target": days})


@criterion("product_sellouts")
async def product_sellouts(ctx: CriterionContext, criteria: dict[str, Any]) -> CriterionResult:
    """Products restocked (a received movement) during the last 30 days."""
    target = _threshold(criteria, "count")
    names = await fetch_rows(
        ctx.db,
        select(InventoryMovement.product_name).where(
            InventoryMovement.user_id == ctx.user_id,
            InventoryMovement.movement_type == "received",
            InventoryMovement.movement_date >= ctx.now - timedelta(days=30),
        ),
        source="inventory_movements",
    )
    restocked = len({normalize_product_name(name) for name in names})
    return CriterionResult(restocked >= target, {"recent_restocks": restocked, "target": target})


@criterion("value_increase")
async def value_increase(ctx: CriterionContext, criteria: dict[str, Any]) -> CriterionResult:
    totals = await fetch_rows(
        ctx.db,
        select(func.coalesce(func.sum(Product.current_stock), 0)).where(
            Product.user_id == ctx.user_id, Product.current_stock > 0
        ),
        source="user_products",
    )
    total_stock = int(totals[0]) if totals else 0
    return CriterionResult(total_stock > 0, {"total_stock": total_stock})


async def evaluate_criterion(ctx: CriterionContext, code: str, criteria: Any) -> CriterionResult:
    if not isinstance(criteria, dict) or "type" not in criteria:
        raise CriterionError(code, "criteria must be an object with a 'type'")
    evaluator = CRITERIA.get(criteria["type"])
    if evaluator is None:
        raise CriterionError(code, f"unknown criterion type '{criteria['type']}'")
    return await evaluator(ctx, criteria)
