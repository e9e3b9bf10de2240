"""
Market Tip Prioritizer — contextual tips from sales and stock aggregates.

Candidate rules, in generation order:
  1. Daily performance   no sales today → high; today > 1.5 × 7-day average → low
  2. Stock               any out of stock → high; else any low stock → medium
  3. Top performer       best seller > 30% of 30-day revenue → medium
  4. Cash flow           30-day average daily sales > 0 → low
  5. Growth              30-day revenue < 500 with products → medium;
                         30-day revenue > 2000 → low

prioritize_tips orders high → medium → low and keeps generation order inside
a tier. Rotation through the ordered list belongs to the caller (TipRotation).
"""

import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, time, timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from core.matching import normalize_product_name
from db.models import Product
from db.queries import fetch_rows, gather_sources
from inventory.stock_health import STATUS_LOW, STATUS_OUT, classify
from ledger.profiles import get_business_profile
from ledger.sales import SalesFilter, fetch_sales, filter_by_date_range, sum_effective_amount

logger = structlog.get_logger()

PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}

TIP_ICONS = {
    "inventory": "📦",
    "sales": "💰",
    "performance": "📈",
    "opportunity": "🚀",
    "cash_flow": "💳",
}

GREAT_DAY_MULTIPLIER = 1.5
TOP_PERFORMER_SHARE = 0.3
GROWTH_FLOOR = 500
STRONG_PERFORMANCE = 2000


@dataclass(frozen=True)
class MarketTip:
    title: str
    message: str
    type: str
    priority: str

    @property
    def icon(self) -> str:
        return TIP_ICONS.get(self.type, "💡")


def _plural(count: int, one: str, many: str) -> str:
    return f"{count} product{'s ' + many if count > 1 else ' ' + one}"


async def generate_market_tips(
    db: AsyncSession,
    user_id: uuid.UUID,
    now: datetime | None = None,
) -> list[MarketTip]:
    """Candidate tips in generation order; empty without a business profile."""
    now = now or datetime.utcnow()
    currency = get_settings().currency_symbol

    profile = await get_business_profile(db, user_id)
    if profile is None:
        return []

    sources = await gather_sources(
        products=fetch_rows(db, select(Product).where(Product.user_id == user_id), source="user_products"),
        sales=fetch_sales(
            db,
            user_id,
            SalesFilter(start_date=now - timedelta(days=30), end_date=now, business_id=profile.id),
        ),
    )
    products = sources["products"]
    month_sales = sources["sales"]
    week_sales = filter_by_date_range(month_sales, now - timedelta(days=7), now)
    today_sales = filter_by_date_range(month_sales, datetime.combine(now.date(), time.min), now)

    today_total = sum_effective_amount(today_sales)
    week_total = sum_effective_amount(week_sales)
    month_total = sum_effective_amount(month_sales)

    tips: list[MarketTip] = []

    if today_total == 0:
        tips.append(
            MarketTip(
                "No Sales Today",
                "Start your day strong! Check your inventory and consider promoting your best-selling products.",
                "sales",
                "high",
            )
        )
    elif today_total > week_total / 7 * GREAT_DAY_MULTIPLIER:
        tips.append(
            MarketTip(
                "Great Sales Day!",
                f"Today's sales ({currency}{today_total:.0f}) are 50% above average! Keep up the momentum.",
                "performance",
                "low",
            )
        )

    if products:
        sales_count: dict[str, int] = defaultdict(int)
        for sale in month_sales:
            sales_count[normalize_product_name(sale.product_name)] += 1
        statuses = [
            classify(int(p.current_stock or 0), sales_count[normalize_product_name(p.product_name)]).status
            for p in products
        ]
        out_of_stock = statuses.count(STATUS_OUT)
        low_stock = statuses.count(STATUS_LOW)
        if out_of_stock:
            tips.append(
                MarketTip(
                    "Stock Alert",
                    f"{_plural(out_of_stock, 'is', 'are')} out of stock. You might be losing sales!",
                    "inventory",
                    "high",
                )
            )
        elif low_stock:
            tips.append(
                MarketTip(
                    "Low Stock Warning",
                    f"{_plural(low_stock, 'has', 'have')} low stock. Consider restocking soon.",
                    "inventory",
                    "medium",
                )
            )

    if month_sales:
        revenue_by_product: dict[str, float] = {}
        display_names: dict[str, str] = {}
        for sale in month_sales:
            key = normalize_product_name(sale.product_name)
            display_names.setdefault(key, sale.product_name)
            revenue_by_product[key] = revenue_by_product.get(key, 0.0) + sale.effective_amount
        # max() keeps the first product seen on ties
        best_key = max(revenue_by_product, key=revenue_by_product.get)
        best_revenue = revenue_by_product[best_key]
        if best_revenue > month_total * TOP_PERFORMER_SHARE:
            tips.append(
                MarketTip(
                    "Top Performer",
                    f"{display_names[best_key]} is your star product ({currency}{best_revenue:.0f} this month). "
                    "Ensure it's well-stocked!",
                    "opportunity",
                    "medium",
                )
            )

        avg_daily = month_total / 30
        if avg_daily > 0:
            tips.append(
                MarketTip(
                    "Cash Flow Insight",
                    f"Your average daily sales are {currency}{avg_daily:.0f}. "
                    f"You're on track for {currency}{avg_daily * 30:.0f} this month.",
                    "cash_flow",
                    "low",
                )
            )

    if month_total < GROWTH_FLOOR and products:
        tips.append(
            MarketTip(
                "Growth Opportunity",
                "Consider adding complementary products or promotions to increase monthly revenue.",
                "opportunity",
                "medium",
            )
        )
    elif month_total > STRONG_PERFORMANCE:
        tips.append(
            MarketTip(
                "Business Growth",
                f"Excellent! {currency}{month_total:.0f} monthly revenue shows strong business performance.",
                "performance",
                "low",
            )
        )

    logger.debug("market_tips.generated", user_id=str(user_id), tips=len(tips))
    return tips


def prioritize_tips(tips: list[MarketTip]) -> list[MarketTip]:
    """Stable sort high → medium → low."""
    return sorted(tips, key=lambda tip: PRIORITY_ORDER.get(tip.priority, len(PRIORITY_ORDER)))


class TipRotation:
    """Cycles through an ordered tip list; the caller drives the clock."""

    def __init__(self, tips: list[MarketTip], interval_seconds: int | None = None):
        self.tips = prioritize_tips(tips)
        self.interval_seconds = interval_seconds or get_settings().tip_rotation_seconds
        self._index = 0

    @property
    def current(self) -> MarketTip | None:
        return self.tips[self._index] if self.tips else None

    def advance(self) -> MarketTip | None:
        if self.tips:
            self._index = (self._index + 1) % len(self.tips)
        return self.current

    def at(self, elapsed_seconds: float) -> MarketTip | None:
        """Tip on display after elapsed_seconds from the start of rotation."""
        if not self.tips:
            return None
        return self.tips[int(elapsed_seconds // self.interval_seconds) % len(self.tips)]
