"""
Period Summary Calculator — revenue, cost, expenses, credit and profit.

For an inclusive [start, end] window:
  revenue       = Σ effective_amount over non-reversed sales
  cost          = Σ total_cost of receipts received in the window
                  (total inventory spend, not matched to what sold)
  expenses      = Σ expense amounts dated in the window
  credit        = Σ outstanding credit over credit sales
  money_owed    = PARTIAL_PAYMENT_OUTSTANDING_RATIO × effective_amount
                  over partial-payment sales
  profit        = revenue − cost − expenses − miscellaneous

Every monetary field is a two-decimal string. Empty windows yield "0.00"
everywhere.

Agent: data-engineer
Skill: postgresql
"""

import uuid
from dataclasses import asdict, dataclass
from datetime import date, datetime, time, timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from db.models import Expense, InventoryReceipt
from db.queries import fetch_rows, gather_sources
from ledger.sales import SalesFilter, fetch_sales, sum_effective_amount

logger = structlog.get_logger()

# Share of a partial-payment sale assumed still outstanding. There is no
# remaining-balance field for partial payments yet.
PARTIAL_PAYMENT_OUTSTANDING_RATIO = 0.5

OVERALL_START = datetime(2020, 1, 1)

MARGIN_EXCELLENT = 30
MARGIN_GOOD = 15
CREDIT_HIGH = 50
CREDIT_MODERATE = 25
COST_HIGH = 70
COST_GOOD = 40


def _money(value: float) -> str:
    # round first so -0.004 does not render as "-0.00"
    return f"{round(value, 2) + 0.0:.2f}"


@dataclass(frozen=True)
class PeriodSummary:
    revenue: str = "0.00"
    cost: str = "0.00"
    expenses: str = "0.00"
    miscellaneous: str = "0.00"
    credit: str = "0.00"
    money_owed: str = "0.00"
    profit: str = "0.00"

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class PerformanceInsight:
    type: str  # success | info | warning
    message: str
    icon: str


async def calculate_period_summary(
    db: AsyncSession,
    user_id: uuid.UUID,
    start: datetime,
    end: datetime,
) -> PeriodSummary:
    sources = await gather_sources(
        sales=fetch_sales(db, user_id, SalesFilter(start_date=start, end_date=end)),
        expenses=fetch_rows(
            db,
            select(Expense.amount).where(
                Expense.user_id == user_id,
                Expense.expense_date >= start.date(),
                Expense.expense_date <= end.date(),
            ),
            source="expenses",
        ),
        receipts=fetch_rows(
            db,
            select(InventoryReceipt.total_cost).where(
                InventoryReceipt.user_id == user_id,
                InventoryReceipt.received_date >= start,
                InventoryReceipt.received_date <= end,
            ),
            source="inventory_receipts",
        ),
    )

    sales = [sale for sale in sources["sales"] if sale.effective_amount > 0]
    revenue = sum_effective_amount(sales)
    credit = sum(sale.outstanding_credit for sale in sales if sale.is_credit)
    money_owed = sum(
        sale.effective_amount * PARTIAL_PAYMENT_OUTSTANDING_RATIO for sale in sales if sale.has_partial_payment
    )
    cost = sum(float(total or 0) for total in sources["receipts"])
    expenses = sum(float(amount or 0) for amount in sources["expenses"])
    miscellaneous = 0.0
    profit = revenue - cost - expenses - miscellaneous

    logger.debug(
        "summary.computed",
        user_id=str(user_id),
        start=start.isoformat(),
        end=end.isoformat(),
        sales=len(sales),
        revenue=revenue,
        profit=profit,
    )
    return PeriodSummary(
        revenue=_money(revenue),
        cost=_money(cost),
        expenses=_money(expenses),
        miscellaneous=_money(miscellaneous),
        credit=_money(credit),
        money_owed=_money(money_owed),
        profit=_money(profit),
    )


def generate_performance_insights(summary: PeriodSummary, period_label: str) -> list[PerformanceInsight]:
    """Qualitative notes from the margin, credit-ratio and cost-ratio bands."""
    currency = get_settings().currency_symbol
    revenue = float(summary.revenue)
    profit = float(summary.profit)
    credit = float(summary.credit)
    cost = float(summary.cost)
    insights: list[PerformanceInsight] = []

    if revenue > 0:
        margin = profit / revenue * 100
        if margin > MARGIN_EXCELLENT:
            insights.append(
                PerformanceInsight(
                    "success",
                    f"🎯 Excellent profit margin! You're maintaining {margin:.1f}% profitability {period_label}.",
                    "🎯",
                )
            )
        elif margin > MARGIN_GOOD:
            insights.append(
                PerformanceInsight(
                    "info",
                    f"📈 Good profit margin of {margin:.1f}%. Consider optimizing costs to improve further.",
                    "📈",
                )
            )
        elif margin > 0:
            insights.append(
                PerformanceInsight(
                    "warning",
                    f"⚠️ Low profit margin of {margin:.1f}%. Review your pricing and cost structure.",
                    "⚠️",
                )
            )
        else:
            insights.append(
                PerformanceInsight(
                    "warning",
                    "🔴 Negative profit margin. Urgent review of costs and pricing needed.",
                    "🔴",
                )
            )

    if credit > 0 and revenue > 0:
        credit_ratio = credit / revenue * 100
        if credit_ratio > CREDIT_HIGH:
            insights.append(
                PerformanceInsight(
                    "warning",
                    f"⚠️ High credit sales ({credit_ratio:.1f}% of revenue). "
                    "Follow up on collections to improve cash flow.",
                    "⚠️",
                )
            )
        elif credit_ratio > CREDIT_MODERATE:
            insights.append(
                PerformanceInsight(
                    "info",
                    f"💳 Moderate credit sales ({credit_ratio:.1f}% of revenue). Monitor payment timelines.",
                    "💳",
                )
            )

    if revenue > 0 and cost > 0:
        cost_ratio = cost / revenue * 100
        if cost_ratio > COST_HIGH:
            insights.append(
                PerformanceInsight(
                    "warning",
                    f"💸 High cost ratio ({cost_ratio:.1f}%). Look for better suppliers or negotiate prices.",
                    "💸",
                )
            )
        elif cost_ratio < COST_GOOD:
            insights.append(
                PerformanceInsight(
                    "success",
                    f"💰 Great cost management! Your cost-to-revenue ratio is {cost_ratio:.1f}%.",
                    "💰",
                )
            )

    if period_label != "today" and revenue > 0:
        insights.append(
            PerformanceInsight(
                "info",
                f"📊 Total revenue {period_label} is {currency}{revenue:.2f}. "
                "Track trends to identify growth opportunities.",
                "📊",
            )
        )
    return insights


# ─── Standard periods ──────────────────────────────────────────────────────

PERIODS = ("today", "week", "month", "quarter", "year", "overall")


def _end_of(day: date) -> datetime:
    return datetime.combine(day, time.max)


def _month_end(year: int, month: int) -> date:
    if month == 12:
        return date(year, 12, 31)
    return date(year, month + 1, 1) - timedelta(days=1)


def period_bounds(now: datetime) -> dict[str, tuple[datetime, datetime]]:
    """
    Inclusive windows for every standard period.

    Weeks start on Sunday; "overall" runs from 2020-01-01 to the end of today.
    """
    today = now.date()
    week_start = today - timedelta(days=(today.weekday() + 1) % 7)
    quarter_month = (today.month - 1) // 3 * 3 + 1
    quarter_end_month = quarter_month + 2

    return {
        "today": (datetime.combine(today, time.min), _end_of(today)),
        "week": (datetime.combine(week_start, time.min), _end_of(week_start + timedelta(days=6))),
        "month": (datetime(today.year, today.month, 1), _end_of(_month_end(today.year, today.month))),
        "quarter": (datetime(today.year, quarter_month, 1), _end_of(_month_end(today.year, quarter_end_month))),
        "year": (datetime(today.year, 1, 1), _end_of(date(today.year, 12, 31))),
        "overall": (OVERALL_START, _end_of(today)),
    }


@dataclass(frozen=True)
class StandardPeriods:
    periods: dict[str, PeriodSummary]
    insights: list[PerformanceInsight]


async def calculate_standard_periods(
    db: AsyncSession,
    user_id: uuid.UUID,
    now: datetime | None = None,
) -> StandardPeriods:
    """Summaries for every standard period; insights are drawn from this month."""
    bounds = period_bounds(now or datetime.utcnow())
    periods = {}
    for name in PERIODS:
        start, end = bounds[name]
        periods[name] = await calculate_period_summary(db, user_id, start, end)

    return StandardPeriods(
        periods=periods,
        insights=generate_performance_insights(periods["month"], "this month"),
    )
