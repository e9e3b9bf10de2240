"""
Client-value ratio — average sales value per distinct customer.

Window: the last 30 days. Customers are distinct non-empty customer phones.
One snapshot row per (user, day); recomputing the same day overwrites it.
"""

import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import TradeDeskError
from db.models import ClientValueRatio
from db.queries import fetch_one
from ledger.profiles import list_profiled_user_ids
from ledger.sales import SalesFilter, fetch_sales, sum_effective_amount

logger = structlog.get_logger()

WINDOW_DAYS = 30

RATING_BANDS = ((100, "Excellent"), (50, "Good"), (25, "Fair"))


@dataclass(frozen=True)
class ClientValue:
    client_count: int
    total_sales_value: float
    ratio: float

    @property
    def rating(self) -> str:
        for floor, label in RATING_BANDS:
            if self.ratio >= floor:
                return label
        return "Needs Attention"


async def calculate_client_value(db: AsyncSession, user_id: uuid.UUID, now: datetime | None = None) -> ClientValue:
    now = now or datetime.utcnow()
    sales = await fetch_sales(db, user_id, SalesFilter(start_date=now - timedelta(days=WINDOW_DAYS), end_date=now))
    customers = {sale.customer_phone for sale in sales if sale.customer_phone}
    total = sum_effective_amount(sales)
    ratio = total / len(customers) if customers else 0.0
    return ClientValue(client_count=len(customers), total_sales_value=round(total, 2), ratio=round(ratio, 2))


async def snapshot_client_value(
    db: AsyncSession,
    user_id: uuid.UUID,
    now: datetime | None = None,
) -> ClientValue:
    """Compute the ratio and upsert today's (user, date) snapshot."""
    now = now or datetime.utcnow()
    value = await calculate_client_value(db, user_id, now)
    day: date = now.date()

    row = await fetch_one(
        db,
        select(ClientValueRatio).where(ClientValueRatio.user_id == user_id, ClientValueRatio.date == day),
        source="client_value_ratios",
    )
    if row is None:
        row = ClientValueRatio(user_id=user_id, date=day)
        db.add(row)
    row.client_count = value.client_count
    row.total_sales_value = value.total_sales_value
    row.ratio = value.ratio
    await db.commit()
    return value


async def snapshot_all_client_values(db: AsyncSession, now: datetime | None = None) -> dict[str, int]:
    user_ids = await list_profiled_user_ids(db)
    snapshots = errors = 0
    for user_id in user_ids:
        try:
            await snapshot_client_value(db, user_id, now)
        except TradeDeskError as exc:
            errors += 1
            logger.warning("client_value.user_failed", user_id=str(user_id), error=str(exc))
            continue
        snapshots += 1
    logger.info("client_value.snapshots_complete", users=len(user_ids), snapshots=snapshots, errors=errors)
    return {"users": len(user_ids), "snapshots": snapshots, "errors": errors}
