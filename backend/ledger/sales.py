"""
Sales Ledger Reader — normalized sale records with reversal netting.

A sale's effective amount/quantity is its recorded amount/quantity minus the
sum of its linked reversals, floored at zero. A sale counts as reversed once
its reversals cover the full amount; reversed sales are excluded unless the
caller asks for them.

sum_effective_amount / sum_effective_quantity are the single definition of
"what counts as revenue" used by every summary, tip and achievement.

Agent: data-engineer
Skill: postgresql
"""

import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Sale, SaleReversal
from db.queries import fetch_rows


@dataclass(frozen=True)
class SalesFilter:
    start_date: datetime | None = None
    end_date: datetime | None = None
    business_id: uuid.UUID | None = None
    include_reversed: bool = False
    limit: int | None = None


@dataclass(frozen=True)
class SaleRecord:
    """A sale as seen by every aggregation, reversals already netted out."""

    id: uuid.UUID
    user_id: uuid.UUID
    business_id: uuid.UUID
    product_name: str
    customer_phone: str | None
    amount: float
    quantity: int
    payment_method: str
    purchase_date: datetime
    outstanding_credit_amount: float | None
    has_partial_payment: bool
    is_reversed: bool
    reversed_at: datetime | None
    effective_amount: float
    effective_quantity: int

    @property
    def is_credit(self) -> bool:
        return self.payment_method == "credit"

    @property
    def outstanding_credit(self) -> float:
        """Credit still owed; never more than what the sale is now worth."""
        # Capped on purpose: the stored amount is not adjusted when a sale is
        # partly reversed, and a customer cannot owe more than the goods kept.
        if self.outstanding_credit_amount is None:
            return self.effective_amount
        return min(self.outstanding_credit_amount, self.effective_amount)


def _reversal_totals():
    return (
        select(
            SaleReversal.original_sale_id.label("sale_id"),
            func.sum(SaleReversal.reversed_amount).label("reversed_amount"),
            func.sum(SaleReversal.reversed_quantity).label("reversed_quantity"),
            func.max(SaleReversal.reversal_date).label("last_reversal_date"),
        )
        .group_by(SaleReversal.original_sale_id)
        .subquery()
    )


def _to_record(sale: Sale, reversed_amount, reversed_quantity, last_reversal_date) -> SaleRecord:
    reversed_amount = float(reversed_amount or 0)
    reversed_quantity = int(reversed_quantity or 0)
    amount = float(sale.amount or 0)
    quantity = int(sale.quantity or 0)
    has_reversal = last_reversal_date is not None
    is_reversed = has_reversal and reversed_amount >= amount
    effective_amount = 0.0 if is_reversed else max(0.0, amount - reversed_amount)
    effective_quantity = 0 if is_reversed else max(0, quantity - reversed_quantity)
    return SaleRecord(
        id=sale.id,
        user_id=sale.user_id,
        business_id=sale.business_id,
        product_name=sale.product_name,
        customer_phone=sale.customer_phone,
        amount=amount,
        quantity=quantity,
        payment_method=sale.payment_method or "cash",
        purchase_date=sale.purchase_date,
        outstanding_credit_amount=sale.outstanding_credit_amount,
        has_partial_payment=bool(sale.has_partial_payment),
        is_reversed=is_reversed,
        reversed_at=last_reversal_date if is_reversed else None,
        effective_amount=effective_amount,
        effective_quantity=effective_quantity,
    )


async def fetch_sales(
    db: AsyncSession,
    user_id: uuid.UUID,
    filters: SalesFilter | None = None,
) -> list[SaleRecord]:
    """
    Sales owned by user_id, newest first.

    Date bounds are inclusive. Storage failures propagate as StorageError.
    """
    filters = filters or SalesFilter()
    totals = _reversal_totals()

    stmt = (
        select(Sale, totals.c.reversed_amount, totals.c.reversed_quantity, totals.c.last_reversal_date)
        .outerjoin(totals, totals.c.sale_id == Sale.id)
        .where(Sale.user_id == user_id)
    )
    if filters.business_id:
        stmt = stmt.where(Sale.business_id == filters.business_id)
    if filters.start_date:
        stmt = stmt.where(Sale.purchase_date >= filters.start_date)
    if filters.end_date:
        stmt = stmt.where(Sale.purchase_date <= filters.end_date)
    if not filters.include_reversed:
        stmt = stmt.where(or_(totals.c.sale_id.is_(None), totals.c.reversed_amount < Sale.amount))

    stmt = stmt.order_by(Sale.purchase_date.desc(), Sale.id)
    if filters.limit:
        stmt = stmt.limit(filters.limit)

    rows = await fetch_rows(db, stmt, source="sales")
    return [_to_record(*row) for row in rows]


async def fetch_sale(db: AsyncSession, user_id: uuid.UUID, sale_id: uuid.UUID) -> SaleRecord | None:
    totals = _reversal_totals()
    stmt = (
        select(Sale, totals.c.reversed_amount, totals.c.reversed_quantity, totals.c.last_reversal_date)
        .outerjoin(totals, totals.c.sale_id == Sale.id)
        .where(Sale.user_id == user_id, Sale.id == sale_id)
    )
    rows = await fetch_rows(db, stmt, source="sales")
    return _to_record(*rows[0]) if rows else None


def sum_effective_amount(rows: Iterable[SaleRecord]) -> float:
    return sum(row.effective_amount for row in rows)


def sum_effective_quantity(rows: Iterable[SaleRecord]) -> int:
    return sum(row.effective_quantity for row in rows)


def filter_by_date_range(rows: Iterable[SaleRecord], start: datetime, end: datetime) -> list[SaleRecord]:
    """Rows whose purchase date falls in [start, end]."""
    return [row for row in rows if start <= row.purchase_date <= end]
