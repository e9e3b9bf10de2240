"""
Sales Router — sales ledger, reversals and expenses.

Every write commits and then signals the refresh bus.

Agent: full-stack-engineer
Skill: fastapi
"""

from datetime import date, datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db, get_refresh_bus, get_user_id
from events.bus import RefreshBus
from ledger.sales import SalesFilter, fetch_sales
from ledger.writes import record_expense, record_sale, reverse_sale

router = APIRouter(prefix="/api/v1", tags=["sales"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class SaleCreate(BaseModel):
    product_name: str = Field(min_length=1, max_length=255)
    amount: float = Field(ge=0)
    quantity: int = Field(default=1, gt=0)
    payment_method: str = "cash"
    customer_phone: str | None = None
    purchase_date: datetime | None = None
    outstanding_credit_amount: float | None = Field(default=None, ge=0)
    has_partial_payment: bool = False


class SaleResponse(BaseModel):
    id: UUID
    product_name: str
    customer_phone: str | None
    amount: float
    quantity: int
    payment_method: str
    purchase_date: datetime
    outstanding_credit_amount: float | None = None
    has_partial_payment: bool = False
    is_reversed: bool = False
    reversed_at: datetime | None = None
    effective_amount: float | None = None
    effective_quantity: int | None = None

    model_config = {"from_attributes": True}


class ReversalCreate(BaseModel):
    reason: str = Field(min_length=1)
    amount: float | None = Field(default=None, gt=0)
    quantity: int | None = Field(default=None, ge=0)


class ReversalResponse(BaseModel):
    id: UUID
    original_sale_id: UUID
    reversed_amount: float
    reversed_quantity: int
    reversal_reason: str | None
    reversal_receipt_number: str
    reversal_date: datetime

    model_config = {"from_attributes": True}


class ExpenseCreate(BaseModel):
    category: str = Field(min_length=1, max_length=100)
    amount: float = Field(ge=0)
    expense_date: date | None = None
    vendor_name: str | None = None
    description: str | None = None


class ExpenseResponse(BaseModel):
    id: UUID
    category: str
    amount: float
    expense_date: date
    vendor_name: str | None
    description: str | None

    model_config = {"from_attributes": True}


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/sales", response_model=list[SaleResponse])
async def list_sales(
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    include_reversed: bool = False,
    limit: int = Query(100, ge=1, le=1000),
    user_id: UUID = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Sales newest first, reversals netted out."""
    rows = await fetch_sales(
        db,
        user_id,
        SalesFilter(start_date=start_date, end_date=end_date, include_reversed=include_reversed, limit=limit),
    )
    return [SaleResponse.model_validate(row) for row in rows]


@router.post("/sales", response_model=SaleResponse, status_code=status.HTTP_201_CREATED)
async def create_sale(
    payload: SaleCreate,
    user_id: UUID = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    bus: RefreshBus = Depends(get_refresh_bus),
):
    sale = await record_sale(db, user_id, bus=bus, **payload.model_dump())
    return SaleResponse(
        id=sale.id,
        product_name=sale.product_name,
        customer_phone=sale.customer_phone,
        amount=sale.amount,
        quantity=sale.quantity,
        payment_method=sale.payment_method,
        purchase_date=sale.purchase_date,
        outstanding_credit_amount=sale.outstanding_credit_amount,
        has_partial_payment=sale.has_partial_payment,
        effective_amount=sale.amount,
        effective_quantity=sale.quantity,
    )


@router.post(
    "/sales/{sale_id}/reversals",
    response_model=ReversalResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_reversal(
    sale_id: UUID,
    payload: ReversalCreate,
    user_id: UUID = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    bus: RefreshBus = Depends(get_refresh_bus),
):
    """Reverse a sale fully (no amount) or partially."""
    reversal = await reverse_sale(
        db,
        user_id,
        sale_id,
        reason=payload.reason,
        amount=payload.amount,
        quantity=payload.quantity,
        bus=bus,
    )
    return ReversalResponse.model_validate(reversal)


@router.post("/expenses", response_model=ExpenseResponse, status_code=status.HTTP_201_CREATED)
async def create_expense(
    payload: ExpenseCreate,
    user_id: UUID = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    bus: RefreshBus = Depends(get_refresh_bus),
):
    expense = await record_expense(db, user_id, bus=bus, **payload.model_dump())
    return ExpenseResponse.model_validate(expense)
