"""
Inventory Router — valued stock overview, receipts, reconciliation and supply-chain flow.

Agent: full-stack-engineer
Skill: fastapi
"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db, get_refresh_bus, get_user_id
from events.bus import RefreshBus
from inventory.costing import build_inventory_overview
from inventory.reconciliation import reconcile_stock
from inventory.supply_chain import analyze_supply_chain, refresh_supply_chain_insights
from ledger.writes import receive_stock

router = APIRouter(prefix="/api/v1/inventory", tags=["inventory"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class InventoryItemResponse(BaseModel):
    id: UUID
    product_name: str
    current_stock: int
    last_sale_date: datetime | None
    total_sales_this_month: float
    avg_selling_price: float
    average_cost_price: float
    cost_source: str
    unit_value: float
    current_value: float
    recent_sales_count: int
    status: str  # "out", "low", "slow", "healthy"
    recommendation: str

    model_config = {"from_attributes": True}


class StockMetricsResponse(BaseModel):
    total_items: int
    total_value: float
    low_stock_items: int
    out_of_stock_items: int
    slow_moving_items: int
    total_revenue: float

    model_config = {"from_attributes": True}


class InventoryOverviewResponse(BaseModel):
    state: str  # "ready" or "empty"
    business_id: UUID | None
    items: list[InventoryItemResponse]
    metrics: StockMetricsResponse


class StockDriftResponse(BaseModel):
    product_id: UUID
    product_name: str
    counter_stock: int
    ledger_stock: int
    drift: int

    model_config = {"from_attributes": True}


class ReconcileResponse(BaseModel):
    applied: bool
    drifted: list[StockDriftResponse]


class ReceiptCreate(BaseModel):
    product_name: str = Field(min_length=1, max_length=255)
    quantity: int = Field(gt=0)
    unit_cost: float | None = Field(default=None, ge=0)
    total_cost: float | None = Field(default=None, ge=0)
    selling_price: float | None = Field(default=None, ge=0)
    batch_number: str | None = None
    received_date: datetime | None = None


class ReceiptResponse(BaseModel):
    id: UUID
    product_name: str
    quantity_received: int
    unit_cost: float | None
    total_cost: float | None
    received_date: datetime

    model_config = {"from_attributes": True}


class SupplyChainMetricsResponse(BaseModel):
    product_name: str
    total_received: int
    total_sold: int
    current_stock: int
    days_in_inventory: int
    turnover_rate: float
    avg_unit_cost: float
    total_investment: float
    total_revenue: float
    profit_margin: float
    status: str
    status_color: str

    model_config = {"from_attributes": True}


class SupplyChainSummaryResponse(BaseModel):
    total_products: int
    total_investment: float
    total_revenue: float

    model_config = {"from_attributes": True}


class SupplyChainResponse(BaseModel):
    state: str  # "ready" or "empty"
    metrics: list[SupplyChainMetricsResponse]
    summary: SupplyChainSummaryResponse


class InsightDraftResponse(BaseModel):
    product_name: str
    insight_type: str
    message: str
    priority: str

    model_config = {"from_attributes": True}


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/overview", response_model=InventoryOverviewResponse)
async def get_inventory_overview(
    user_id: UUID = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Classified, valued inventory with stock metrics."""
    overview = await build_inventory_overview(db, user_id)
    return InventoryOverviewResponse(
        state="ready" if overview.items else "empty",
        business_id=overview.business_id,
        items=[InventoryItemResponse.model_validate(item) for item in overview.items],
        metrics=StockMetricsResponse.model_validate(overview.metrics),
    )


@router.post("/reconcile", response_model=ReconcileResponse)
async def reconcile_inventory(
    apply: bool = Query(False, description="Rewrite drifted counters to the ledger value"),
    user_id: UUID = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    bus: RefreshBus = Depends(get_refresh_bus),
):
    drifted = await reconcile_stock(db, user_id, apply=apply)
    if apply and drifted:
        bus.publish()
    return ReconcileResponse(
        applied=apply,
        drifted=[StockDriftResponse.model_validate(d) for d in drifted],
    )


@router.post("/receipts", response_model=ReceiptResponse, status_code=status.HTTP_201_CREATED)
async def create_receipt(
    payload: ReceiptCreate,
    user_id: UUID = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    bus: RefreshBus = Depends(get_refresh_bus),
):
    receipt = await receive_stock(
        db,
        user_id,
        product_name=payload.product_name,
        quantity=payload.quantity,
        unit_cost=payload.unit_cost,
        total_cost=payload.total_cost,
        received_date=payload.received_date,
        selling_price=payload.selling_price,
        batch_number=payload.batch_number,
        bus=bus,
    )
    return ReceiptResponse.model_validate(receipt)


@router.get("/supply-chain", response_model=SupplyChainResponse)
async def get_supply_chain(
    product_name: str | None = Query(None, description="Limit the report to one product"),
    user_id: UUID = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Received → sold flow, turnover and margin per product."""
    report = await analyze_supply_chain(db, user_id, product_name=product_name)
    return SupplyChainResponse(
        state="ready" if report.metrics else "empty",
        metrics=[SupplyChainMetricsResponse.model_validate(m) for m in report.metrics],
        summary=SupplyChainSummaryResponse.model_validate(report),
    )


@router.post("/supply-chain/insights", response_model=list[InsightDraftResponse])
async def regenerate_supply_chain_insights(
    user_id: UUID = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Replace the stored supply-chain insights with a fresh set."""
    drafts = await refresh_supply_chain_insights(db, user_id)
    return [InsightDraftResponse.model_validate(draft) for draft in drafts]
