"""
Inventory Costing Engine — weighted-average cost and stock valuation.

Cost precedence (each step only runs when the previous one yields zero):
  1. Receipts:   Σ total_cost / Σ quantity_received
                 (total_cost falls back to unit_cost × quantity_received)
  2. Movements:  Σ(|qty| × unit_price) / Σ|qty| over "received" movements
  3. Selling price, as an explicit approximation (not a true cost)

Stock valuation:
  unit_value = selling_price if set and positive, else the non-zero cost
  current_value = current_stock × unit_value (zero stock → zero value)

Receipts, movements and products are joined by normalized product name; a
receipt recorded under a different spelling is invisible to its product.

Agent: data-engineer
Skill: postgresql
"""

import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from core.matching import group_by_product, normalize_product_name
from db.models import InventoryMovement, InventoryReceipt, Product
from db.queries import fetch_rows, gather_sources
from inventory.stock_health import STATUS_LOW, STATUS_OUT, STATUS_SLOW, classify
from ledger.profiles import get_business_profile
from ledger.sales import SaleRecord, SalesFilter, fetch_sales, sum_effective_amount

logger = structlog.get_logger()

COST_SOURCE_RECEIPTS = "receipts"
COST_SOURCE_MOVEMENTS = "movements"
COST_SOURCE_SELLING_PRICE = "selling_price"
COST_SOURCE_NONE = "none"


@dataclass(frozen=True)
class CostBasis:
    average_cost: float
    source: str


def receipt_weighted_cost(receipts: Iterable[InventoryReceipt]) -> float:
    total_quantity = 0.0
    total_cost = 0.0
    for receipt in receipts:
        quantity = float(receipt.quantity_received or 0)
        if receipt.total_cost is not None:
            cost = float(receipt.total_cost)
        else:
            cost = float(receipt.unit_cost or 0) * quantity
        total_quantity += quantity
        total_cost += cost
    return total_cost / total_quantity if total_quantity > 0 else 0.0


def movement_weighted_cost(movements: Iterable[InventoryMovement]) -> float:
    total_quantity = 0.0
    total_cost = 0.0
    for movement in movements:
        if movement.movement_type != "received":
            continue
        quantity = abs(float(movement.quantity or 0))
        total_quantity += quantity
        total_cost += quantity * float(movement.unit_price or 0)
    if total_quantity > 0 and total_cost > 0:
        return total_cost / total_quantity
    return 0.0


def weighted_average_cost(
    receipts: Sequence[InventoryReceipt],
    movements: Sequence[InventoryMovement],
    selling_price: float | None = None,
) -> CostBasis:
    """Resolve a product's cost through the receipts → movements → selling price chain."""
    cost = receipt_weighted_cost(receipts)
    if cost:
        return CostBasis(cost, COST_SOURCE_RECEIPTS)

    cost = movement_weighted_cost(movements)
    if cost:
        return CostBasis(cost, COST_SOURCE_MOVEMENTS)

    if selling_price and selling_price > 0:
        return CostBasis(float(selling_price), COST_SOURCE_SELLING_PRICE)
    return CostBasis(0.0, COST_SOURCE_NONE)


def unit_stock_value(selling_price: float | None, average_cost: float) -> float:
    if selling_price is not None and selling_price > 0:
        return float(selling_price)
    return average_cost


def stock_value(current_stock: int, unit_value: float) -> float:
    if current_stock <= 0:
        return 0.0
    return current_stock * unit_value


class CostIndex:
    """Receipts and movements pre-grouped by normalized product name."""

    def __init__(self, receipts: Iterable[InventoryReceipt], movements: Iterable[InventoryMovement]):
        self._receipts = group_by_product(receipts, lambda r: r.product_name)
        self._movements = group_by_product(movements, lambda m: m.product_name)

    def cost_for(self, product_name: str, selling_price: float | None = None) -> CostBasis:
        key = normalize_product_name(product_name)
        return weighted_average_cost(
            self._receipts.get(key, []),
            self._movements.get(key, []),
            selling_price,
        )


async def fetch_cost_sources(db: AsyncSession, user_id: uuid.UUID) -> CostIndex:
    sources = await gather_sources(
        receipts=fetch_rows(
            db, select(InventoryReceipt).where(InventoryReceipt.user_id == user_id), source="inventory_receipts"
        ),
        movements=fetch_rows(
            db,
            select(InventoryMovement).where(
                InventoryMovement.user_id == user_id,
                InventoryMovement.movement_type == "received",
            ),
            source="inventory_movements",
        ),
    )
    return CostIndex(sources["receipts"], sources["movements"])


# ──────────────────────────────────────────────────────────────────────────
# Inventory overview
# ──────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class InventoryItem:
    id: uuid.UUID
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
    status: str
    recommendation: str


@dataclass(frozen=True)
class StockMetrics:
    total_items: int = 0
    total_value: float = 0.0
    low_stock_items: int = 0
    out_of_stock_items: int = 0
    slow_moving_items: int = 0
    total_revenue: float = 0.0


@dataclass(frozen=True)
class InventoryOverview:
    business_id: uuid.UUID | None
    items: list[InventoryItem] = field(default_factory=list)
    metrics: StockMetrics = field(default_factory=StockMetrics)


def build_inventory_item(product: Product, costs: CostIndex, product_sales: Sequence[SaleRecord]) -> InventoryItem:
    current_stock = int(product.current_stock or 0)
    selling_price = float(product.selling_price) if product.selling_price is not None else None
    basis = costs.cost_for(product.product_name, selling_price)
    unit_value = unit_stock_value(selling_price, basis.average_cost)
    health = classify(current_stock, len(product_sales), product.product_name)
    revenue = sum_effective_amount(product_sales)

    return InventoryItem(
        id=product.id,
        product_name=product.product_name,
        current_stock=current_stock,
        last_sale_date=product.last_sale_date,
        total_sales_this_month=float(product.total_sales_this_month or 0),
        avg_selling_price=round(revenue / len(product_sales), 2) if product_sales else 0.0,
        average_cost_price=round(basis.average_cost, 2),
        cost_source=basis.source,
        unit_value=round(unit_value, 2),
        current_value=round(stock_value(current_stock, unit_value), 2),
        recent_sales_count=len(product_sales),
        status=health.status,
        recommendation=health.recommendation,
    )


async def build_inventory_overview(
    db: AsyncSession,
    user_id: uuid.UUID,
    now: datetime | None = None,
) -> InventoryOverview:
    """
    Classified, valued inventory for a user.

    A user without a business profile gets an empty overview, not an error.
    """
    now = now or datetime.utcnow()
    profile = await get_business_profile(db, user_id)
    if profile is None:
        return InventoryOverview(business_id=None)

    lookback = timedelta(days=get_settings().inventory_sales_lookback_days)
    sources = await gather_sources(
        products=fetch_rows(
            db,
            select(Product).where(Product.user_id == user_id).order_by(Product.product_name),
            source="user_products",
        ),
        costs=fetch_cost_sources(db, user_id),
        sales=fetch_sales(
            db,
            user_id,
            SalesFilter(start_date=now - lookback, end_date=now, business_id=profile.id),
        ),
    )

    sales_by_product = group_by_product(sources["sales"], lambda s: s.product_name)
    items = [
        build_inventory_item(
            product,
            sources["costs"],
            sales_by_product.get(normalize_product_name(product.product_name), []),
        )
        for product in sources["products"]
    ]

    metrics = StockMetrics(
        total_items=sum(item.current_stock for item in items),
        total_value=round(sum(item.current_value for item in items), 2),
        low_stock_items=sum(1 for item in items if item.status == STATUS_LOW),
        out_of_stock_items=sum(1 for item in items if item.status == STATUS_OUT),
        slow_moving_items=sum(1 for item in items if item.status == STATUS_SLOW),
        total_revenue=round(sum_effective_amount(sources["sales"]), 2),
    )
    logger.info(
        "inventory.overview_built",
        user_id=str(user_id),
        products=len(items),
        total_value=metrics.total_value,
    )
    return InventoryOverview(business_id=profile.id, items=items, metrics=metrics)
