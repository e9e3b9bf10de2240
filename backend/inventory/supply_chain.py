"""
Supply Chain Analyzer — per-product flow from receipts through sales.

Per product (joined by normalized name):
  total_received    Σ quantity_received over receipts
  total_investment  Σ total_cost (unit_cost × quantity when total_cost is unset)
  total_sold        Σ "sold" movement qty − Σ "returned" movement qty
  total_revenue     the same, weighted by each movement's unit_price
  current_stock     total_received − total_sold (ledger flow, not the counter)
  avg_unit_cost     total_investment / total_received
  turnover_rate     total_sold / total_received
  profit_margin     (revenue − avg_unit_cost × sold) / revenue × 100
  days_in_inventory days since the oldest receipt

Status ladder (first match wins):
  current_stock <= 0       → Out of Stock (red)
  current_stock < 10       → Low Stock    (orange)
  turnover_rate < 0.3      → Slow Moving  (yellow)
  turnover_rate > 0.8      → Fast Moving  (green)
  otherwise                → Normal       (blue)

Supply-chain insights are regenerated from a report: the user's previous
insights of the supply-chain types are deleted and the new set inserted in one
commit.

Agent: data-engineer
Skill: postgresql
"""

import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from core.matching import group_by_product, normalize_product_name
from db.models import InventoryMovement, InventoryReceipt
from db.queries import fetch_rows, gather_sources
from insights.trade_insights import InsightDraft, replace_insights

logger = structlog.get_logger()

LOW_STOCK_UNITS = 10
SLOW_TURNOVER = 0.3
FAST_TURNOVER = 0.8

STATUS_COLORS = {
    "Out of Stock": "red",
    "Low Stock": "orange",
    "Slow Moving": "yellow",
    "Fast Moving": "green",
    "Normal": "blue",
}

SUPPLY_CHAIN_INSIGHT_TYPES = (
    "getting_started",
    "supply_chain_stockout",
    "supply_chain_low_stock",
    "supply_chain_high_demand",
    "supply_chain_slow_moving",
    "supply_chain_star_product",
    "supply_chain_margin_warning",
)


@dataclass(frozen=True)
class SupplyChainMetrics:
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

    @property
    def status_color(self) -> str:
        return STATUS_COLORS[self.status]


@dataclass(frozen=True)
class SupplyChainReport:
    metrics: list[SupplyChainMetrics] = field(default_factory=list)

    @property
    def total_products(self) -> int:
        return len(self.metrics)

    @property
    def total_investment(self) -> float:
        return round(sum(m.total_investment for m in self.metrics), 2)

    @property
    def total_revenue(self) -> float:
        return round(sum(m.total_revenue for m in self.metrics), 2)


def supply_status(current_stock: int, turnover_rate: float) -> str:
    if current_stock <= 0:
        return "Out of Stock"
    if current_stock < LOW_STOCK_UNITS:
        return "Low Stock"
    if turnover_rate < SLOW_TURNOVER:
        return "Slow Moving"
    if turnover_rate > FAST_TURNOVER:
        return "Fast Moving"
    return "Normal"


def _receipt_cost(receipt: InventoryReceipt) -> float:
    if receipt.total_cost is not None:
        return float(receipt.total_cost)
    return float(receipt.unit_cost or 0) * int(receipt.quantity_received or 0)


def product_flow(
    product_name: str,
    receipts: Sequence[InventoryReceipt],
    movements: Iterable[InventoryMovement],
    now: datetime,
) -> SupplyChainMetrics:
    total_received = sum(int(r.quantity_received or 0) for r in receipts)
    total_investment = sum(_receipt_cost(r) for r in receipts)

    total_sold = 0
    total_revenue = 0.0
    for movement in movements:
        quantity = abs(int(movement.quantity or 0))
        value = quantity * float(movement.unit_price or 0)
        if movement.movement_type == "sold":
            total_sold += quantity
            total_revenue += value
        elif movement.movement_type == "returned":
            total_sold -= quantity
            total_revenue -= value
    total_sold = max(total_sold, 0)
    total_revenue = max(total_revenue, 0.0)

    avg_unit_cost = total_investment / total_received if total_received > 0 else 0.0
    turnover_rate = total_sold / total_received if total_received > 0 else 0.0
    profit_margin = 0.0
    if total_revenue > 0:
        profit_margin = (total_revenue - avg_unit_cost * total_sold) / total_revenue * 100

    oldest = min((r.received_date for r in receipts), default=None)
    days_in_inventory = (now - oldest).days if oldest is not None else 0
    current_stock = total_received - total_sold

    return SupplyChainMetrics(
        product_name=product_name,
        total_received=total_received,
        total_sold=total_sold,
        current_stock=current_stock,
        days_in_inventory=max(days_in_inventory, 0),
        turnover_rate=round(turnover_rate, 4),
        avg_unit_cost=round(avg_unit_cost, 2),
        total_investment=round(total_investment, 2),
        total_revenue=round(total_revenue, 2),
        profit_margin=round(profit_margin, 2),
        status=supply_status(current_stock, turnover_rate),
    )


async def analyze_supply_chain(
    db: AsyncSession,
    user_id: uuid.UUID,
    product_name: str | None = None,
    now: datetime | None = None,
) -> SupplyChainReport:
    """Flow metrics for every product seen in receipts or sale movements."""
    now = now or datetime.utcnow()
    sources = await gather_sources(
        receipts=fetch_rows(
            db,
            select(InventoryReceipt)
            .where(InventoryReceipt.user_id == user_id)
            .order_by(InventoryReceipt.received_date),
            source="inventory_receipts",
        ),
        movements=fetch_rows(
            db,
            select(InventoryMovement).where(
                InventoryMovement.user_id == user_id,
                InventoryMovement.movement_type.in_(("sold", "returned")),
            ),
            source="inventory_movements",
        ),
    )

    receipts = group_by_product(sources["receipts"], lambda r: r.product_name)
    movements = group_by_product(sources["movements"], lambda m: m.product_name)

    # First spelling seen, receipts before movements
    display_names: dict[str, str] = {}
    for row in [*sources["receipts"], *sources["movements"]]:
        display_names.setdefault(normalize_product_name(row.product_name), row.product_name)

    wanted = normalize_product_name(product_name) if product_name else None
    metrics = [
        product_flow(display_names[key], receipts.get(key, []), movements.get(key, []), now)
        for key in sorted(display_names)
        if wanted is None or key == wanted
    ]
    logger.info("supply_chain.analyzed", user_id=str(user_id), products=len(metrics))
    return SupplyChainReport(metrics=metrics)


def generate_supply_chain_insights(report: SupplyChainReport) -> list[InsightDraft]:
    currency = get_settings().currency_symbol
    if not report.metrics:
        return [
            InsightDraft(
                "Getting Started",
                "getting_started",
                "🎯 Ready to grow your business? Start by recording inventory receipts and sales "
                "to get personalized insights!",
                "low",
            )
        ]

    drafts: list[InsightDraft] = []
    for m in report.metrics:
        name = m.product_name
        if m.current_stock <= 0 and m.total_sold > 0:
            drafts.append(
                InsightDraft(
                    name,
                    "supply_chain_stockout",
                    f"🚨 URGENT: {name} is out of stock! You've sold {m.total_sold} units. "
                    "Restock immediately to avoid lost sales.",
                    "high",
                )
            )
        elif 0 < m.current_stock <= 5 and m.turnover_rate > 0.3:
            drafts.append(
                InsightDraft(
                    name,
                    "supply_chain_low_stock",
                    f"⚠️ {name} is running low ({m.current_stock} units left). "
                    "Based on your sales pattern, consider reordering soon.",
                    "high",
                )
            )

        if m.turnover_rate > 0.7 and m.current_stock < 15:
            drafts.append(
                InsightDraft(
                    name,
                    "supply_chain_high_demand",
                    f"📈 {name} is in high demand! Consider increasing stock levels to maximize sales opportunities.",
                    "medium",
                )
            )

        if m.days_in_inventory > 30 and m.current_stock > 10 and m.turnover_rate < 0.3:
            drafts.append(
                InsightDraft(
                    name,
                    "supply_chain_slow_moving",
                    f"📦 {name} has been sitting for {m.days_in_inventory} days with low sales. "
                    "Consider promotional pricing or bundling strategies.",
                    "medium",
                )
            )

        if m.turnover_rate > 0.6 and m.profit_margin > 20 and m.total_revenue > 100:
            drafts.append(
                InsightDraft(
                    name,
                    "supply_chain_star_product",
                    f"⭐ {name} is a star performer! {m.profit_margin:.1f}% margin, "
                    f"{currency}{m.total_revenue:.0f} revenue. Focus on this product!",
                    "low",
                )
            )

        if 0 < m.profit_margin < 10 and m.total_revenue > 50:
            drafts.append(
                InsightDraft(
                    name,
                    "supply_chain_margin_warning",
                    f"💰 {name} has low profit margin ({m.profit_margin:.1f}%). "
                    "Review your pricing or negotiate better supplier costs.",
                    "medium",
                )
            )
    return drafts


async def refresh_supply_chain_insights(
    db: AsyncSession,
    user_id: uuid.UUID,
    now: datetime | None = None,
) -> list[InsightDraft]:
    report = await analyze_supply_chain(db, user_id, now=now)
    drafts = generate_supply_chain_insights(report)
    await replace_insights(db, user_id, SUPPLY_CHAIN_INSIGHT_TYPES, drafts)
    logger.info("supply_chain.insights_refreshed", user_id=str(user_id), insights=len(drafts))
    return drafts
