"""
Inventory Insight Generator — per-product and portfolio notices.

Runs nightly for every business. Works over the last 30 days of effective
sales (reversed sales excluded), the product table and the weighted-average
cost of each product.

Per product:
  sales_velocity       sales in the window / 30 (sales per day)
  reorder_point        max(ceil(velocity × 7), 5), a week of demand
  days_since_last_sale 999 when the product has not sold in the window

Money estimates use recorded figures: a stocked-out product loses its own
average daily revenue, and tied-up capital is stock × weighted-average cost.

Each run replaces the user's previous insights of the types generated here.

Agent: data-engineer
Skill: postgresql
"""

import math
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from core.matching import group_by_product, normalize_product_name
from db.models import Product
from db.queries import fetch_rows, gather_sources
from insights.trade_insights import InsightDraft, replace_insights
from inventory.costing import CostIndex, fetch_cost_sources
from ledger.profiles import get_business_profile, list_profiled_user_ids
from ledger.sales import SaleRecord, SalesFilter, fetch_sales, sum_effective_amount

logger = structlog.get_logger()

WINDOW_DAYS = 30
REORDER_COVER_DAYS = 7
MIN_REORDER_POINT = 5
REORDER_ORDER_DAYS = 21
NO_RECENT_SALE_DAYS = 999

PRODUCT_INSIGHT_TYPES = (
    "stockout_alert",
    "low_stock_warning",
    "star_performer",
    "high_demand",
    "dead_stock",
    "slow_moving",
    "profit_optimization",
    "smart_reorder",
    "trending_up",
)

PORTFOLIO_INSIGHT_TYPES = (
    "critical_stockouts",
    "stockout_warning",
    "dangerous_concentration",
    "revenue_concentration",
    "expansion_opportunity",
    "product_bloat",
    "capital_efficiency",
    "excellent_efficiency",
    "market_success",
    "revenue_building",
)

INVENTORY_INSIGHT_TYPES = PRODUCT_INSIGHT_TYPES + PORTFOLIO_INSIGHT_TYPES


@dataclass(frozen=True)
class ProductDemand:
    product_name: str
    current_stock: int
    unit_cost: float
    sales_count: int
    recent_sales_count: int
    total_revenue: float
    days_since_last_sale: int

    @property
    def sales_velocity(self) -> float:
        return self.sales_count / WINDOW_DAYS

    @property
    def reorder_point(self) -> int:
        return max(math.ceil(self.sales_velocity * REORDER_COVER_DAYS), MIN_REORDER_POINT)

    @property
    def daily_revenue(self) -> float:
        return self.total_revenue / WINDOW_DAYS


def measure_demand(
    product: Product,
    sales: Sequence[SaleRecord],
    costs: CostIndex,
    now: datetime,
) -> ProductDemand:
    selling_price = float(product.selling_price) if product.selling_price is not None else None
    last_sale = max((sale.purchase_date for sale in sales), default=None)
    week_ago = now - timedelta(days=7)
    return ProductDemand(
        product_name=product.product_name,
        current_stock=int(product.current_stock or 0),
        unit_cost=costs.cost_for(product.product_name, selling_price).average_cost,
        sales_count=len(sales),
        recent_sales_count=sum(1 for sale in sales if sale.purchase_date >= week_ago),
        total_revenue=sum_effective_amount(sales),
        days_since_last_sale=(now - last_sale).days if last_sale else NO_RECENT_SALE_DAYS,
    )


def generate_product_insights(demand: ProductDemand, currency: str = "¢") -> list[InsightDraft]:
    name = demand.product_name
    stock = demand.current_stock
    velocity = demand.sales_velocity
    drafts: list[InsightDraft] = []

    def add(insight_type: str, message: str, priority: str) -> None:
        drafts.append(InsightDraft(name, insight_type, message, priority))

    if stock <= 0 and velocity > 0:
        add(
            "stockout_alert",
            f"🚨 URGENT: {name} is completely out of stock! You're losing approximately "
            f"{currency}{demand.daily_revenue:.0f} daily. Restock immediately to avoid further losses.",
            "high",
        )
    elif 0 < stock <= demand.reorder_point and velocity > 0:
        days_left = math.ceil(stock / velocity)
        add(
            "low_stock_warning",
            f"⚠️ CRITICAL: {name} will run out in {days_left} day{'' if days_left == 1 else 's'} "
            f"at current sales rate ({velocity:.1f}/day). Order now!",
            "high",
        )

    if velocity > 1:
        weekly_revenue = demand.total_revenue / 4
        if weekly_revenue > 100:
            add(
                "star_performer",
                f"⭐ TOP EARNER: {name} generates {currency}{weekly_revenue:.0f}/week! "
                "This is your business cornerstone, never let it stock out.",
                "medium",
            )
        else:
            add(
                "high_demand",
                f"🔥 HIGH DEMAND: {name} sells {velocity:.1f} units daily. "
                "Consider bulk purchasing for better margins.",
                "medium",
            )

    if stock > 30 and velocity < 0.2 and demand.days_since_last_sale > 21:
        tied_up = stock * demand.unit_cost
        add(
            "dead_stock",
            f"💀 DEAD STOCK: {name} ({stock} units) hasn't sold in {demand.days_since_last_sale} days. "
            f"{currency}{tied_up:.0f} tied up! Consider clearance sale.",
            "high",
        )
    elif stock > 10 and velocity < 0.3 and demand.days_since_last_sale > 14:
        add(
            "slow_moving",
            f"🐌 SLOW MOVER: {name} moving slowly ({demand.days_since_last_sale} days since last sale). "
            "Bundle with fast movers or offer discounts.",
            "medium",
        )

    if demand.total_revenue > 300 and demand.sales_count > 10:
        average_sale = demand.total_revenue / demand.sales_count
        add(
            "profit_optimization",
            f"💎 PROFIT DRIVER: {name} averages {currency}{average_sale:.0f} per sale with "
            f"{demand.sales_count} transactions. Focus marketing efforts here!",
            "low",
        )

    if stock <= demand.reorder_point * 2 and velocity > 0.3:
        days_supply = max(stock, 0) / velocity
        optimal_order = math.ceil(velocity * REORDER_ORDER_DAYS)
        urgent = days_supply <= 5
        add(
            "smart_reorder",
            f"📊 {'URGENT' if urgent else 'RECOMMENDED'} REORDER: {name} needs restocking. "
            f"Current supply: {days_supply:.1f} days. Optimal order: {optimal_order} units for 3-week coverage.",
            "high" if urgent else "medium",
        )

    if demand.sales_count and demand.recent_sales_count > demand.sales_count * 0.6:
        add(
            "trending_up",
            f"📈 TRENDING: {name} sales accelerating! {demand.recent_sales_count} of {demand.sales_count} "
            "sales in past week. Stock up before demand peaks!",
            "medium",
        )

    return drafts


def generate_portfolio_insights(
    demands: Sequence[ProductDemand],
    sales: Sequence[SaleRecord],
    currency: str = "¢",
) -> list[InsightDraft]:
    drafts: list[InsightDraft] = []
    total_products = len(demands)
    stockouts = sum(1 for d in demands if d.current_stock <= 0)
    capital = sum(max(d.current_stock, 0) * d.unit_cost for d in demands)
    revenue = sum_effective_amount(sales)
    avg_daily = revenue / WINDOW_DAYS
    efficiency = revenue / capital if capital > 0 else None

    if total_products and stockouts >= total_products * 0.5:
        missed = stockouts * avg_daily * 0.3
        drafts.append(
            InsightDraft(
                "Business Health",
                "critical_stockouts",
                f"🚨 BUSINESS CRISIS: {stockouts}/{total_products} products out of stock! "
                f"Estimated daily loss: {currency}{missed:.0f}. Immediate restocking required!",
                "high",
            )
        )
    elif stockouts:
        drafts.append(
            InsightDraft(
                "Inventory Management",
                "stockout_warning",
                f"⚠️ ATTENTION: {stockouts} product{'s are' if stockouts > 1 else ' is'} out of stock. "
                "Customer dissatisfaction risk increasing. Restock priority items.",
                "high",
            )
        )

    by_product = group_by_product(sales, lambda s: s.product_name)
    if revenue > 0 and by_product:
        top_key = max(by_product, key=lambda key: sum_effective_amount(by_product[key]))
        top_name = by_product[top_key][0].product_name
        top_revenue = sum_effective_amount(by_product[top_key])
        share = top_revenue / revenue
        if share > 0.7:
            drafts.append(
                InsightDraft(
                    "Business Risk",
                    "dangerous_concentration",
                    f"⚡ HIGH RISK: {top_name} generates {share * 100:.0f}% of revenue "
                    f"({currency}{top_revenue:.0f}). Business extremely vulnerable, diversify URGENTLY!",
                    "high",
                )
            )
        elif share > 0.4:
            drafts.append(
                InsightDraft(
                    "Revenue Strategy",
                    "revenue_concentration",
                    f"🎯 REVENUE FOCUS: {top_name} is your cash cow ({share * 100:.0f}% of revenue). "
                    f"Projected monthly: {currency}{top_revenue * 1.2:.0f}. Never let it stock out!",
                    "medium",
                )
            )

    if total_products < 5 and avg_daily > 30:
        drafts.append(
            InsightDraft(
                "Growth Strategy",
                "expansion_opportunity",
                f"🚀 SCALE UP: Only {total_products} products generating {currency}{revenue:.0f}/month. "
                f"Add 3-5 complementary items to reach {currency}{avg_daily * 2 * WINDOW_DAYS:.0f}/month!",
                "medium",
            )
        )
    elif total_products > 15 and efficiency is not None and efficiency < 2:
        drafts.append(
            InsightDraft(
                "Efficiency Warning",
                "product_bloat",
                f"📊 FOCUS NEEDED: {total_products} products with low turnover ({efficiency:.1f}x). "
                "Cut underperformers and focus on winners for better profits.",
                "medium",
            )
        )

    if efficiency is not None and efficiency < 0.5:
        drafts.append(
            InsightDraft(
                "Financial Health",
                "capital_efficiency",
                f"💰 CAPITAL ALERT: {currency}{capital:.0f} tied in inventory generating only "
                f"{currency}{revenue:.0f} revenue. Efficiency: {efficiency * 100:.0f}%. Optimize stock levels!",
                "medium",
            )
        )
    elif efficiency is not None and efficiency > 2:
        drafts.append(
            InsightDraft(
                "Business Success",
                "excellent_efficiency",
                f"🏆 EXCELLENT PERFORMANCE: Capital efficiency at {efficiency * 100:.0f}%! Your "
                f"{currency}{capital:.0f} investment generating {currency}{revenue:.0f}. Keep this up!",
                "low",
            )
        )

    if revenue > 2000:
        position = "MARKET LEADER" if revenue > 5000 else "STRONG PERFORMER"
        drafts.append(
            InsightDraft(
                "Market Position",
                "market_success",
                f"👑 {position}: {currency}{revenue:.0f} monthly revenue puts you in top tier! "
                "Consider premium products or market expansion.",
                "low",
            )
        )
    elif revenue < 500 and total_products:
        drafts.append(
            InsightDraft(
                "Growth Priority",
                "revenue_building",
                f"🌱 GROWTH MODE: {currency}{revenue:.0f} monthly revenue. Focus on customer acquisition "
                f"and product promotion to reach {currency}1000+ target.",
                "medium",
            )
        )

    return drafts


async def refresh_inventory_insights(
    db: AsyncSession,
    user_id: uuid.UUID,
    now: datetime | None = None,
) -> list[InsightDraft]:
    """
    Regenerate one user's inventory insights.

    Users without a business profile or without products are skipped and keep
    whatever insights they had.
    """
    now = now or datetime.utcnow()
    profile = await get_business_profile(db, user_id)
    if profile is None:
        return []

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
            SalesFilter(start_date=now - timedelta(days=WINDOW_DAYS), end_date=now, business_id=profile.id),
        ),
    )
    if not sources["products"]:
        return []

    currency = get_settings().currency_symbol
    sales_by_product = group_by_product(sources["sales"], lambda s: s.product_name)
    demands = [
        measure_demand(
            product,
            sales_by_product.get(normalize_product_name(product.product_name), []),
            sources["costs"],
            now,
        )
        for product in sources["products"]
    ]

    drafts = [draft for demand in demands for draft in generate_product_insights(demand, currency)]
    drafts.extend(generate_portfolio_insights(demands, sources["sales"], currency))
    await replace_insights(db, user_id, INVENTORY_INSIGHT_TYPES, drafts)
    return drafts


async def generate_all_inventory_insights(db: AsyncSession, now: datetime | None = None) -> dict[str, int]:
    """Refresh inventory insights for every business; one user's failure never stops the rest."""
    user_ids = await list_profiled_user_ids(db)
    generated = errors = 0
    for user_id in user_ids:
        try:
            drafts = await refresh_inventory_insights(db, user_id, now)
        except Exception as exc:  # noqa: BLE001
            await db.rollback()
            errors += 1
            logger.warning("inventory_insights.user_failed", user_id=str(user_id), error=str(exc), exc_info=True)
            continue
        generated += len(drafts)
        logger.info("inventory_insights.user_complete", user_id=str(user_id), insights=len(drafts))

    logger.info(
        "inventory_insights.run_complete",
        users_analyzed=len(user_ids),
        insights_generated=generated,
        errors=errors,
    )
    return {"users_analyzed": len(user_ids), "insights_generated": generated, "errors": errors}
