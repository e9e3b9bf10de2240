"""
Home dashboard headline figures.

  todays_sales          Σ effective_amount of today's sales
  monthly_goods_traded  Σ effective_amount of this month's sales
  current_stock_value   Σ stock × unit value over products in stock
                        (selling price preferred, weighted cost otherwise)
  monthly_profit        monthly_goods_traded − COGS, where COGS uses the
                        receipts → movements weighted cost only. A product
                        with no recorded cost contributes zero COGS; the
                        selling price is never used as a cost here.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, time, timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Product
from db.queries import fetch_rows, gather_sources
from inventory.costing import fetch_cost_sources, stock_value, unit_stock_value
from ledger.sales import SalesFilter, fetch_sales, filter_by_date_range, sum_effective_amount

logger = structlog.get_logger()


@dataclass(frozen=True)
class HomeMetrics:
    todays_sales: float = 0.0
    monthly_goods_traded: float = 0.0
    current_stock_value: float = 0.0
    monthly_profit: float = 0.0


async def calculate_home_metrics(db: AsyncSession, user_id: uuid.UUID, now: datetime | None = None) -> HomeMetrics:
    now = now or datetime.utcnow()
    start_of_day = datetime.combine(now.date(), time.min)
    end_of_day = start_of_day + timedelta(days=1) - timedelta(microseconds=1)
    start_of_month = datetime(now.year, now.month, 1)
    next_month = datetime(now.year + 1, 1, 1) if now.month == 12 else datetime(now.year, now.month + 1, 1)
    end_of_month = next_month - timedelta(microseconds=1)

    sources = await gather_sources(
        monthly_sales=fetch_sales(db, user_id, SalesFilter(start_date=start_of_month, end_date=end_of_month)),
        products=fetch_rows(
            db,
            select(Product).where(Product.user_id == user_id, Product.current_stock > 0),
            source="user_products",
        ),
        costs=fetch_cost_sources(db, user_id),
    )
    costs = sources["costs"]
    monthly_sales = [sale for sale in sources["monthly_sales"] if sale.effective_amount > 0]
    todays_sales = sum_effective_amount(filter_by_date_range(monthly_sales, start_of_day, end_of_day))
    monthly_goods_traded = sum_effective_amount(monthly_sales)

    current_stock_value = 0.0
    for product in sources["products"]:
        selling_price = float(product.selling_price) if product.selling_price is not None else None
        basis = costs.cost_for(product.product_name, selling_price)
        current_stock_value += stock_value(int(product.current_stock), unit_stock_value(selling_price, basis.average_cost))

    cogs = sum(
        costs.cost_for(sale.product_name).average_cost * sale.effective_quantity
        for sale in monthly_sales
        if sale.effective_quantity
    )

    metrics = HomeMetrics(
        todays_sales=round(todays_sales, 2),
        monthly_goods_traded=round(monthly_goods_traded, 2),
        current_stock_value=round(current_stock_value, 2),
        monthly_profit=round(monthly_goods_traded - cogs, 2),
    )
    logger.debug("home_metrics.computed", user_id=str(user_id), **metrics.__dict__)
    return metrics
