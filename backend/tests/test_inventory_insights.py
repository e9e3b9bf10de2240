"""
Tests for the Inventory Insight Generator.

Covers:
  - per-product rules: stock-outs, reorder warnings, demand, dead stock, trends
  - portfolio rules: stock-out share, concentration, growth, capital efficiency
  - nightly batch: replacement of earlier insights and per-user isolation
"""

import uuid
from datetime import timedelta

import pytest
from conftest import NOW, OTHER_USER_ID, USER_ID, LedgerFactory, create_profile
from sqlalchemy import select

from db.models import TradeInsight
from insights import inventory_insights
from insights.inventory_insights import (
    ProductDemand,
    generate_all_inventory_insights,
    generate_portfolio_insights,
    generate_product_insights,
)
from ledger.sales import SaleRecord


def demand(**overrides) -> ProductDemand:
    values = dict(
        product_name="Rice",
        current_stock=100,
        unit_cost=0.0,
        sales_count=0,
        recent_sales_count=0,
        total_revenue=0.0,
        days_since_last_sale=1,
    )
    values.update(overrides)
    return ProductDemand(**values)


def sale(product_name: str, amount: float) -> SaleRecord:
    return SaleRecord(
        id=uuid.uuid4(),
        user_id=USER_ID,
        business_id=uuid.uuid4(),
        product_name=product_name,
        customer_phone=None,
        amount=amount,
        quantity=1,
        payment_method="cash",
        purchase_date=NOW,
        outstanding_credit_amount=None,
        has_partial_payment=False,
        is_reversed=False,
        reversed_at=None,
        effective_amount=amount,
        effective_quantity=1,
    )


def types(drafts) -> list[str]:
    return [draft.insight_type for draft in drafts]


class TestProductDemand:
    def test_velocity_and_reorder_point(self):
        assert demand(sales_count=30).sales_velocity == 1.0
        assert demand(sales_count=30).reorder_point == 7
        assert demand(sales_count=3).reorder_point == 5
        assert demand(total_revenue=300.0).daily_revenue == 10.0


class TestProductInsights:
    def test_stockout_while_selling(self):
        drafts = generate_product_insights(demand(current_stock=0, sales_count=15, total_revenue=300.0))
        assert types(drafts) == ["stockout_alert", "smart_reorder"]
        assert "losing approximately ¢10 daily" in drafts[0].message
        assert drafts[1].priority == "high"
        assert drafts[1].message.startswith("📊 URGENT REORDER")

    def test_low_stock_counts_days_left(self):
        drafts = generate_product_insights(demand(current_stock=4, sales_count=30, total_revenue=120.0))
        assert types(drafts) == ["low_stock_warning", "smart_reorder"]
        assert "run out in 4 days" in drafts[0].message

    def test_star_performer_and_profit_driver(self):
        drafts = generate_product_insights(demand(sales_count=60, total_revenue=600.0))
        assert types(drafts) == ["star_performer", "profit_optimization"]
        assert "¢150/week" in drafts[0].message
        assert "averages ¢10 per sale" in drafts[1].message

    def test_high_demand_below_star_revenue(self):
        drafts = generate_product_insights(demand(sales_count=45, total_revenue=200.0))
        assert types(drafts) == ["high_demand"]
        assert "1.5 units daily" in drafts[0].message

    def test_dead_stock_values_at_weighted_cost(self):
        drafts = generate_product_insights(demand(current_stock=40, unit_cost=2.5, days_since_last_sale=999))
        assert types(drafts) == ["dead_stock"]
        assert "¢100 tied up" in drafts[0].message

    def test_slow_mover(self):
        drafts = generate_product_insights(demand(current_stock=15, sales_count=3, days_since_last_sale=20))
        assert types(drafts) == ["slow_moving"]

    def test_trending_up(self):
        drafts = generate_product_insights(demand(sales_count=5, recent_sales_count=4))
        assert types(drafts) == ["trending_up"]
        assert "4 of 5 sales" in drafts[0].message

    def test_quiet_product_has_no_insights(self):
        assert generate_product_insights(demand()) == []


class TestPortfolioInsights:
    def test_crisis_and_dangerous_concentration(self):
        drafts = generate_portfolio_insights(
            [demand(current_stock=0), demand(product_name="Oil", current_stock=0)],
            [sale("Rice", 900.0)],
        )
        assert types(drafts) == ["critical_stockouts", "dangerous_concentration"]
        assert "2/2 products out of stock" in drafts[0].message
        assert "¢18" in drafts[0].message

    def test_small_efficient_business(self):
        demands = [
            demand(current_stock=0),
            demand(product_name="Oil", current_stock=10, unit_cost=10.0),
            demand(product_name="Salt", current_stock=10, unit_cost=10.0),
            demand(product_name="Soap", current_stock=10, unit_cost=10.0),
        ]
        sales = [sale("Rice", 1200.0), sale("Oil", 1000.0), sale("Salt", 800.0)]

        drafts = generate_portfolio_insights(demands, sales)
        assert types(drafts) == [
            "stockout_warning",
            "expansion_opportunity",
            "excellent_efficiency",
            "market_success",
        ]
        assert "1 product is out of stock" in drafts[0].message
        assert "¢6000/month" in drafts[1].message
        assert drafts[3].message.startswith("👑 STRONG PERFORMER")

    def test_bloated_low_revenue_portfolio(self):
        demands = [demand(product_name=f"Item {i}", current_stock=10, unit_cost=10.0) for i in range(16)]
        drafts = generate_portfolio_insights(demands, [sale("Item 0", 100.0)])
        assert types(drafts) == [
            "dangerous_concentration",
            "product_bloat",
            "capital_efficiency",
            "revenue_building",
        ]

    def test_revenue_concentration(self):
        drafts = generate_portfolio_insights(
            [demand(), demand(product_name="Oil")],
            [sale("Rice", 600.0), sale("rice", 0.0), sale("Oil", 400.0)],
        )
        assert "revenue_concentration" in types(drafts)
        [focus] = [d for d in drafts if d.insight_type == "revenue_concentration"]
        assert focus.message.startswith("🎯 REVENUE FOCUS: Rice")
        assert "¢720" in focus.message


@pytest.mark.asyncio
class TestInventoryInsightRun:
    async def _stored(self, db, user_id):
        result = await db.execute(select(TradeInsight).where(TradeInsight.user_id == user_id))
        return sorted(insight.insight_type for insight in result.scalars().all())

    async def test_run_replaces_previous_insights(self, test_db, ledger):
        await ledger.product("Rice", current_stock=0)
        for days_ago in (1, 2, 3):
            await ledger.sale("Rice", 100.0, purchase_date=NOW - timedelta(days=days_ago))
        test_db.add(
            TradeInsight(user_id=USER_ID, product_name="Rice", insight_type="dead_stock", message="old", priority="high")
        )
        await test_db.commit()

        first = await generate_all_inventory_insights(test_db, now=NOW)
        second = await generate_all_inventory_insights(test_db, now=NOW)

        assert first == {"users_analyzed": 1, "insights_generated": 5, "errors": 0}
        assert second == first
        assert await self._stored(test_db, USER_ID) == [
            "critical_stockouts",
            "dangerous_concentration",
            "revenue_building",
            "stockout_alert",
            "trending_up",
        ]

    async def test_reversed_sales_do_not_count(self, test_db, ledger):
        await ledger.product("Rice", current_stock=0)
        reversed_sale = await ledger.sale("Rice", 100.0, purchase_date=NOW - timedelta(days=1))
        await ledger.reversal(reversed_sale, 100.0, quantity=1)

        await generate_all_inventory_insights(test_db, now=NOW)
        assert "stockout_alert" not in await self._stored(test_db, USER_ID)

    async def test_user_without_products_is_skipped(self, test_db, ledger):
        summary = await generate_all_inventory_insights(test_db, now=NOW)
        assert summary == {"users_analyzed": 1, "insights_generated": 0, "errors": 0}

    async def test_one_failing_user_does_not_stop_the_run(self, test_db, ledger, monkeypatch):
        other = LedgerFactory(test_db, await create_profile(test_db, OTHER_USER_ID, "Other"))
        await other.product("Oil", current_stock=0)
        await ledger.product("Rice", current_stock=0)

        real_refresh = inventory_insights.refresh_inventory_insights

        async def flaky(db, user_id, now=None):
            if user_id == USER_ID:
                raise RuntimeError("boom")
            return await real_refresh(db, user_id, now)

        monkeypatch.setattr(inventory_insights, "refresh_inventory_insights", flaky)
        summary = await generate_all_inventory_insights(test_db, now=NOW)

        assert summary["users_analyzed"] == 2
        assert summary["errors"] == 1
        assert await self._stored(test_db, OTHER_USER_ID) == ["critical_stockouts", "revenue_building"]
        assert await self._stored(test_db, USER_ID) == []
