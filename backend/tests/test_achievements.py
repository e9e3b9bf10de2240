"""
Tests for the Achievement Evaluator.

Covers:
  - one-way unlocks: a second run unlocks nothing new
  - unlock writes the progress snapshot and a trade insight
  - a bad criterion or unexpected failure is isolated to its (user, achievement)
  - reversed sales never count
  - lost unlock race is rolled back, not duplicated
"""

from datetime import date, timedelta

import pytest
from conftest import NOW, OTHER_USER_ID, LedgerFactory, create_profile
from sqlalchemy import select

from achievements.catalog import DEFAULT_ACHIEVEMENTS, seed_achievement_definitions
from achievements.criteria import (
    CRITERIA,
    CriterionContext,
    CriterionResult,
    evaluate_criterion,
    sales_streak,
)
from achievements.evaluator import Achievement, evaluate_achievements, record_unlock, unlock_message
from core.errors import CriterionError
from db.models import AchievementDefinition, AchievementUnlock, TradeInsight


async def define(db, code, criteria, title=None):
    row = AchievementDefinition(code=code, title=title or code.title(), description=f"{code} done", criteria=criteria)
    db.add(row)
    await db.commit()
    return row


async def unlocks(db, user_id=None):
    stmt = select(AchievementUnlock)
    if user_id is not None:
        stmt = stmt.where(AchievementUnlock.user_id == user_id)
    result = await db.execute(stmt)
    return list(result.scalars().all())


class TestCatalog:
    def test_every_criterion_type_has_a_default(self):
        assert {d["criteria"]["type"] for d in DEFAULT_ACHIEVEMENTS} == set(CRITERIA)

    @pytest.mark.asyncio
    async def test_seeding_is_idempotent(self, test_db):
        assert await seed_achievement_definitions(test_db) == len(DEFAULT_ACHIEVEMENTS)
        assert await seed_achievement_definitions(test_db) == 0


class TestEvaluationRun:
    @pytest.mark.asyncio
    async def test_first_sale_unlocks_once(self, test_db, ledger):
        await define(test_db, "first_sale", {"type": "first_sale"}, title="First Sale")
        await ledger.sale("Rice", 10.0)

        first = await evaluate_achievements(test_db, now=NOW)
        assert first.users_checked == 1
        assert first.achievements_unlocked == 1
        assert first.unlocked == [{"user_id": str(ledger.user_id), "code": "first_sale"}]

        second = await evaluate_achievements(test_db, now=NOW + timedelta(hours=1))
        assert second.achievements_unlocked == 0
        assert len(await unlocks(test_db)) == 1

    @pytest.mark.asyncio
    async def test_unlock_stores_progress_and_insight(self, test_db, ledger):
        await define(test_db, "busy", {"type": "monthly_sales", "count": 2}, title="Busy")
        await ledger.sale("Rice", 10.0)
        await ledger.sale("Oil", 10.0)

        await evaluate_achievements(test_db, now=NOW)
        [unlock] = await unlocks(test_db, ledger.user_id)
        assert unlock.progress_data == {"sales_this_month": 2, "target": 2.0}
        assert unlock.unlocked_at == NOW

        result = await test_db.execute(select(TradeInsight).where(TradeInsight.user_id == ledger.user_id))
        [insight] = result.scalars().all()
        assert insight.insight_type == "achievement_unlocked"
        assert insight.priority == "high"
        assert insight.message == "🎉 Achievement Unlocked: Busy! busy done"

    @pytest.mark.asyncio
    async def test_bad_criterion_does_not_stop_the_run(self, test_db, ledger):
        await define(test_db, "a_mystery", {"type": "mystery"})
        await define(test_db, "b_broken", {"type": "monthly_sales"})
        await define(test_db, "c_first", {"type": "first_sale"})
        await ledger.sale("Rice", 10.0)

        summary = await evaluate_achievements(test_db, now=NOW)
        assert summary.errors == 2
        assert [u["code"] for u in summary.unlocked] == ["c_first"]

    @pytest.mark.asyncio
    async def test_out_of_range_threshold_does_not_stop_the_run(self, test_db, ledger):
        await define(test_db, "a_streak", {"type": "consecutive_sales_days", "days": 1e10})
        await define(test_db, "b_first", {"type": "first_sale"})
        await ledger.sale("Rice", 10.0)

        summary = await evaluate_achievements(test_db, now=NOW)
        assert summary.errors == 1
        assert [u["code"] for u in summary.unlocked] == ["b_first"]

    @pytest.mark.asyncio
    async def test_unexpected_error_is_isolated(self, test_db, ledger, monkeypatch):
        async def explode(ctx, criteria):
            raise RuntimeError("boom")

        monkeypatch.setitem(CRITERIA, "monthly_sales", explode)
        await define(test_db, "a_busy", {"type": "monthly_sales", "count": 1})
        await define(test_db, "b_first", {"type": "first_sale"})
        await ledger.sale("Rice", 10.0)

        summary = await evaluate_achievements(test_db, now=NOW)
        assert summary.errors == 1
        assert [u["code"] for u in summary.unlocked] == ["b_first"]
        assert [u.achievement_code for u in await unlocks(test_db)] == ["b_first"]

    @pytest.mark.asyncio
    async def test_reversed_sales_do_not_count(self, test_db, ledger):
        await define(test_db, "first_sale", {"type": "first_sale"})
        sale = await ledger.sale("Rice", 10.0)
        await ledger.reversal(sale, 10.0, quantity=1)

        summary = await evaluate_achievements(test_db, now=NOW)
        assert summary.achievements_unlocked == 0

    @pytest.mark.asyncio
    async def test_each_business_evaluated_separately(self, test_db, ledger):
        other = LedgerFactory(test_db, await create_profile(test_db, OTHER_USER_ID, "Other"))
        await define(test_db, "first_sale", {"type": "first_sale"})
        await other.sale("Oil", 5.0)

        summary = await evaluate_achievements(test_db, now=NOW)
        assert summary.users_checked == 2
        assert summary.unlocked == [{"user_id": str(OTHER_USER_ID), "code": "first_sale"}]

    @pytest.mark.asyncio
    async def test_nothing_to_evaluate(self, test_db, ledger):
        summary = await evaluate_achievements(test_db, now=NOW)
        assert summary.users_checked == 0

    @pytest.mark.asyncio
    async def test_lost_race_is_rolled_back(self, test_db, ledger):
        await define(test_db, "first_sale", {"type": "first_sale"})
        test_db.add(AchievementUnlock(user_id=ledger.user_id, achievement_code="first_sale", unlocked_at=NOW))
        await test_db.commit()

        definition = Achievement("first_sale", "First Sale", "done", {"type": "first_sale"})
        recorded = await record_unlock(test_db, ledger.user_id, definition, CriterionResult(True), NOW)

        assert recorded is False
        assert len(await unlocks(test_db)) == 1
        result = await test_db.execute(select(TradeInsight))
        assert result.scalars().all() == []

    def test_unlock_message(self):
        definition = Achievement("x", "Ten Thousand Club", "¢10,000 in lifetime sales.", {})
        assert unlock_message(definition) == "🎉 Achievement Unlocked: Ten Thousand Club! ¢10,000 in lifetime sales."


class TestCriteria:
    @pytest.fixture
    def ctx(self, test_db, profile):
        return CriterionContext(db=test_db, user_id=profile.user_id, business_id=profile.id, now=NOW)

    @pytest.mark.asyncio
    async def test_malformed_criteria(self, ctx):
        with pytest.raises(CriterionError):
            await evaluate_criterion(ctx, "x", "first_sale")
        with pytest.raises(CriterionError, match="unknown criterion type"):
            await evaluate_criterion(ctx, "x", {"type": "nope"})
        with pytest.raises(CriterionError, match="numeric"):
            await evaluate_criterion(ctx, "x", {"type": "monthly_sales", "count": "lots"})

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "criteria",
        [
            {"type": "monthly_sales", "count": float("nan")},
            {"type": "weekly_profit", "amount": float("inf")},
            {"type": "total_profit", "amount": -5},
            {"type": "no_stockouts", "days": 1e10},
            {"type": "consecutive_sales_days", "days": 100000},
        ],
    )
    async def test_invalid_thresholds_rejected(self, ctx, criteria):
        with pytest.raises(CriterionError):
            await evaluate_criterion(ctx, "x", criteria)

    @pytest.mark.asyncio
    async def test_weekly_profit_window(self, ctx, ledger):
        await ledger.sale("Rice", 600.0, purchase_date=NOW - timedelta(days=2))
        await ledger.sale("Oil", 600.0, purchase_date=NOW - timedelta(days=10))
        result = await evaluate_criterion(ctx, "w", {"type": "weekly_profit", "amount": 1000})
        assert not result.unlocked
        assert result.progress["weekly_profit"] == 600.0

    @pytest.mark.asyncio
    async def test_customer_count(self, ctx, ledger):
        for phone in ("0244000001", "0244000002", "0244000002", None):
            await ledger.sale("Rice", 5.0, customer_phone=phone)
        result = await evaluate_criterion(ctx, "c", {"type": "customer_count", "count": 2})
        assert result.unlocked
        assert result.progress["unique_customers"] == 2

    @pytest.mark.asyncio
    async def test_no_stockouts(self, ctx, ledger):
        await ledger.product("Rice", current_stock=5, updated_at=NOW - timedelta(days=1))
        await ledger.product("Oil", current_stock=0, updated_at=NOW - timedelta(days=30))
        assert (await evaluate_criterion(ctx, "n", {"type": "no_stockouts", "days": 7})).unlocked

        await ledger.product("Milo", current_stock=0, updated_at=NOW - timedelta(days=2))
        result = await evaluate_criterion(ctx, "n", {"type": "no_stockouts", "days": 7})
        assert not result.unlocked
        assert result.progress["stockouts_in_period"] == 1

    @pytest.mark.asyncio
    async def test_consecutive_sales_days(self, ctx, ledger):
        for days_ago in range(3):
            await ledger.sale("Rice", 5.0, purchase_date=NOW - timedelta(days=days_ago))
        assert (await evaluate_criterion(ctx, "s", {"type": "consecutive_sales_days", "days": 3})).unlocked
        assert not (await evaluate_criterion(ctx, "s", {"type": "consecutive_sales_days", "days": 4})).unlocked

    @pytest.mark.asyncio
    async def test_product_sellouts_counts_distinct_restocks(self, ctx, ledger):
        await ledger.movement("Rice", 10, "received", movement_date=NOW - timedelta(days=3))
        await ledger.movement("rice", 5, "received", movement_date=NOW - timedelta(days=1))
        await ledger.movement("Oil", 5, "received", movement_date=NOW - timedelta(days=40))
        result = await evaluate_criterion(ctx, "p", {"type": "product_sellouts", "count": 2})
        assert not result.unlocked
        assert result.progress["recent_restocks"] == 1

    @pytest.mark.asyncio
    async def test_product_variety_and_value(self, ctx, ledger):
        await ledger.product("Rice", current_stock=5)
        await ledger.product("Oil", current_stock=0)
        variety = await evaluate_criterion(ctx, "v", {"type": "product_variety", "count": 1})
        value = await evaluate_criterion(ctx, "g", {"type": "value_increase"})
        assert variety.unlocked
        assert variety.progress["active_products"] == 1
        assert value.progress == {"total_stock": 5}


class TestSalesStreak:
    def test_streak_ending_today(self):
        today = date(2025, 6, 18)
        days = {today, today - timedelta(days=1), today - timedelta(days=2)}
        assert sales_streak(days, today) == 3

    def test_streak_may_end_yesterday(self):
        today = date(2025, 6, 18)
        assert sales_streak({today - timedelta(days=1), today - timedelta(days=2)}, today) == 2

    def test_gap_breaks_streak(self):
        today = date(2025, 6, 18)
        assert sales_streak({today, today - timedelta(days=2)}, today) == 1
        assert sales_streak(set(), today) == 0
