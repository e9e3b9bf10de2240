"""
Tests for the Sales Ledger Reader.

Covers:
  - reversal netting (full and partial) and effective amounts
  - reversed sales excluded by default
  - inclusive date bounds, ordering, user isolation
  - revenue reducers
"""

from datetime import timedelta

import pytest
from conftest import NOW, OTHER_USER_ID, LedgerFactory, create_profile

from ledger.sales import (
    SalesFilter,
    fetch_sale,
    fetch_sales,
    filter_by_date_range,
    sum_effective_amount,
    sum_effective_quantity,
)


class TestReversalNetting:
    @pytest.mark.asyncio
    async def test_partial_reversal_reduces_effective_amount(self, test_db, ledger):
        sale = await ledger.sale("Rice", 100.0, quantity=4)
        await ledger.reversal(sale, 30.0, quantity=1)

        [record] = await fetch_sales(test_db, ledger.user_id)
        assert record.effective_amount == 70.0
        assert record.effective_quantity == 3
        assert not record.is_reversed
        assert record.effective_amount <= record.amount

    @pytest.mark.asyncio
    async def test_fully_reversed_sale_is_excluded_by_default(self, test_db, ledger):
        sale = await ledger.sale("Rice", 100.0)
        await ledger.sale("Oil", 25.0)
        await ledger.reversal(sale, 100.0, quantity=1)

        rows = await fetch_sales(test_db, ledger.user_id)
        assert [r.product_name for r in rows] == ["Oil"]

    @pytest.mark.asyncio
    async def test_reversed_sale_contributes_zero_when_included(self, test_db, ledger):
        sale = await ledger.sale("Rice", 100.0, quantity=2)
        await ledger.reversal(sale, 60.0, quantity=1)
        await ledger.reversal(sale, 40.0, quantity=1)

        [record] = await fetch_sales(test_db, ledger.user_id, SalesFilter(include_reversed=True))
        assert record.is_reversed
        assert record.reversed_at is not None
        assert record.effective_amount == 0.0
        assert record.effective_quantity == 0

    @pytest.mark.asyncio
    async def test_multiple_reversals_produce_no_duplicates(self, test_db, ledger):
        sale = await ledger.sale("Rice", 100.0, quantity=5)
        await ledger.reversal(sale, 10.0, quantity=1)
        await ledger.reversal(sale, 10.0, quantity=1)

        rows = await fetch_sales(test_db, ledger.user_id)
        assert len(rows) == 1
        assert rows[0].effective_amount == 80.0


class TestFilters:
    @pytest.mark.asyncio
    async def test_date_bounds_are_inclusive(self, test_db, ledger):
        start, end = NOW - timedelta(days=1), NOW
        await ledger.sale("A", 1.0, purchase_date=start)
        await ledger.sale("B", 2.0, purchase_date=end)
        await ledger.sale("C", 4.0, purchase_date=end + timedelta(seconds=1))

        rows = await fetch_sales(test_db, ledger.user_id, SalesFilter(start_date=start, end_date=end))
        assert sorted(r.product_name for r in rows) == ["A", "B"]

    @pytest.mark.asyncio
    async def test_newest_first_and_limit(self, test_db, ledger):
        for days in (3, 1, 2):
            await ledger.sale(f"day-{days}", 1.0, purchase_date=NOW - timedelta(days=days))

        rows = await fetch_sales(test_db, ledger.user_id, SalesFilter(limit=2))
        assert [r.product_name for r in rows] == ["day-1", "day-2"]

    @pytest.mark.asyncio
    async def test_only_requesting_users_rows(self, test_db, ledger):
        other = LedgerFactory(test_db, await create_profile(test_db, OTHER_USER_ID, "Other"))
        await ledger.sale("Mine", 10.0)
        await other.sale("Theirs", 99.0)

        rows = await fetch_sales(test_db, ledger.user_id)
        assert [r.product_name for r in rows] == ["Mine"]

    @pytest.mark.asyncio
    async def test_fetch_single_sale(self, test_db, ledger):
        sale = await ledger.sale("Rice", 50.0)
        record = await fetch_sale(test_db, ledger.user_id, sale.id)
        assert record.id == sale.id
        assert await fetch_sale(test_db, OTHER_USER_ID, sale.id) is None


class TestReducers:
    @pytest.mark.asyncio
    async def test_sum_effective_amount_is_idempotent(self, test_db, ledger):
        sale = await ledger.sale("Rice", 100.0, quantity=2)
        await ledger.sale("Oil", 50.0, quantity=1)
        await ledger.reversal(sale, 25.0)

        rows = await fetch_sales(test_db, ledger.user_id)
        assert sum_effective_amount(rows) == 125.0
        assert sum_effective_amount(rows) == sum(r.effective_amount for r in rows)
        assert sum_effective_quantity(rows) == 3

    def test_reducers_on_empty_input(self):
        assert sum_effective_amount([]) == 0
        assert sum_effective_quantity([]) == 0

    @pytest.mark.asyncio
    async def test_filter_by_date_range(self, test_db, ledger):
        await ledger.sale("old", 1.0, purchase_date=NOW - timedelta(days=10))
        await ledger.sale("new", 1.0, purchase_date=NOW)
        rows = await fetch_sales(test_db, ledger.user_id)

        recent = filter_by_date_range(rows, NOW - timedelta(days=1), NOW)
        assert [r.product_name for r in recent] == ["new"]


class TestCredit:
    @pytest.mark.asyncio
    async def test_outstanding_credit_capped_by_effective_amount(self, test_db, ledger):
        sale = await ledger.sale("Rice", 100.0, payment_method="credit", outstanding_credit_amount=100.0)
        await ledger.reversal(sale, 40.0)

        [record] = await fetch_sales(test_db, ledger.user_id)
        assert record.is_credit
        assert record.outstanding_credit == 60.0

    @pytest.mark.asyncio
    async def test_stored_outstanding_above_sale_amount_is_capped(self, test_db, ledger):
        await ledger.sale("Rice", 50.0, payment_method="credit", outstanding_credit_amount=80.0)

        [record] = await fetch_sales(test_db, ledger.user_id)
        assert record.outstanding_credit_amount == 80.0
        assert record.outstanding_credit == 50.0

    @pytest.mark.asyncio
    async def test_unset_outstanding_defaults_to_effective_amount(self, test_db, ledger):
        await ledger.sale("Rice", 80.0, payment_method="credit")
        [record] = await fetch_sales(test_db, ledger.user_id)
        assert record.outstanding_credit == 80.0
