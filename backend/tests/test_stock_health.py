"""
Tests for the Stock Health Classifier and the product-name join.

Covers:
  - status boundaries at 0, 5 and 20 units
  - slow-moving requires zero recent sales
  - name normalization used to correlate sales, receipts and products
"""

import pytest

from core.matching import group_by_product, names_match, normalize_product_name
from inventory.stock_health import (
    LOW_STOCK_THRESHOLD,
    SLOW_STOCK_THRESHOLD,
    STATUS_HEALTHY,
    STATUS_LOW,
    STATUS_OUT,
    STATUS_SLOW,
    classify,
)


class TestClassifyBoundaries:
    @pytest.mark.parametrize(
        "stock,sales,expected",
        [
            (0, 0, STATUS_OUT),
            (0, 10, STATUS_OUT),
            (1, 0, STATUS_LOW),
            (4, 3, STATUS_LOW),
            (5, 0, STATUS_HEALTHY),
            (20, 0, STATUS_HEALTHY),
            (21, 0, STATUS_SLOW),
            (21, 1, STATUS_HEALTHY),
            (100, 0, STATUS_SLOW),
        ],
    )
    def test_status(self, stock, sales, expected):
        assert classify(stock, sales).status == expected

    def test_thresholds_are_fixed(self):
        assert LOW_STOCK_THRESHOLD == 5
        assert SLOW_STOCK_THRESHOLD == 20

    def test_negative_stock_is_out(self):
        assert classify(-3, 0).status == STATUS_OUT


class TestRecommendations:
    def test_out_of_stock_recommends_reorder(self):
        health = classify(0, 0, "Rice 5kg")
        assert "reorder Rice 5kg immediately" in health.recommendation

    def test_low_stock_reports_remaining_units(self):
        assert "only 3 Sugar remaining" in classify(3, 1, "Sugar").recommendation

    def test_slow_stock_suggests_promotion(self):
        assert "consider promotion" in classify(50, 0, "Milo").recommendation

    def test_healthy(self):
        assert "healthy" in classify(10, 2, "Oil").recommendation


class TestProductNameJoin:
    def test_normalization_is_case_and_whitespace_insensitive(self):
        assert normalize_product_name("  Cooking   OIL 1L ") == "cooking oil 1l"

    def test_none_and_blank_normalize_to_empty(self):
        assert normalize_product_name(None) == ""
        assert normalize_product_name("   ") == ""

    def test_names_match_exactly_after_normalization(self):
        assert names_match("Rice 5kg", "rice  5KG")
        assert not names_match("Rice", "Rice 5kg")

    def test_blank_names_never_match(self):
        assert not names_match("", "")
        assert not names_match(None, None)

    def test_group_by_product_drops_unnamed_rows(self):
        rows = [{"name": "Rice"}, {"name": "RICE "}, {"name": None}, {"name": "Oil"}]
        grouped = group_by_product(rows, lambda r: r["name"])
        assert set(grouped) == {"rice", "oil"}
        assert len(grouped["rice"]) == 2
