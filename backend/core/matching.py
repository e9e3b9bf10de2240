"""
Product-name join.

Sales, receipts, movements and the product table share no foreign key; they
are correlated by the product name text. Every component goes through the
helpers here so the join key is normalized the same way everywhere.

Policy: exact match on the normalized name (trimmed, inner whitespace
collapsed, casefolded). Substring matching is not supported.
"""

import re
from collections import defaultdict
from collections.abc import Callable, Iterable
from typing import TypeVar

T = TypeVar("T")

_WHITESPACE = re.compile(r"\s+")


def normalize_product_name(name: str | None) -> str:
    """Canonical join key for a product name. None and blanks map to ''."""
    if not name:
        return ""
    return _WHITESPACE.sub(" ", name.strip()).casefold()


def names_match(left: str | None, right: str | None) -> bool:
    key = normalize_product_name(left)
    return bool(key) and key == normalize_product_name(right)


def group_by_product(rows: Iterable[T], name_of: Callable[[T], str | None]) -> dict[str, list[T]]:
    """Bucket rows by normalized product name. Rows without a name are dropped."""
    grouped: dict[str, list[T]] = defaultdict(list)
    for row in rows:
        key = normalize_product_name(name_of(row))
        if key:
            grouped[key].append(row)
    return dict(grouped)
