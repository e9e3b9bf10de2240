"""
Stock counter reconciliation.

user_products.current_stock is a running counter maintained by every sale and
receipt; the inventory_movements ledger is the source of truth. This module
recomputes stock from the ledger, reports products whose counter drifted and,
on request, rewrites the counter.

Ledger sign convention:
  received, returned          → +|quantity|
  sold, damaged, expired      → -|quantity|
  adjusted                    → quantity as recorded (signed)
"""

import uuid
from dataclasses import dataclass

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.matching import group_by_product, normalize_product_name
from db.models import InventoryMovement, Product
from db.queries import fetch_rows, gather_sources

logger = structlog.get_logger()

INBOUND_TYPES = frozenset({"received", "returned"})
OUTBOUND_TYPES = frozenset({"sold", "damaged", "expired"})


@dataclass(frozen=True)
class StockDrift:
    product_id: uuid.UUID
    product_name: str
    counter_stock: int
    ledger_stock: int

    @property
    def drift(self) -> int:
        return self.counter_stock - self.ledger_stock


def ledger_delta(movement: InventoryMovement) -> int:
    quantity = int(movement.quantity or 0)
    if movement.movement_type in INBOUND_TYPES:
        return abs(quantity)
    if movement.movement_type in OUTBOUND_TYPES:
        return -abs(quantity)
    return quantity


def ledger_stock(movements: list[InventoryMovement]) -> int:
    return sum(ledger_delta(m) for m in movements)


async def reconcile_stock(db: AsyncSession, user_id: uuid.UUID, apply: bool = False) -> list[StockDrift]:
    """
    Compare every product's counter with its movement ledger.

    Returns drifted products only. With apply=True the counters are rewritten
    to the ledger value and the session is committed.
    """
    sources = await gather_sources(
        products=fetch_rows(db, select(Product).where(Product.user_id == user_id), source="user_products"),
        movements=fetch_rows(
            db, select(InventoryMovement).where(InventoryMovement.user_id == user_id), source="inventory_movements"
        ),
    )
    movements_by_product = group_by_product(sources["movements"], lambda m: m.product_name)

    drifted: list[StockDrift] = []
    for product in sources["products"]:
        movements = movements_by_product.get(normalize_product_name(product.product_name), [])
        expected = ledger_stock(movements)
        counter = int(product.current_stock or 0)
        if counter == expected:
            continue
        drifted.append(StockDrift(product.id, product.product_name, counter, expected))
        if apply:
            product.current_stock = expected

    if apply and drifted:
        await db.commit()

    logger.info(
        "inventory.reconciled",
        user_id=str(user_id),
        products=len(sources["products"]),
        drifted=len(drifted),
        applied=apply,
    )
    return drifted
