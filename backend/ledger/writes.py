"""
Ledger writes — record sales, reversals, stock receipts and expenses.

Each write follows the same workflow:
1. Insert the immutable ledger row(s)
2. Append the matching inventory movement
3. Update the cached product counter
4. Commit
5. Publish on the RefreshBus so every mounted aggregation recomputes

Agent: data-engineer
Skill: postgresql
"""

import uuid
from datetime import date, datetime

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import NotFoundError
from core.matching import names_match
from db.models import Expense, InventoryMovement, InventoryReceipt, Product, Sale, SaleReversal
from db.queries import fetch_rows
from events.bus import RefreshBus, get_refresh_bus
from ledger.profiles import require_business_profile
from ledger.sales import fetch_sale

logger = structlog.get_logger()

PAYMENT_METHODS = ("cash", "credit", "mobile_money", "card", "bank_transfer")


async def find_product(db: AsyncSession, user_id: uuid.UUID, product_name: str) -> Product | None:
    """Product whose normalized name matches product_name."""
    products = await fetch_rows(db, select(Product).where(Product.user_id == user_id), source="user_products")
    return next((p for p in products if names_match(p.product_name, product_name)), None)


async def record_sale(
    db: AsyncSession,
    user_id: uuid.UUID,
    product_name: str,
    amount: float,
    quantity: int = 1,
    payment_method: str = "cash",
    customer_phone: str | None = None,
    purchase_date: datetime | None = None,
    outstanding_credit_amount: float | None = None,
    has_partial_payment: bool = False,
    bus: RefreshBus | None = None,
) -> Sale:
    if amount < 0:
        raise ValueError("Sale amount cannot be negative")
    if quantity <= 0:
        raise ValueError("Sale quantity must be positive")

    profile = await require_business_profile(db, user_id)
    purchase_date = purchase_date or datetime.utcnow()

    sale = Sale(
        id=uuid.uuid4(),
        user_id=user_id,
        business_id=profile.id,
        product_name=product_name.strip(),
        customer_phone=customer_phone,
        amount=amount,
        quantity=quantity,
        payment_method=payment_method,
        purchase_date=purchase_date,
        outstanding_credit_amount=outstanding_credit_amount,
        has_partial_payment=has_partial_payment,
    )
    db.add(sale)
    db.add(
        InventoryMovement(
            user_id=user_id,
            product_name=sale.product_name,
            quantity=quantity,
            unit_price=amount / quantity,
            movement_type="sold",
            movement_date=purchase_date,
            sale_id=sale.id,
            notes=f"Sale to {customer_phone}" if customer_phone else None,
        )
    )

    product = await find_product(db, user_id, product_name)
    if product is not None:
        product.current_stock = int(product.current_stock or 0) - quantity
        product.last_sale_date = purchase_date
        product.total_sales_this_month = float(product.total_sales_this_month or 0) + amount

    await db.commit()
    logger.info(
        "ledger.sale_recorded",
        user_id=str(user_id),
        sale_id=str(sale.id),
        product=sale.product_name,
        amount=amount,
        quantity=quantity,
        payment_method=payment_method,
        tracked_product=product is not None,
    )
    (bus or get_refresh_bus()).publish()
    return sale


async def _next_reversal_receipt_number(db: AsyncSession, user_id: uuid.UUID, on: datetime) -> str:
    counts = await fetch_rows(
        db,
        select(func.count(SaleReversal.id)).where(SaleReversal.user_id == user_id),
        source="sale_reversals",
    )
    return f"REV-{on:%Y%m%d}-{(counts[0] if counts else 0) + 1:04d}"


async def reverse_sale(
    db: AsyncSession,
    user_id: uuid.UUID,
    sale_id: uuid.UUID,
    reason: str,
    amount: float | None = None,
    quantity: int | None = None,
    bus: RefreshBus | None = None,
) -> SaleReversal:
    """
    Append a reversal for a sale. Omitting amount/quantity reverses whatever
    is still effective; passing them records a partial reversal.
    """
    record = await fetch_sale(db, user_id, sale_id)
    if record is None:
        raise NotFoundError("Sale", str(sale_id))
    if record.is_reversed:
        raise ValueError(f"Sale {sale_id} is already reversed")
    if not reason or not reason.strip():
        raise ValueError("A reversal reason is required")

    reversed_amount = record.effective_amount if amount is None else amount
    reversed_quantity = record.effective_quantity if quantity is None else quantity
    if reversed_amount <= 0 or reversed_amount > record.effective_amount:
        raise ValueError(f"Reversal amount must be in (0, {record.effective_amount:.2f}]")
    if reversed_quantity < 0 or reversed_quantity > record.effective_quantity:
        raise ValueError(f"Reversal quantity must be in [0, {record.effective_quantity}]")

    now = datetime.utcnow()
    reversal = SaleReversal(
        user_id=user_id,
        original_sale_id=sale_id,
        reversed_amount=reversed_amount,
        reversed_quantity=reversed_quantity,
        reversal_reason=reason.strip(),
        reversal_receipt_number=await _next_reversal_receipt_number(db, user_id, now),
        reversal_date=now,
    )
    db.add(reversal)

    if reversed_quantity:
        db.add(
            InventoryMovement(
                user_id=user_id,
                product_name=record.product_name,
                quantity=reversed_quantity,
                unit_price=reversed_amount / reversed_quantity,
                movement_type="returned",
                movement_date=now,
                sale_id=sale_id,
                notes=f"Sale reversal: {reason.strip()}",
            )
        )

    product = await find_product(db, user_id, record.product_name)
    if product is not None:
        product.current_stock = int(product.current_stock or 0) + reversed_quantity
        product.total_sales_this_month = max(0.0, float(product.total_sales_this_month or 0) - reversed_amount)

    await db.commit()
    logger.info(
        "ledger.sale_reversed",
        user_id=str(user_id),
        sale_id=str(sale_id),
        reversed_amount=reversed_amount,
        reversed_quantity=reversed_quantity,
        receipt_number=reversal.reversal_receipt_number,
        full=reversed_amount >= record.effective_amount,
    )
    (bus or get_refresh_bus()).publish()
    return reversal


async def receive_stock(
    db: AsyncSession,
    user_id: uuid.UUID,
    product_name: str,
    quantity: int,
    unit_cost: float | None,
    total_cost: float | None = None,
    received_date: datetime | None = None,
    selling_price: float | None = None,
    batch_number: str | None = None,
    bus: RefreshBus | None = None,
) -> InventoryReceipt:
    """Record a purchase-in event; creates the product on first receipt."""
    if quantity <= 0:
        raise ValueError("Received quantity must be positive")

    received_date = received_date or datetime.utcnow()
    if total_cost is None and unit_cost is not None:
        total_cost = unit_cost * quantity

    receipt = InventoryReceipt(
        id=uuid.uuid4(),
        user_id=user_id,
        product_name=product_name.strip(),
        quantity_received=quantity,
        unit_cost=unit_cost,
        total_cost=total_cost,
        batch_number=batch_number,
        received_date=received_date,
    )
    db.add(receipt)
    db.add(
        InventoryMovement(
            user_id=user_id,
            product_name=receipt.product_name,
            quantity=quantity,
            unit_price=unit_cost,
            movement_type="received",
            movement_date=received_date,
            receipt_id=receipt.id,
        )
    )

    product = await find_product(db, user_id, product_name)
    if product is None:
        product = Product(
            user_id=user_id,
            product_name=receipt.product_name,
            current_stock=quantity,
            selling_price=selling_price,
        )
        db.add(product)
    else:
        product.current_stock = int(product.current_stock or 0) + quantity
        if selling_price is not None:
            product.selling_price = selling_price

    await db.commit()
    logger.info(
        "ledger.stock_received",
        user_id=str(user_id),
        receipt_id=str(receipt.id),
        product=receipt.product_name,
        quantity=quantity,
        total_cost=total_cost,
    )
    (bus or get_refresh_bus()).publish()
    return receipt


async def record_expense(
    db: AsyncSession,
    user_id: uuid.UUID,
    category: str,
    amount: float,
    expense_date: date | None = None,
    vendor_name: str | None = None,
    description: str | None = None,
    bus: RefreshBus | None = None,
) -> Expense:
    if amount < 0:
        raise ValueError("Expense amount cannot be negative")

    expense = Expense(
        user_id=user_id,
        category=category,
        amount=amount,
        expense_date=expense_date or date.today(),
        vendor_name=vendor_name,
        description=description,
    )
    db.add(expense)
    await db.commit()
    logger.info("ledger.expense_recorded", user_id=str(user_id), category=category, amount=amount)
    (bus or get_refresh_bus()).publish()
    return expense
