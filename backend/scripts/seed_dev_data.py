"""
Seed Dev Data — Creates a demo business with sales, stock and reminders.

Run: python scripts/seed_dev_data.py
"""

import asyncio
import random
import uuid
from datetime import date, datetime, time, timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from achievements.catalog import seed_achievement_definitions
from core.config import get_settings
from db.models import BusinessProfile, Expense, Reminder, SalesGoal
from db.session import Base
from events.bus import RefreshBus
from ledger.writes import receive_stock, record_sale

settings = get_settings()

# Must match api.deps.DEV_USER_ID
DEV_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")

# (name, unit cost, selling price, opening stock)
PRODUCTS = [
    ("Rice 5kg", 38.0, 55.0, 40),
    ("Cooking Oil 1L", 18.0, 25.0, 30),
    ("Sugar 1kg", 9.0, 14.0, 25),
    ("Milo 400g", 32.0, 45.0, 12),
    ("Sardines", 6.5, 10.0, 60),
    ("Tomato Paste", 3.0, 5.0, 4),
]
CUSTOMERS = ["0244000001", "0244000002", "0244000003", "0200000004", "0550000005", None]


async def seed_data():
    """Create demo data for development."""
    engine = create_async_engine(settings.database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    # Seeding runs outside any mounted view; keep it off the process bus
    bus = RefreshBus(name="seed")
    rng = random.Random(42)

    async with SessionLocal() as db:
        # ── Business ─────────────────────────────────────────
        db.add(
            BusinessProfile(
                user_id=DEV_USER_ID,
                business_name="Ama's Provisions",
                owner_name="Ama Mensah",
                phone_number="0244123456",
            )
        )
        await db.commit()

        # ── Stock ────────────────────────────────────────────
        now = datetime.utcnow()
        for name, unit_cost, selling_price, stock in PRODUCTS:
            await receive_stock(
                db,
                DEV_USER_ID,
                product_name=name,
                quantity=stock,
                unit_cost=unit_cost,
                selling_price=selling_price,
                received_date=now - timedelta(days=35),
                bus=bus,
            )

        # ── Sales over the last 30 days ──────────────────────
        for days_ago in range(30, -1, -1):
            for _ in range(rng.randint(0, 4)):
                name, _, selling_price, _ = rng.choice(PRODUCTS)
                quantity = rng.randint(1, 2)
                method = rng.choice(["cash", "cash", "mobile_money", "credit"])
                await record_sale(
                    db,
                    DEV_USER_ID,
                    product_name=name,
                    amount=selling_price * quantity,
                    quantity=quantity,
                    payment_method=method,
                    customer_phone=rng.choice(CUSTOMERS),
                    purchase_date=now - timedelta(days=days_ago, hours=rng.randint(0, 8)),
                    bus=bus,
                )

        # ── Expenses, goal, reminders ────────────────────────
        today = date.today()
        db.add(Expense(user_id=DEV_USER_ID, category="rent", amount=300.0, expense_date=today.replace(day=1)))
        db.add(Expense(user_id=DEV_USER_ID, category="transport", amount=45.0, expense_date=today))
        db.add(
            SalesGoal(
                user_id=DEV_USER_ID,
                goal_type="monthly",
                target_amount=3000.0,
                period_start=today.replace(day=1),
                period_end=(today.replace(day=28) + timedelta(days=4)).replace(day=1) - timedelta(days=1),
            )
        )
        db.add(
            Reminder(
                user_id=DEV_USER_ID,
                title="Pay supplier",
                description="Settle the rice invoice",
                reminder_date=today,
                reminder_time=time(17, 0),
                priority="high",
                category="payment",
            )
        )
        await db.commit()

        added = await seed_achievement_definitions(db)

    await engine.dispose()
    print(f"Seeded demo business {DEV_USER_ID} ({len(PRODUCTS)} products, {added} achievement definitions)")


if __name__ == "__main__":
    asyncio.run(seed_data())
