"""
Test Configuration — Fixtures for async DB, test client, and ledger data.

Each test gets its own in-memory SQLite database (StaticPool keeps every
session on the one connection that holds it), so app code can commit freely.
"""

import uuid
from datetime import date, datetime

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from api.deps import get_current_user, get_db, get_refresh_bus
from api.main import app
from db.models import (
    BusinessProfile,
    Expense,
    InventoryMovement,
    InventoryReceipt,
    Product,
    Sale,
    SaleReversal,
)
from db.session import Base, make_session_factory
from events.bus import RefreshBus

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
OTHER_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")

# Wednesday
NOW = datetime(2025, 6, 18, 12, 0)


@pytest.fixture
async def test_engine():
    """Fresh in-memory database with all tables."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_db(test_engine):
    async with make_session_factory(test_engine)() as session:
        yield session


@pytest.fixture
def bus():
    """Isolated refresh bus per test."""
    return RefreshBus(name="test")


@pytest.fixture
def mock_user():
    """Mock authenticated user."""
    return {"sub": str(USER_ID), "email": "owner@tradedesk.test"}


@pytest.fixture
async def client(test_db, mock_user, bus):
    """Create an async test client with dependency overrides."""

    async def override_get_db():
        yield test_db

    def override_get_current_user():
        return mock_user

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_refresh_bus] = lambda: bus

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


class LedgerFactory:
    """Inserts ledger rows directly, bypassing the write workflow."""

    def __init__(self, db: AsyncSession, profile: BusinessProfile):
        self.db = db
        self.profile = profile
        self.user_id = profile.user_id

    async def product(self, name, current_stock=0, selling_price=None, updated_at=None, **extra):
        product = Product(
            user_id=self.user_id,
            product_name=name,
            current_stock=current_stock,
            selling_price=selling_price,
            **extra,
        )
        if updated_at is not None:
            product.updated_at = updated_at
        self.db.add(product)
        await self.db.commit()
        return product

    async def sale(self, product_name, amount, quantity=1, purchase_date=NOW, **extra):
        sale = Sale(
            user_id=self.user_id,
            business_id=self.profile.id,
            product_name=product_name,
            amount=amount,
            quantity=quantity,
            purchase_date=purchase_date,
            **extra,
        )
        self.db.add(sale)
        await self.db.commit()
        return sale

    async def reversal(self, sale, amount, quantity=0, reversal_date=NOW):
        reversal = SaleReversal(
            user_id=self.user_id,
            original_sale_id=sale.id,
            reversed_amount=amount,
            reversed_quantity=quantity,
            reversal_reason="test",
            reversal_receipt_number=f"REV-TEST-{uuid.uuid4().hex[:6]}",
            reversal_date=reversal_date,
        )
        self.db.add(reversal)
        await self.db.commit()
        return reversal

    async def receipt(self, product_name, quantity, unit_cost=None, total_cost=None, received_date=NOW):
        receipt = InventoryReceipt(
            user_id=self.user_id,
            product_name=product_name,
            quantity_received=quantity,
            unit_cost=unit_cost,
            total_cost=total_cost,
            received_date=received_date,
        )
        self.db.add(receipt)
        await self.db.commit()
        return receipt

    async def movement(self, product_name, quantity, movement_type, unit_price=None, movement_date=NOW):
        movement = InventoryMovement(
            user_id=self.user_id,
            product_name=product_name,
            quantity=quantity,
            unit_price=unit_price,
            movement_type=movement_type,
            movement_date=movement_date,
        )
        self.db.add(movement)
        await self.db.commit()
        return movement

    async def expense(self, amount, expense_date: date = NOW.date(), category="rent"):
        expense = Expense(user_id=self.user_id, category=category, amount=amount, expense_date=expense_date)
        self.db.add(expense)
        await self.db.commit()
        return expense


async def create_profile(db: AsyncSession, user_id: uuid.UUID, name: str = "Test Provisions") -> BusinessProfile:
    profile = BusinessProfile(user_id=user_id, business_name=name, owner_name="Test Owner")
    db.add(profile)
    await db.commit()
    return profile


@pytest.fixture
async def profile(test_db):
    return await create_profile(test_db, USER_ID)


@pytest.fixture
async def ledger(test_db, profile):
    return LedgerFactory(test_db, profile)
