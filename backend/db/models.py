"""
TradeDesk Database Models

Row shapes consumed by the derived-metrics engine.
Single-tenant per user via user_id on every table.

Tables:
  Ledger:
  1. business_profiles     - One business per user
  2. sales                 - Point-of-sale records (immutable once settled)
  3. sale_reversals        - Append-only reversal records linked to a sale
  4. inventory_receipts    - Purchase-in events with unit cost
  5. inventory_movements   - Append-only stock-change ledger
  6. user_products         - Product catalog + cached current_stock counter
  7. expenses              - Operating expenses

  Engagement:
  8. business_reminders    - Reminders with completion / notified flags
  9. sales_goals           - Revenue targets per period

  Derived:
  10. achievement_definitions - Typed unlock criteria
  11. user_achievements       - At most one unlock per (user, code)
  12. trade_insights          - One-off notifications
  13. user_trust_scores       - Externally computed 0-100 score
  14. client_value_ratios     - Daily client-value snapshot

Note: sales, receipts, movements and products correlate by product name
text only (see core.matching), never by foreign key.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    TypeDecorator,
    UniqueConstraint,
    types,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID


class GUID(TypeDecorator):
    """Platform-independent UUID type.

    Uses PostgreSQL UUID when available, stores as CHAR(36) on SQLite.
    """

    impl = types.String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID(as_uuid=True))
        return dialect.type_descriptor(types.String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if dialect.name == "postgresql":
            return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        return str(value) if isinstance(value, uuid.UUID) else str(uuid.UUID(str(value)))

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))


from sqlalchemy.orm import relationship

from db.session import Base

MOVEMENT_TYPES = ("received", "sold", "damaged", "expired", "adjusted", "returned")

# ─── 1. Business Profiles ──────────────────────────────────────────────────


class BusinessProfile(Base):
    __tablename__ = "business_profiles"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID(), nullable=False, unique=True)
    business_name = Column(String(255), nullable=False)
    owner_name = Column(String(255), nullable=False)
    phone_number = Column(String(50))
    business_address = Column(Text)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)


# ─── 2. Sales ──────────────────────────────────────────────────────────────


class Sale(Base):
    __tablename__ = "sales"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID(), nullable=False)
    business_id = Column(GUID(), ForeignKey("business_profiles.id"), nullable=False)
    product_name = Column(String(255), nullable=False)
    customer_phone = Column(String(50))
    amount = Column(Float, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    payment_method = Column(String(30), nullable=False, default="cash")
    purchase_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    outstanding_credit_amount = Column(Float)
    has_partial_payment = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_sales_user_date", "user_id", "purchase_date"),
        Index("ix_sales_business_date", "business_id", "purchase_date"),
        CheckConstraint("amount >= 0", name="ck_sale_amount_nonnegative"),
        CheckConstraint("quantity > 0", name="ck_sale_quantity_positive"),
    )

    reversals = relationship("SaleReversal", back_populates="sale", order_by="SaleReversal.reversal_date")


# ─── 3. Sale Reversals ─────────────────────────────────────────────────────


class SaleReversal(Base):
    __tablename__ = "sale_reversals"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID(), nullable=False)
    original_sale_id = Column(GUID(), ForeignKey("sales.id"), nullable=False)
    reversed_amount = Column(Float, nullable=False)
    reversed_quantity = Column(Integer, nullable=False, default=0)
    reversal_reason = Column(Text)
    reversal_receipt_number = Column(String(50), nullable=False)
    reversal_date = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_reversals_sale", "original_sale_id"),
        CheckConstraint("reversed_amount >= 0", name="ck_reversal_amount_nonnegative"),
    )

    sale = relationship("Sale", back_populates="reversals")


# ─── 4. Inventory Receipts ─────────────────────────────────────────────────


class InventoryReceipt(Base):
    __tablename__ = "inventory_receipts"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID(), nullable=False)
    product_name = Column(String(255), nullable=False)
    quantity_received = Column(Integer, nullable=False)
    unit_cost = Column(Float)
    total_cost = Column(Float)
    batch_number = Column(String(100))
    received_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_receipts_user_date", "user_id", "received_date"),
        CheckConstraint("quantity_received > 0", name="ck_receipt_quantity_positive"),
    )


# ─── 5. Inventory Movements ────────────────────────────────────────────────


class InventoryMovement(Base):
    __tablename__ = "inventory_movements"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID(), nullable=False)
    product_name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Float)
    movement_type = Column(String(20), nullable=False)
    movement_date = Column(DateTime, nullable=False, default=datetime.utcnow)
    notes = Column(Text)
    sale_id = Column(GUID(), ForeignKey("sales.id"), nullable=True)
    receipt_id = Column(GUID(), ForeignKey("inventory_receipts.id"), nullable=True)

    __table_args__ = (
        Index("ix_movements_user_type", "user_id", "movement_type"),
        CheckConstraint(
            "movement_type IN ('received', 'sold', 'damaged', 'expired', 'adjusted', 'returned')",
            name="ck_movement_type",
        ),
    )


# ─── 6. Products ───────────────────────────────────────────────────────────


class Product(Base):
    __tablename__ = "user_products"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID(), nullable=False)
    product_name = Column(String(255), nullable=False)
    current_stock = Column(Integer, nullable=False, default=0)
    selling_price = Column(Float)
    last_sale_date = Column(DateTime)
    total_sales_this_month = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "product_name", name="uq_product_name_per_user"),
        Index("ix_products_user", "user_id"),
    )


# ─── 7. Expenses ───────────────────────────────────────────────────────────


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID(), nullable=False)
    category = Column(String(100), nullable=False)
    amount = Column(Float, nullable=False)
    expense_date = Column(Date, nullable=False)
    vendor_name = Column(String(255))
    description = Column(Text)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_expenses_user_date", "user_id", "expense_date"),
        CheckConstraint("amount >= 0", name="ck_expense_amount_nonnegative"),
    )


# ─── 8. Reminders ──────────────────────────────────────────────────────────


class Reminder(Base):
    __tablename__ = "business_reminders"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID(), nullable=False)
    title = Column(String(255), nullable=False)
    description = Column(Text)
    reminder_date = Column(Date, nullable=False)
    reminder_time = Column(Time)
    priority = Column(String(10), nullable=False, default="medium")
    category = Column(String(50), nullable=False, default="general")
    is_completed = Column(Boolean, nullable=False, default=False)
    is_notified = Column(Boolean, nullable=False, default=False)
    recurring_type = Column(String(10), nullable=False, default="none")
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_reminders_user_date", "user_id", "reminder_date"),
        CheckConstraint("priority IN ('low', 'medium', 'high')", name="ck_reminder_priority"),
        CheckConstraint(
            "recurring_type IN ('none', 'daily', 'weekly', 'monthly', 'yearly')",
            name="ck_reminder_recurring_type",
        ),
    )


# ─── 9. Sales Goals ────────────────────────────────────────────────────────


class SalesGoal(Base):
    __tablename__ = "sales_goals"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID(), nullable=False)
    goal_type = Column(String(10), nullable=False)
    target_amount = Column(Float, nullable=False)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("goal_type IN ('daily', 'weekly', 'monthly', 'yearly')", name="ck_goal_type"),
        CheckConstraint("period_end >= period_start", name="ck_goal_period_order"),
    )


# ─── 10. Achievement Definitions ───────────────────────────────────────────


class AchievementDefinition(Base):
    __tablename__ = "achievement_definitions"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    code = Column(String(100), nullable=False, unique=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    icon = Column(String(50), nullable=False, default="trophy")
    category = Column(String(50), nullable=False, default="sales")
    criteria = Column(JSON, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


# ─── 11. Achievement Unlocks ───────────────────────────────────────────────


class AchievementUnlock(Base):
    __tablename__ = "user_achievements"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID(), nullable=False)
    achievement_code = Column(String(100), ForeignKey("achievement_definitions.code"), nullable=False)
    progress_data = Column(JSON, default=dict)
    unlocked_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (UniqueConstraint("user_id", "achievement_code", name="uq_unlock_per_user_code"),)


# ─── 12. Trade Insights ────────────────────────────────────────────────────


class TradeInsight(Base):
    __tablename__ = "trade_insights"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID(), nullable=False)
    product_name = Column(String(255), nullable=False)
    insight_type = Column(String(50), nullable=False)
    message = Column(Text, nullable=False)
    priority = Column(String(10), nullable=False, default="medium")
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (Index("ix_insights_user", "user_id", "created_at"),)


# ─── 13. Trust Scores ──────────────────────────────────────────────────────


class TrustScore(Base):
    __tablename__ = "user_trust_scores"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID(), nullable=False, unique=True)
    trust_score = Column(Float, nullable=False, default=0.0)
    last_updated = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (CheckConstraint("trust_score >= 0 AND trust_score <= 100", name="ck_trust_score_range"),)


# ─── 14. Client Value Ratios ───────────────────────────────────────────────


class ClientValueRatio(Base):
    __tablename__ = "client_value_ratios"

    id = Column(GUID(), primary_key=True, default=uuid.uuid4)
    user_id = Column(GUID(), nullable=False)
    date = Column(Date, nullable=False)
    client_count = Column(Integer, nullable=False, default=0)
    total_sales_value = Column(Float, nullable=False, default=0.0)
    ratio = Column(Float, nullable=False, default=0.0)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (UniqueConstraint("user_id", "date", name="uq_client_value_per_day"),)
