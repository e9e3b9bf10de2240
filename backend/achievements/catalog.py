"""Default achievement definitions, seeded idempotently by code."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import AchievementDefinition
from db.queries import fetch_rows

DEFAULT_ACHIEVEMENTS = [
    {
        "code": "first_sale",
        "title": "First Sale",
        "description": "You recorded your very first sale.",
        "icon": "star",
        "category": "sales",
        "criteria": {"type": "first_sale"},
    },
    {
        "code": "busy_month",
        "title": "Busy Month",
        "description": "50 sales in a single month.",
        "icon": "trending-up",
        "category": "sales",
        "criteria": {"type": "monthly_sales", "count": 50},
    },
    {
        "code": "strong_week",
        "title": "Strong Week",
        "description": "¢1,000 in sales over the last 7 days.",
        "icon": "coins",
        "category": "profit",
        "criteria": {"type": "weekly_profit", "amount": 1000},
    },
    {
        "code": "ten_thousand_club",
        "title": "Ten Thousand Club",
        "description": "¢10,000 in lifetime sales.",
        "icon": "trophy",
        "category": "profit",
        "criteria": {"type": "total_profit", "amount": 10000},
    },
    {
        "code": "well_stocked",
        "title": "Well Stocked",
        "description": "10 different products in stock.",
        "icon": "package",
        "category": "inventory",
        "criteria": {"type": "product_variety", "count": 10},
    },
    {
        "code": "loyal_following",
        "title": "Loyal Following",
        "description": "25 different customers served.",
        "icon": "users",
        "category": "customers",
        "criteria": {"type": "customer_count", "count": 25},
    },
    {
        "code": "never_run_dry",
        "title": "Never Run Dry",
        "description": "No stockouts for 7 days.",
        "icon": "shield",
        "category": "inventory",
        "criteria": {"type": "no_stockouts", "days": 7},
    },
    {
        "code": "on_a_roll",
        "title": "On a Roll",
        "description": "Sales every day for 7 days in a row.",
        "icon": "flame",
        "category": "sales",
        "criteria": {"type": "consecutive_sales_days", "days": 7},
    },
    {
        "code": "restock_pro",
        "title": "Restock Pro",
        "description": "5 products restocked in the last month.",
        "icon": "refresh",
        "category": "inventory",
        "criteria": {"type": "product_sellouts", "count": 5},
    },
    {
        "code": "growing_inventory",
        "title": "Growing Inventory",
        "description": "Stock on hand is building up.",
        "icon": "bar-chart",
        "category": "inventory",
        "criteria": {"type": "value_increase"},
    },
]


async def seed_achievement_definitions(db: AsyncSession) -> int:
    """Insert the default definitions that are missing. Returns how many were added."""
    existing = set(
        await fetch_rows(db, select(AchievementDefinition.code), source="achievement_definitions")
    )
    added = 0
    for definition in DEFAULT_ACHIEVEMENTS:
        if definition["code"] in existing:
            continue
        db.add(AchievementDefinition(**definition))
        added += 1
    if added:
        await db.commit()
    return added
