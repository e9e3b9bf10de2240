"""
Trade insights store — generated notices in the trade_insights table.

Generators build InsightDraft values; replace_insights swaps a user's previous
insights of the generator's types for the new set so reruns never pile up
duplicates.
"""

import uuid
from collections.abc import Sequence
from dataclasses import dataclass

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import StorageError
from db.models import TradeInsight
from db.queries import fetch_rows

logger = structlog.get_logger()


@dataclass(frozen=True)
class InsightDraft:
    product_name: str
    insight_type: str
    message: str
    priority: str


async def replace_insights(
    db: AsyncSession,
    user_id: uuid.UUID,
    insight_types: Sequence[str],
    drafts: Sequence[InsightDraft],
) -> int:
    """Delete the user's insights of these types and insert the drafts, in one commit."""
    try:
        await db.execute(
            delete(TradeInsight).where(
                TradeInsight.user_id == user_id,
                TradeInsight.insight_type.in_(insight_types),
            )
        )
        db.add_all(
            [
                TradeInsight(
                    user_id=user_id,
                    product_name=draft.product_name,
                    insight_type=draft.insight_type,
                    message=draft.message,
                    priority=draft.priority,
                )
                for draft in drafts
            ]
        )
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("storage.query_failed", source="trade_insights", error=str(exc))
        raise StorageError("trade_insights") from exc
    return len(drafts)


async def list_trade_insights(
    db: AsyncSession,
    user_id: uuid.UUID,
    include_read: bool = True,
    limit: int = 50,
) -> list[TradeInsight]:
    stmt = select(TradeInsight).where(TradeInsight.user_id == user_id)
    if not include_read:
        stmt = stmt.where(TradeInsight.is_read.is_(False))
    stmt = stmt.order_by(TradeInsight.created_at.desc()).limit(limit)
    return await fetch_rows(db, stmt, source="trade_insights")
