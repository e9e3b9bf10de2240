"""
Trust Score Evaluator.

The score itself is computed by a database-side procedure this service treats
as a black box (settings.trust_score_procedure). Reading a score is lazy: when
a user has no row yet the procedure is invoked once and the row re-read.
Scores are reported clamped to [0, 100].

initialize_trust_scores runs the procedure for every business; one user's
failure is logged and counted without stopping the batch.
"""

import re
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog
from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from core.errors import StorageError, TradeDeskError
from db.models import TrustScore
from db.queries import fetch_one
from ledger.profiles import list_profiled_user_ids

logger = structlog.get_logger()

TrustScoreProcedure = Callable[[AsyncSession, uuid.UUID], Awaitable[None]]

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_.]*$")


def clamp_score(score: float | None) -> float:
    if score is None:
        return 0.0
    return max(0.0, min(100.0, float(score)))


async def run_trust_score_procedure(db: AsyncSession, user_id: uuid.UUID) -> None:
    """Invoke the configured database procedure for one user and commit."""
    procedure = get_settings().trust_score_procedure
    if not _IDENTIFIER.match(procedure):
        raise ValueError(f"Invalid trust score procedure name: {procedure!r}")
    try:
        await db.execute(text(f"SELECT {procedure}(:user_uuid)"), {"user_uuid": str(user_id)})
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("trust_score.procedure_failed", user_id=str(user_id), procedure=procedure, error=str(exc))
        raise StorageError("trust_score_procedure") from exc


async def _read_score(db: AsyncSession, user_id: uuid.UUID) -> float | None:
    return await fetch_one(
        db,
        select(TrustScore.trust_score).where(TrustScore.user_id == user_id),
        source="user_trust_scores",
    )


async def get_trust_score(
    db: AsyncSession,
    user_id: uuid.UUID,
    procedure: TrustScoreProcedure | None = None,
) -> float:
    score = await _read_score(db, user_id)
    if score is None:
        await (procedure or run_trust_score_procedure)(db, user_id)
        score = await _read_score(db, user_id)
        logger.info("trust_score.initialized", user_id=str(user_id), score=score)
    return clamp_score(score)


@dataclass
class TrustInitSummary:
    total_profiles: int = 0
    initialized: int = 0
    errors: int = 0


async def initialize_trust_scores(
    db: AsyncSession,
    procedure: TrustScoreProcedure | None = None,
) -> TrustInitSummary:
    procedure = procedure or run_trust_score_procedure
    user_ids = await list_profiled_user_ids(db)
    summary = TrustInitSummary(total_profiles=len(user_ids))

    for user_id in user_ids:
        try:
            await procedure(db, user_id)
        except TradeDeskError as exc:
            summary.errors += 1
            logger.warning("trust_score.user_failed", user_id=str(user_id), error=str(exc))
            continue
        summary.initialized += 1

    logger.info(
        "trust_score.batch_complete",
        total_profiles=summary.total_profiles,
        initialized=summary.initialized,
        errors=summary.errors,
    )
    return summary
