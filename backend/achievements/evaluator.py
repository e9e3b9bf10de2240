"""
Achievement Evaluator — batch unlock of achievements for every business.

Per (user, achievement) the state machine is locked → unlocked, one-way.

Workflow:
1. Load every achievement definition and every user with a business profile
2. Per user, load the codes already unlocked and skip them
3. Evaluate each remaining definition's criterion
4. On success insert the unlock (with progress snapshot) and a trade insight
   in the same commit

Any error for one (user, achievement), or for one user, is logged, its
transaction rolled back, and the run moves on. The unique (user_id, achievement_code) constraint backs the
check-then-insert guard: a concurrent run that loses the race gets an
IntegrityError, which is rolled back and counted as already unlocked.

Agent: data-engineer
Skill: postgresql
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from achievements.criteria import CriterionContext, CriterionResult, evaluate_criterion
from core.errors import StorageError
from db.models import AchievementDefinition, AchievementUnlock, BusinessProfile, TradeInsight
from db.queries import fetch_rows

logger = structlog.get_logger()


@dataclass
class AchievementRunSummary:
    users_checked: int = 0
    achievements_unlocked: int = 0
    errors: int = 0
    unlocked: list[dict] = field(default_factory=list)


@dataclass(frozen=True)
class Achievement:
    """Detached copy of a definition; survives the rollback of a lost unlock race."""

    code: str
    title: str
    description: str
    criteria: dict

    @classmethod
    def from_row(cls, row: AchievementDefinition) -> "Achievement":
        return cls(row.code, row.title, row.description, row.criteria)


def unlock_message(definition: Achievement) -> str:
    return f"🎉 Achievement Unlocked: {definition.title}! {definition.description}"


async def unlocked_codes(db: AsyncSession, user_id: uuid.UUID) -> set[str]:
    codes = await fetch_rows(
        db,
        select(AchievementUnlock.achievement_code).where(AchievementUnlock.user_id == user_id),
        source="user_achievements",
    )
    return set(codes)


async def record_unlock(
    db: AsyncSession,
    user_id: uuid.UUID,
    definition: Achievement,
    result: CriterionResult,
    now: datetime,
) -> bool:
    """Insert the unlock and its notification. False if it already existed."""
    db.add(
        AchievementUnlock(
            user_id=user_id,
            achievement_code=definition.code,
            progress_data=result.progress,
            unlocked_at=now,
        )
    )
    db.add(
        TradeInsight(
            user_id=user_id,
            product_name="Achievement",
            insight_type="achievement_unlocked",
            message=unlock_message(definition),
            priority="high",
        )
    )
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.info("achievements.already_unlocked", user_id=str(user_id), code=definition.code)
        return False
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("storage.query_failed", source="user_achievements", error=str(exc))
        raise StorageError("user_achievements") from exc
    return True


async def evaluate_user_achievements(
    db: AsyncSession,
    user_id: uuid.UUID,
    business_id: uuid.UUID,
    definitions: list[Achievement],
    now: datetime,
    summary: AchievementRunSummary,
) -> None:
    already = await unlocked_codes(db, user_id)
    ctx = CriterionContext(db=db, user_id=user_id, business_id=business_id, now=now)

    for definition in definitions:
        if definition.code in already:
            continue
        try:
            result = await evaluate_criterion(ctx, definition.code, definition.criteria)
            if not result.unlocked:
                continue
            unlocked = await record_unlock(db, user_id, definition, result, now)
        except Exception as exc:  # noqa: BLE001
            await db.rollback()
            summary.errors += 1
            logger.warning(
                "achievements.evaluation_failed",
                user_id=str(user_id),
                code=definition.code,
                error=str(exc),
                exc_info=True,
            )
            continue

        if unlocked:
            summary.achievements_unlocked += 1
            summary.unlocked.append({"user_id": str(user_id), "code": definition.code})
            logger.info("achievements.unlocked", user_id=str(user_id), code=definition.code, **result.progress)


async def evaluate_achievements(db: AsyncSession, now: datetime | None = None) -> AchievementRunSummary:
    """Evaluate every locked achievement for every business; returns a run summary."""
    now = now or datetime.utcnow()
    summary = AchievementRunSummary()

    rows = await fetch_rows(
        db, select(AchievementDefinition).order_by(AchievementDefinition.code), source="achievement_definitions"
    )
    definitions = [Achievement.from_row(row) for row in rows]
    businesses = await fetch_rows(
        db,
        select(BusinessProfile.user_id, BusinessProfile.id).order_by(BusinessProfile.created_at),
        source="business_profiles",
    )
    if not definitions or not businesses:
        logger.info("achievements.nothing_to_evaluate", definitions=len(definitions), users=len(businesses))
        return summary

    for user_id, business_id in businesses:
        summary.users_checked += 1
        try:
            await evaluate_user_achievements(db, user_id, business_id, definitions, now, summary)
        except Exception as exc:  # noqa: BLE001
            await db.rollback()
            summary.errors += 1
            logger.warning("achievements.user_failed", user_id=str(user_id), error=str(exc), exc_info=True)

    logger.info(
        "achievements.run_complete",
        users_checked=summary.users_checked,
        achievements_unlocked=summary.achievements_unlocked,
        errors=summary.errors,
    )
    return summary
