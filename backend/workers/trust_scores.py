"""
Trust Score Worker — nightly (re)initialization of every business's score.

Schedule: crontab(hour=1, minute=0) — daily at 1 AM
Queue: metrics
"""

import asyncio
from dataclasses import asdict

import structlog

from workers.celery_app import celery_app, task_session

logger = structlog.get_logger()


@celery_app.task(
    name="workers.trust_scores.initialize_trust_scores",
    bind=True,
    max_retries=2,
    default_retry_delay=600,
    acks_late=True,
)
def initialize_trust_scores(self):
    run_id = self.request.id or "manual"
    logger.info("trust_score.task_started", run_id=run_id)

    async def _initialize():
        from trust.score import initialize_trust_scores as run_batch

        async with task_session() as db:
            summary = await run_batch(db)
        return {"status": "success", "run_id": run_id, **asdict(summary)}

    try:
        result = asyncio.run(_initialize())
        logger.info("trust_score.task_completed", **result)
        return result
    except Exception as exc:
        logger.error("trust_score.task_failed", error=str(exc), exc_info=True)
        raise self.retry(exc=exc)
