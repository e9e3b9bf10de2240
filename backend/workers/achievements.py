"""
Achievement Worker — hourly unlock pass over every business.

Schedule: crontab(minute=0) — hourly
Queue: metrics
"""

import asyncio
from dataclasses import asdict

import structlog

from workers.celery_app import celery_app, task_session

logger = structlog.get_logger()


@celery_app.task(
    name="workers.achievements.evaluate_achievements",
    bind=True,
    max_retries=2,
    default_retry_delay=300,
    acks_late=True,
)
def evaluate_achievements(self):
    run_id = self.request.id or "manual"
    logger.info("achievements.task_started", run_id=run_id)

    async def _evaluate():
        from achievements.evaluator import evaluate_achievements as run_evaluation

        async with task_session() as db:
            summary = await run_evaluation(db)
        return {"status": "success", "run_id": run_id, **asdict(summary)}

    try:
        result = asyncio.run(_evaluate())
        logger.info("achievements.task_completed", **result)
        return result
    except Exception as exc:
        logger.error("achievements.task_failed", error=str(exc), exc_info=True)
        raise self.retry(exc=exc)
