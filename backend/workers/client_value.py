"""
Client Value Worker — nightly client-value ratio snapshot per business.

Schedule: crontab(hour=1, minute=30) — daily at 1:30 AM
Queue: metrics
"""

import asyncio

import structlog

from workers.celery_app import celery_app, task_session

logger = structlog.get_logger()


@celery_app.task(
    name="workers.client_value.snapshot_client_value_ratios",
    bind=True,
    max_retries=2,
    default_retry_delay=600,
    acks_late=True,
)
def snapshot_client_value_ratios(self):
    run_id = self.request.id or "manual"
    logger.info("client_value.task_started", run_id=run_id)

    async def _snapshot():
        from metrics.client_value import snapshot_all_client_values

        async with task_session() as db:
            counts = await snapshot_all_client_values(db)
        return {"status": "success", "run_id": run_id, **counts}

    try:
        result = asyncio.run(_snapshot())
        logger.info("client_value.task_completed", **result)
        return result
    except Exception as exc:
        logger.error("client_value.task_failed", error=str(exc), exc_info=True)
        raise self.retry(exc=exc)
