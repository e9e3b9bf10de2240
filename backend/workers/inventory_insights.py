"""
Inventory Insights Worker — nightly product and portfolio insights per business.

Schedule: crontab(hour=2, minute=0) — daily at 2 AM
Queue: metrics
"""

import asyncio

import structlog

from workers.celery_app import celery_app, task_session

logger = structlog.get_logger()


@celery_app.task(
    name="workers.inventory_insights.generate_inventory_insights",
    bind=True,
    max_retries=2,
    default_retry_delay=600,
    acks_late=True,
)
def generate_inventory_insights(self):
    run_id = self.request.id or "manual"
    logger.info("inventory_insights.task_started", run_id=run_id)

    async def _generate():
        from insights.inventory_insights import generate_all_inventory_insights

        async with task_session() as db:
            counts = await generate_all_inventory_insights(db)
        return {"status": "success", "run_id": run_id, **counts}

    try:
        result = asyncio.run(_generate())
        logger.info("inventory_insights.task_completed", **result)
        return result
    except Exception as exc:
        logger.error("inventory_insights.task_failed", error=str(exc), exc_info=True)
        raise self.retry(exc=exc)
