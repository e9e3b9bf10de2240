"""
Reminder Worker — picks up reminders entering the 30-minute notify window.

Notifications are logged with their payload; delivery channels (push, SMS,
email) plug in here.

Schedule: crontab(minute="*") — every minute
Queue: notifications
"""

import asyncio
from datetime import datetime, timezone

import structlog

from workers.celery_app import celery_app, task_session

logger = structlog.get_logger()


@celery_app.task(
    name="workers.reminders.dispatch_reminder_notifications",
    bind=True,
    max_retries=3,
    default_retry_delay=30,
    acks_late=True,
)
def dispatch_reminder_notifications(self):
    async def _dispatch():
        from reminders.notifications import dispatch_due_reminders

        async with task_session() as db:
            notifications = await dispatch_due_reminders(db)

        for notification in notifications:
            logger.info(
                "reminders.notification",
                reminder_id=str(notification.reminder_id),
                user_id=str(notification.user_id),
                title=notification.title,
                message=notification.message,
                priority=notification.priority,
            )
        return {
            "status": "success",
            "processed": len(notifications),
            "notifications": [
                {"title": n.title, "user_id": str(n.user_id), "priority": n.priority} for n in notifications
            ],
            "completed_at": datetime.now(timezone.utc).isoformat(),
        }

    try:
        return asyncio.run(_dispatch())
    except Exception as exc:
        logger.error("reminders.dispatch_failed", error=str(exc), exc_info=True)
        raise self.retry(exc=exc)
