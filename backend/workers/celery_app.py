"""
Celery Application Configuration
"""

from celery import Celery
from celery.schedules import crontab

from core.config import get_settings
from db.session import standalone_session

settings = get_settings()

celery_app = Celery(
    "tradedesk",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "workers.achievements",
        "workers.trust_scores",
        "workers.client_value",
        "workers.reminders",
        "workers.inventory_insights",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "workers.achievements.*": {"queue": "metrics"},
        "workers.trust_scores.*": {"queue": "metrics"},
        "workers.client_value.*": {"queue": "metrics"},
        "workers.inventory_insights.*": {"queue": "metrics"},
        "workers.reminders.*": {"queue": "notifications"},
    },
    # ── Celery Beat Schedule ─────────────────────────────────────────
    beat_schedule={
        # ── Derived metrics ────────────────────────────────────────
        "evaluate-achievements-hourly": {
            "task": "workers.achievements.evaluate_achievements",
            "schedule": crontab(minute=0),
            "options": {"queue": "metrics"},
        },
        "initialize-trust-scores-nightly": {
            "task": "workers.trust_scores.initialize_trust_scores",
            "schedule": crontab(hour=1, minute=0),
            "options": {"queue": "metrics"},
        },
        "snapshot-client-value-nightly": {
            "task": "workers.client_value.snapshot_client_value_ratios",
            "schedule": crontab(hour=1, minute=30),
            "options": {"queue": "metrics"},
        },
        "generate-inventory-insights-nightly": {
            "task": "workers.inventory_insights.generate_inventory_insights",
            "schedule": crontab(hour=2, minute=0),
            "options": {"queue": "metrics"},
        },
        # ── Reminders ──────────────────────────────────────────────
        "dispatch-reminder-notifications-1m": {
            "task": "workers.reminders.dispatch_reminder_notifications",
            "schedule": crontab(minute="*"),
            "options": {"queue": "notifications"},
        },
    },
)


def task_session():
    """A fresh engine + session per task run; each task body owns its own event loop."""
    return standalone_session(settings.database_url)

