"""Celery application configuration."""

from celery import Celery
from celery.schedules import crontab

from core.config import config

# Create Celery app
celery_app = Celery(
    "swim_billing",
    broker=config.REDIS_URL,
    backend=config.REDIS_URL,
)

# Configure Celery
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone=config.BUSINESS_TIME_ZONE,
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,  # 30 minutes
    task_soft_time_limit=25 * 60,  # 25 minutes
    worker_prefetch_multiplier=4,
    worker_max_tasks_per_child=1000,
)

# Auto-discover tasks from app.tasks module
celery_app.autodiscover_tasks(["app.tasks"], related_name="billing_tasks")

# Configure periodic tasks (Celery Beat), times in the business zone
celery_app.conf.beat_schedule = {
    # Consume past classes and refresh balances (daily at 1 AM)
    "refresh-enrolment-billing": {
        "task": "refresh_enrolment_billing",
        "schedule": crontab(hour=1, minute=0),
    },
    # Flag unpaid invoices past their due date (daily at 2 AM)
    "mark-overdue-invoices": {
        "task": "mark_overdue_invoices",
        "schedule": crontab(hour=2, minute=0),
    },
}


if __name__ == "__main__":
    celery_app.start()
