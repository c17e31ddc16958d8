from celery import Celery
from celery.schedules import crontab

from academy.config import settings

# Create Celery app
celery_app = Celery(
    "academy",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["academy.tasks"],  # Auto-discover tasks from this module
)

# Celery configuration
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=600,  # 10 minutes max for any task
    task_soft_time_limit=540,  # Warning at 9 minutes
    worker_prefetch_multiplier=1,
)

celery_app.conf.beat_schedule = {
    "subscription-expiry-sweep-hourly": {
        "task": "sweep_subscription_expiry",
        "schedule": crontab(minute=5),  # every hour at :05
        "args": [],
    },
}
