"""
Celery tasks for periodic processing

Tasks:
- sweep_subscription_expiry: persist EXPIRED subscriptions and flag those about to expire
"""
import logging

from academy.celery_app import celery_app
from academy.config import settings
from academy.database import SessionLocal
from academy.redis_client import get_redis_client
from academy.services.subscriptions import sweep_expiry

logger = logging.getLogger(__name__)

SWEEP_LOCK_KEY = "sweep:subscriptions:lock"


@celery_app.task(name="sweep_subscription_expiry")
def sweep_subscription_expiry():
    """Hourly expiry sweep. Skips when another worker holds the lock."""
    redis = get_redis_client()
    if not redis.set(SWEEP_LOCK_KEY, "1", nx=True, ex=settings.expiry_sweep_lock_seconds):
        logger.info("Expiry sweep already running, skipping")
        return {"status": "skipped"}

    db = SessionLocal()
    try:
        summary = sweep_expiry(db)
        return {"status": "completed", **summary}
    finally:
        db.close()
        redis.delete(SWEEP_LOCK_KEY)
