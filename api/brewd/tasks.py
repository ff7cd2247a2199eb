from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta
from typing import Any

from celery import Celery
from sqlalchemy.orm import Session

from .models import utcnow
from .services.social_notifications import NotificationDispatcher
from .settings import SocialSettings, _int_env

logger = logging.getLogger(__name__)

DEFAULT_REDIS = "redis://cache:6379/0"

celery_app = Celery(
    "brewd",
    broker=os.getenv("CELERY_BROKER_URL", DEFAULT_REDIS),
    backend=os.getenv("CELERY_RESULT_BACKEND", DEFAULT_REDIS),
)

celery_app.conf.update(
    task_default_queue="default",
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    result_expires=3600,
    worker_max_tasks_per_child=100,
    beat_schedule={
        "purge-read-notifications": {
            "task": "brewd.tasks.purge_read_notifications",
            "schedule": float(
                _int_env(
                    "NOTIFICATION_PURGE_INTERVAL_SECONDS",
                    SocialSettings.purge_interval_seconds,
                )
            ),
        },
    },
    timezone="UTC",
)


def purge_expired_notifications(
    db: Session, settings: SocialSettings, now: datetime | None = None
) -> dict[str, Any]:
    """
    Delete read notifications older than the retention period.

    Unread notifications are never touched, however old.
    """
    cutoff = (now or utcnow()) - timedelta(days=settings.notification_retention_days)
    deleted = NotificationDispatcher(settings).purge_all(db, cutoff)
    logger.info(f"Purged {deleted} read notifications older than {cutoff.isoformat()}")
    return {"status": "success", "deleted": deleted, "cutoff": cutoff.isoformat()}


@celery_app.task(name="brewd.tasks.purge_read_notifications", bind=True)
def purge_read_notifications(self) -> dict[str, Any]:
    """Periodic retention sweep; safe to run alongside live traffic."""
    from .db import SessionLocal, get_engine
    from .deps import get_settings

    settings = get_settings()
    db = SessionLocal(bind=get_engine(settings))
    try:
        return purge_expired_notifications(db, settings)
    except Exception as e:
        logger.error(f"Notification purge failed: {e}", exc_info=True)
        raise
    finally:
        db.close()
