"""Celery application for notification delivery and session housekeeping.

Run a worker with beat:
  celery -A app.core.celery_app worker --beat --loglevel=info
"""
from celery import Celery
from celery.signals import setup_logging as celery_setup_logging

from app.core.config import settings
from app.core.logger import setup_logging

celery_app = Celery(
    "tokenward",
    broker=settings.REDIS_URL,
    include=["app.tasks.notification_tasks", "app.tasks.session_tasks"],
)

celery_app.conf.update(
    task_acks_late=True,
    task_ignore_result=True,
    timezone="UTC",
    # enqueueing happens on the request path; give up quickly if the broker is down
    broker_connection_timeout=2,
    task_publish_retry_policy={"max_retries": 1, "interval_start": 0, "interval_step": 0.5},
    beat_schedule={
        "purge-expired-refresh-sessions": {
            "task": "app.tasks.session_tasks.purge_expired_sessions_task",
            "schedule": 3600.0,
        },
    },
)


@celery_setup_logging.connect
def _configure_worker_logging(**kwargs):
    setup_logging()
