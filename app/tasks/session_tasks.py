# app/tasks/session_tasks.py
from datetime import timedelta
import logging

from celery import shared_task

from app.core.config import settings
from app.core.database import Database
from app.services.refresh_token_store import RefreshTokenStore
from app.utils.helpers import utcnow

logger = logging.getLogger(__name__)


def purge_expired_sessions(store: RefreshTokenStore, now=None) -> int:
    """Housekeeping only: expiry is also enforced when a token is presented."""
    return store.purge(
        now or utcnow(),
        expired_grace=timedelta(hours=settings.REFRESH_EXPIRED_GRACE_HOURS),
        revoked_retention=timedelta(days=settings.REVOKED_RETENTION_DAYS),
    )


@shared_task
def purge_expired_sessions_task() -> int:
    database = Database.from_settings(settings).open()
    try:
        removed = purge_expired_sessions(RefreshTokenStore(database))
    finally:
        database.close()
    logger.info(f"Refresh session sweep removed {removed} records")
    return removed
