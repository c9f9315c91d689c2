# app/tasks/notification_tasks.py
from celery import shared_task
from typing import Optional

from app.core.config import settings
from app.core.database import Database
from app.services.email_service import send_token_reuse_alert_email
from app.services.user_directory import UserDirectory
import logging

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def send_token_reuse_alert_task(
    self,
    user_id: int,
    family_id: str,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
):
    """
    Email the account owner after a refresh-token replay killed one of their session families.
    - Looks the user up by id (read-only).
    - Retries SMTP failures; gives up quietly after max_retries.
    """
    database = Database.from_settings(settings).open()
    try:
        user = UserDirectory(database).get_by_id(user_id)
    finally:
        database.close()

    if not user:
        logger.error(f"User {user_id} not found for reuse alert (family {family_id[:8]}).")
        return

    try:
        send_token_reuse_alert_email(user.identity.email, ip_address=ip_address, user_agent=user_agent)
        logger.info(f"Reuse alert sent to user {user_id} for family {family_id[:8]}")
    except Exception as exc:
        logger.error(f"Failed to send reuse alert to user {user_id}: {exc}")
        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc)
