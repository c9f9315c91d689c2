"""Best-effort security notifications.

Enqueue failures are logged and dropped: a broken broker must never fail a
refresh or hide a reuse detection from the caller.
"""
import logging
from typing import Optional

from app.core.celery_app import celery_app  # noqa: F401  binds shared tasks to the configured broker
from app.tasks.notification_tasks import send_token_reuse_alert_task

logger = logging.getLogger(__name__)


class SecurityNotifier:
    def token_reuse_detected(
        self,
        *,
        user_id: int,
        family_id: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> None:
        try:
            send_token_reuse_alert_task.delay(
                user_id=user_id,
                family_id=family_id,
                ip_address=ip_address,
                user_agent=user_agent,
            )
        except Exception as e:
            logger.warning("Could not enqueue reuse alert for user %s: %s", user_id, e)
