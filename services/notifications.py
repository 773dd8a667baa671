import logging

from core.config import settings
from tasks.notification_tasks import create_notification_task, store_notification

logger = logging.getLogger(__name__)


def notify(shop_id: int, user_id: int | None, title: str, message: str, type: str) -> None:
    """
    Queue a notification through Celery, falling back to a direct insert.
    Fire-and-forget: failures are logged and never reach the caller.
    """
    if settings.NOTIFICATIONS_ASYNC:
        try:
            create_notification_task.delay(shop_id, user_id, title, message, type)
            logger.debug("notification task queued for shop %s", shop_id)
            return
        except Exception as e:
            logger.warning("Celery not available, storing notification directly: %s", e)

    try:
        store_notification(shop_id, user_id, title, message, type)
    except Exception:
        logger.exception("failed to store notification %r for shop %s", title, shop_id)
