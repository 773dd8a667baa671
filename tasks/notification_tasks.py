import logging

from core.celery import celery_app
from core.db import db_session
from models.notification import Notification

logger = logging.getLogger(__name__)


def store_notification(shop_id: int, user_id: int | None, title: str, message: str, type: str) -> int:
    with db_session() as db:
        notification = Notification(shop_id=shop_id, user_id=user_id, title=title, message=message, type=type)
        db.add(notification)
        db.flush()
        return notification.id


@celery_app.task(bind=True, max_retries=3)
def create_notification_task(self, shop_id: int, user_id: int | None, title: str, message: str, type: str):
    """
    Persist a notification asynchronously with Celery.
    Retries up to 3 times on failure.
    """
    try:
        notification_id = store_notification(shop_id, user_id, title, message, type)
        return {"status": "stored", "id": notification_id}
    except Exception as exc:
        logger.warning("storing notification for shop %s failed: %s", shop_id, exc)
        # Retry with exponential backoff
        countdown = min(2 ** self.request.retries, 60)  # Max 60 seconds
        raise self.retry(exc=exc, countdown=countdown)
