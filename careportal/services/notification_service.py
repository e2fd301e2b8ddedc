from typing import List, Optional
import logging

from .api_client import BackendClient, BackendError, BackendUnavailable, FetchFailed
from .polling import PollingLoop
from ..schemas.messaging import Notification, NotificationBell

logger = logging.getLogger(__name__)

LOAD_NOTIFICATIONS_ERROR = "Failed to load notifications"

class NotificationService:
    def __init__(self, client: BackendClient):
        self.client = client

    async def get_notifications(self, user_id: int) -> List[Notification]:
        try:
            data = await self.client.get("/notifications", params={"userId": user_id})
        except (BackendError, BackendUnavailable) as e:
            logger.error(f"Error fetching notifications: {e.detail}")
            raise FetchFailed(LOAD_NOTIFICATIONS_ERROR)

        if not isinstance(data, list):
            logger.error(f"Expected array of notifications but got: {type(data).__name__}")
            return []
        return [Notification.model_validate(n) for n in data]

    async def mark_as_read(self, notification_id: int) -> dict:
        return await self.client.put(
            f"/notifications/{notification_id}/read",
            fallback_error="Failed to mark notification as read"
        )

    async def mark_all_as_read(self, user_id: int, notifications: List[Notification]) -> List[Notification]:
        """Returns ``notifications`` with every entry read, once the backend agrees."""
        await self.client.put(
            "/notifications/read-all",
            json={"userId": user_id},
            fallback_error="Failed to mark notifications as read"
        )
        return [n.model_copy(update={"is_read": True}) for n in notifications]

def build_bell(
    notifications_loop: Optional[PollingLoop],
    unread_messages_loop: Optional[PollingLoop],
) -> NotificationBell:
    """Combine the latest notification and unread-message snapshots."""
    notifications = (notifications_loop.snapshot if notifications_loop else None) or []
    unread_messages = (unread_messages_loop.snapshot if unread_messages_loop else None) or 0
    unread_notifications = sum(1 for n in notifications if not n.is_read)
    return NotificationBell(
        notifications=notifications,
        unread_notifications=unread_notifications,
        unread_messages=unread_messages,
        total_unread=unread_notifications + unread_messages,
        error=notifications_loop.error if notifications_loop else None,
        unread_messages_error=unread_messages_loop.error if unread_messages_loop else None,
    )
