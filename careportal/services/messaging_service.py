from fastapi import HTTPException, status
from typing import List
import logging

from .api_client import BackendClient, BackendError, BackendUnavailable, FetchFailed
from ..schemas.messaging import Contact, Message, SendMessage

logger = logging.getLogger(__name__)

class MessagingService:
    def __init__(self, client: BackendClient):
        self.client = client

    async def get_contacts(self) -> List[Contact]:
        try:
            data = await self.client.get("/messaging/contacts")
        except (BackendError, BackendUnavailable) as e:
            logger.error(f"Error fetching contacts: {e.detail}")
            raise FetchFailed("Failed to load contacts")
        return [Contact.model_validate(c) for c in data or []]

    async def get_conversation(self, contact_id: int) -> List[Message]:
        try:
            data = await self.client.get(f"/messaging/conversations/{contact_id}")
        except (BackendError, BackendUnavailable) as e:
            logger.error(f"Error fetching messages: {e.detail}")
            raise FetchFailed("Failed to load messages")
        return [Message.model_validate(m) for m in data or []]

    async def send_message(self, message: SendMessage) -> List[Message]:
        """Send, then return the refreshed conversation."""
        content = message.content.strip()
        if not content:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Message cannot be empty"
            )
        await self.client.post(
            "/messaging/messages",
            json={"receiverId": message.receiver_id, "content": message.content},
            fallback_error="Failed to send message"
        )
        return await self.get_conversation(message.receiver_id)

    async def mark_as_read(self, message_id: int) -> dict:
        return await self.client.put(
            f"/messaging/messages/{message_id}/read",
            fallback_error="Failed to mark message as read"
        )

    async def get_unread_count(self) -> int:
        try:
            data = await self.client.get("/messaging/messages/unread/count")
        except (BackendError, BackendUnavailable) as e:
            logger.error(f"Error fetching unread messages: {e.detail}")
            raise FetchFailed("Failed to load unread messages")
        return int((data or {}).get("count", 0))
