from fastapi import APIRouter, Depends
from typing import List, Optional
import httpx

from ...api.deps import (
    get_backend_client, get_backend_transport, get_current_session,
    get_poller_registry, get_session_expiry, session_client_factory
)
from ...core.config import settings
from ...models.session import PortalSession
from ...services.api_client import BackendClient
from ...services.messaging_service import MessagingService
from ...services.polling import PollerRegistry
from ...schemas.messaging import Contact, Conversation, Message, SendMessage

router = APIRouter(prefix="/messaging", tags=["Messaging"])

CONVERSATION_GROUP = "conversation"

def conversation_loop_name(contact_id: int) -> str:
    return f"conversation:{contact_id}"

@router.get("/contacts", response_model=List[Contact])
async def get_contacts(
    session: PortalSession = Depends(get_current_session),
    client: BackendClient = Depends(get_backend_client)
):
    return await MessagingService(client).get_contacts()

@router.get("/conversations/{contact_id}", response_model=Conversation)
async def open_conversation(
    contact_id: int,
    session: PortalSession = Depends(get_current_session),
    registry: PollerRegistry = Depends(get_poller_registry),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_backend_transport),
    expires_at: Optional[float] = Depends(get_session_expiry)
):
    """Latest snapshot of a conversation, kept fresh by a polling loop.

    Opening another contact stops the previous contact's loop.
    """
    loop = await registry.ensure(
        session.id,
        conversation_loop_name(contact_id),
        session_client_factory(session, transport, registry),
        lambda client: lambda: MessagingService(client).get_conversation(contact_id),
        settings.CONVERSATION_POLL_SECONDS,
        group=CONVERSATION_GROUP,
        expires_at=expires_at,
    )
    return Conversation(
        contact_id=contact_id,
        messages=loop.snapshot or [],
        error=loop.error,
        refreshed_at=loop.refreshed_at.isoformat() if loop.refreshed_at else None,
    )

@router.delete("/conversations/current")
async def close_conversation(
    session: PortalSession = Depends(get_current_session),
    registry: PollerRegistry = Depends(get_poller_registry)
):
    registry.stop_group(session.id, CONVERSATION_GROUP)
    return {"message": "Conversation closed"}

@router.post("/messages", response_model=List[Message])
async def send_message(
    message: SendMessage,
    session: PortalSession = Depends(get_current_session),
    client: BackendClient = Depends(get_backend_client),
    registry: PollerRegistry = Depends(get_poller_registry)
):
    """Send a message and return the refreshed conversation."""
    messages = await MessagingService(client).send_message(message)
    loop = registry.get(session.id, conversation_loop_name(message.receiver_id))
    if loop is not None and loop.running:
        loop.snapshot = messages
    return messages

@router.put("/messages/{message_id}/read")
async def mark_as_read(
    message_id: int,
    session: PortalSession = Depends(get_current_session),
    client: BackendClient = Depends(get_backend_client)
):
    await MessagingService(client).mark_as_read(message_id)
    return {"id": message_id, "is_read": True}

@router.get("/unread-count")
async def get_unread_count(
    session: PortalSession = Depends(get_current_session),
    client: BackendClient = Depends(get_backend_client)
):
    return {"count": await MessagingService(client).get_unread_count()}
