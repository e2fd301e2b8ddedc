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
from ...services.notification_service import NotificationService, build_bell
from ...services.polling import PollerRegistry
from ...schemas.messaging import Notification, NotificationBell

router = APIRouter(prefix="/notifications", tags=["Notifications"])

NOTIFICATIONS_LOOP = "notifications"
UNREAD_MESSAGES_LOOP = "unread-messages"

async def ensure_bell_loops(
    session: PortalSession,
    registry: PollerRegistry,
    transport: Optional[httpx.AsyncBaseTransport],
    expires_at: Optional[float] = None,
):
    """Start the notification and unread-message loops of a session once."""
    client_factory = session_client_factory(session, transport, registry)
    user_id = session.user_id

    notifications = await registry.ensure(
        session.id,
        NOTIFICATIONS_LOOP,
        client_factory,
        lambda client: lambda: NotificationService(client).get_notifications(user_id),
        settings.NOTIFICATION_POLL_SECONDS,
        on_error=lambda e: [],
        expires_at=expires_at,
    )
    unread_messages = await registry.ensure(
        session.id,
        UNREAD_MESSAGES_LOOP,
        client_factory,
        lambda client: MessagingService(client).get_unread_count,
        settings.UNREAD_MESSAGES_POLL_SECONDS,
        on_error=lambda e: 0,
        expires_at=expires_at,
    )
    return notifications, unread_messages

@router.get("/bell", response_model=NotificationBell)
async def get_bell(
    session: PortalSession = Depends(get_current_session),
    registry: PollerRegistry = Depends(get_poller_registry),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_backend_transport),
    expires_at: Optional[float] = Depends(get_session_expiry)
):
    """Latest polled notifications and unread counts for the header bell."""
    notifications, unread_messages = await ensure_bell_loops(session, registry, transport, expires_at)
    return build_bell(notifications, unread_messages)

@router.get("", response_model=List[Notification])
async def get_notifications(
    session: PortalSession = Depends(get_current_session),
    client: BackendClient = Depends(get_backend_client)
):
    return await NotificationService(client).get_notifications(session.user_id)

@router.put("/read-all", response_model=List[Notification])
async def mark_all_as_read(
    session: PortalSession = Depends(get_current_session),
    client: BackendClient = Depends(get_backend_client),
    registry: PollerRegistry = Depends(get_poller_registry)
):
    loop = registry.get(session.id, NOTIFICATIONS_LOOP)
    current = (loop.snapshot if loop else None) or []
    updated = await NotificationService(client).mark_all_as_read(session.user_id, current)
    if loop is not None:
        loop.snapshot = updated
    return updated

@router.put("/{notification_id}/read")
async def mark_as_read(
    notification_id: int,
    session: PortalSession = Depends(get_current_session),
    client: BackendClient = Depends(get_backend_client),
    registry: PollerRegistry = Depends(get_poller_registry)
):
    await NotificationService(client).mark_as_read(notification_id)
    loop = registry.get(session.id, NOTIFICATIONS_LOOP)
    if loop is not None and loop.snapshot:
        loop.snapshot = [
            n.model_copy(update={"is_read": True}) if n.id == notification_id else n
            for n in loop.snapshot
        ]
    return {"id": notification_id, "is_read": True}
