from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import AsyncGenerator, Callable, List, Optional, Tuple
import httpx
import logging

from ..core.database import SessionLocal, get_db
from ..core.security import (
    security, verify_token, AuthenticationError,
    AuthorizationError, UserRole, TokenPayload
)
from ..models.session import PortalSession
from ..services.api_client import BackendClient
from ..services.auth_service import find_session
from ..services.polling import PollerRegistry

logger = logging.getLogger(__name__)

def get_backend_transport() -> Optional[httpx.AsyncBaseTransport]:
    """Transport for backend calls; ``None`` means real network I/O."""
    return None

async def get_session_token(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> TokenPayload:
    """Extract and verify the portal session token from the Authorization header."""
    token_payload = verify_token(credentials.credentials)
    if not token_payload:
        raise AuthenticationError("Invalid or expired token")

    if token_payload.token_type != "session":
        raise AuthenticationError("Invalid token type")

    return token_payload

async def get_session_expiry(
    token_payload: TokenPayload = Depends(get_session_token)
) -> Optional[float]:
    """Epoch second at which the presented session token stops being valid."""
    return float(token_payload.exp) if token_payload.exp is not None else None

async def get_current_session(
    token_payload: TokenPayload = Depends(get_session_token),
    db: Session = Depends(get_db)
) -> PortalSession:
    """Stored session for the presented token."""
    if not token_payload.sub:
        raise AuthenticationError("Invalid token payload")

    session = find_session(db, token_payload.sub)
    if not session or not session.access_token:
        raise AuthenticationError("Session not found or signed out")

    return session

def _token_persister(session_pk: int) -> Callable[[str, Optional[str]], None]:
    """Write refreshed backend tokens back to the session store."""
    def persist(access_token: str, refresh_token: Optional[str]):
        db = SessionLocal()
        try:
            stored = db.get(PortalSession, session_pk)
            if stored is not None and stored.is_active:
                stored.access_token = access_token
                stored.refresh_token = refresh_token
                db.commit()
        finally:
            db.close()
    return persist

def _token_loader(session_pk: int) -> Callable[[], Tuple[Optional[str], Optional[str]]]:
    def load() -> Tuple[Optional[str], Optional[str]]:
        db = SessionLocal()
        try:
            stored = db.get(PortalSession, session_pk)
            if stored is None or not stored.is_active:
                return None, None
            return stored.access_token, stored.refresh_token
        finally:
            db.close()
    return load

def _session_expirer(session_pk: int, registry: Optional[PollerRegistry] = None) -> Callable[[], None]:
    """Clear a stored session whose refresh token was rejected."""
    def expire():
        db = SessionLocal()
        try:
            stored = db.get(PortalSession, session_pk)
            if stored is not None:
                stored.clear()
                db.commit()
        finally:
            db.close()
        logger.info(f"Session {session_pk} expired")
        if registry is not None:
            registry.stop_session(session_pk)
    return expire

def get_poller_registry(request: Request) -> PollerRegistry:
    return request.app.state.pollers

def session_client_factory(
    session: PortalSession,
    transport: Optional[httpx.AsyncBaseTransport],
    registry: Optional[PollerRegistry] = None,
) -> Callable[[], BackendClient]:
    """Build backend clients bound to a stored session's tokens."""
    session_pk = session.id
    access_token = session.access_token
    refresh_token = session.refresh_token

    def factory() -> BackendClient:
        return BackendClient(
            access_token=access_token,
            refresh_token=refresh_token,
            transport=transport,
            on_tokens_refreshed=_token_persister(session_pk),
            on_session_expired=_session_expirer(session_pk, registry),
            load_tokens=_token_loader(session_pk),
        )
    return factory

async def get_anonymous_client(
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_backend_transport)
) -> AsyncGenerator[BackendClient, None]:
    """Backend client without credentials, for login and registration."""
    async with BackendClient(transport=transport) as client:
        yield client

async def get_backend_client(
    session: PortalSession = Depends(get_current_session),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_backend_transport),
    registry: PollerRegistry = Depends(get_poller_registry),
) -> AsyncGenerator[BackendClient, None]:
    """Backend client carrying the session's tokens for one request."""
    async with session_client_factory(session, transport, registry)() as client:
        yield client

# Role-based access control dependencies
def require_role(allowed_roles: List[UserRole]):
    """Create a dependency that requires specific user roles."""
    async def role_checker(
        session: PortalSession = Depends(get_current_session)
    ) -> PortalSession:
        if session.user_type not in [role.value for role in allowed_roles]:
            raise AuthorizationError(
                f"Access denied. Required roles: {[role.value for role in allowed_roles]}"
            )
        return session

    return role_checker

# Specific role dependencies
async def get_admin_session(
    session: PortalSession = Depends(require_role([UserRole.ADMIN]))
) -> PortalSession:
    return session

async def get_doctor_session(
    session: PortalSession = Depends(require_role([UserRole.DOCTOR]))
) -> PortalSession:
    return session

async def get_patient_session(
    session: PortalSession = Depends(require_role([UserRole.PATIENT]))
) -> PortalSession:
    return session

async def get_staff_session(
    session: PortalSession = Depends(require_role([UserRole.DOCTOR, UserRole.ADMIN]))
) -> PortalSession:
    """Require doctor or admin role."""
    return session
