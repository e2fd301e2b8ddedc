from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...api.deps import (
    get_anonymous_client, get_backend_client, get_current_session,
    get_doctor_session, get_poller_registry
)
from ...models.session import PortalSession
from ...services.api_client import BackendClient
from ...services.auth_service import AuthService
from ...services.polling import PollerRegistry
from ...schemas.auth import (
    UserLogin, UserRegister, UserResponse, LoginResponse, ProfileUpdate
)
from ...schemas.admin import CredentialSubmission

router = APIRouter(prefix="/auth", tags=["Authentication"])

@router.post("/register", response_model=LoginResponse)
async def register(
    user_data: UserRegister,
    db: Session = Depends(get_db),
    client: BackendClient = Depends(get_anonymous_client)
):
    """Register with the backend and start a portal session."""
    auth_service = AuthService(db, client)
    return await auth_service.register(user_data)

@router.post("/login", response_model=LoginResponse)
async def login(
    login_data: UserLogin,
    db: Session = Depends(get_db),
    client: BackendClient = Depends(get_anonymous_client)
):
    """Sign in and return a session token plus the landing page for the role."""
    auth_service = AuthService(db, client)
    return await auth_service.login(login_data)

@router.post("/logout")
async def logout(
    session: PortalSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    client: BackendClient = Depends(get_backend_client),
    registry: PollerRegistry = Depends(get_poller_registry)
):
    """Clear the session and stop its polling; always succeeds."""
    registry.stop_session(session.id)
    auth_service = AuthService(db, client)
    await auth_service.logout(session)
    return {"message": "Successfully logged out"}

@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    session: PortalSession = Depends(get_current_session)
):
    """Cached user of the current session."""
    return UserResponse.model_validate(session.user)

@router.get("/profile", response_model=UserResponse)
async def get_profile(
    session: PortalSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    client: BackendClient = Depends(get_backend_client)
):
    auth_service = AuthService(db, client)
    return await auth_service.get_profile(session)

@router.put("/profile", response_model=UserResponse)
async def update_profile(
    profile_data: ProfileUpdate,
    session: PortalSession = Depends(get_current_session),
    db: Session = Depends(get_db),
    client: BackendClient = Depends(get_backend_client)
):
    auth_service = AuthService(db, client)
    return await auth_service.update_profile(session, profile_data)

@router.post("/credentials")
async def submit_credentials(
    credentials: CredentialSubmission,
    session: PortalSession = Depends(get_doctor_session),
    db: Session = Depends(get_db),
    client: BackendClient = Depends(get_backend_client)
):
    """Doctor credential submission; the account then awaits approval."""
    auth_service = AuthService(db, client)
    await auth_service.submit_credentials(session, credentials)
    return {"message": "Credentials submitted", "redirect_to": "/d/pending-approval"}
