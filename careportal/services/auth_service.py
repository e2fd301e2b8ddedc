from sqlalchemy.orm import Session
from fastapi import HTTPException, status
from typing import Optional
import asyncio
import logging

from .api_client import BackendClient, BackendError, BackendUnavailable
from ..models.session import PortalSession
from ..core.security import (
    AuthenticationError, DoctorStatus, UserRole, create_session_token,
    generate_session_id, hash_session_id
)
from ..schemas.auth import (
    UserLogin, UserRegister, UserResponse, LoginResponse, ProfileUpdate
)
from ..schemas.admin import CredentialSubmission

logger = logging.getLogger(__name__)

LOGIN_ERROR = "Failed to login. Please try again."
REGISTER_ERROR = "Registration failed. Please try again."
PROFILE_ERROR = "Failed to update profile. Please try again."

ROLE_HOME = {
    UserRole.PATIENT: "/p/dashboard",
    UserRole.ADMIN: "/admin/dashboard",
}

DOCTOR_HOME = {
    DoctorStatus.REJECTED.value: "/d/rejected",
    DoctorStatus.PENDING.value: "/d/pending-approval",
    DoctorStatus.APPROVED.value: "/d/dashboard",
}

def redirect_for(user: UserResponse) -> str:
    """Landing page for a freshly signed-in user."""
    if user.user_type == UserRole.DOCTOR:
        return DOCTOR_HOME.get(user.doctor_status, "/d/credentials")
    return ROLE_HOME.get(user.user_type, "/")

def find_session(db: Session, session_id: str) -> Optional[PortalSession]:
    return db.query(PortalSession).filter(
        PortalSession.session_hash == hash_session_id(session_id),
        PortalSession.is_active == True
    ).first()

class AuthService:
    """Sign-in state for one portal client.

    Keeps the backend tokens and a cached copy of the user in the session
    store, and decides where each role lands after signing in.
    """

    def __init__(self, db: Session, client: BackendClient):
        self.db = db
        self.client = client

    async def login(self, login_data: UserLogin) -> LoginResponse:
        try:
            data = await self.client.post(
                "/auth/login",
                json={"email": login_data.email, "password": login_data.password},
                fallback_error=LOGIN_ERROR
            )
        except BackendUnavailable:
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=LOGIN_ERROR)

        user = UserResponse.model_validate(data["user"])
        response = self._start_session(user, data.get("accessToken"), data.get("refreshToken"))
        logger.info(f"User {user.id} signed in as {user.user_type.value}")
        return response

    async def register(self, user_data: UserRegister) -> LoginResponse:
        try:
            data = await self.client.post(
                "/auth/register",
                json=user_data.model_dump(by_alias=True, mode="json"),
                fallback_error=REGISTER_ERROR
            )
        except BackendUnavailable:
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=REGISTER_ERROR)

        user = UserResponse.model_validate(data["user"])
        response = self._start_session(user, data.get("accessToken"), data.get("refreshToken"))

        if user.user_type == UserRole.DOCTOR:
            self.client.access_token = data.get("accessToken")
            has_credentials = await self.has_submitted_credentials(user.id)
            response.redirect_to = "/d/dashboard" if has_credentials else "/d/credentials"

        logger.info(f"Registered user {user.id} as {user.user_type.value}")
        return response

    async def has_submitted_credentials(self, doctor_id: int) -> bool:
        try:
            data = await self.client.get(f"/doctor/credentials-status/{doctor_id}")
        except (BackendError, BackendUnavailable) as e:
            logger.error(f"Error checking doctor credentials: {e.detail}")
            return False
        return bool((data or {}).get("hasSubmittedCredentials"))

    async def logout(self, session: PortalSession) -> bool:
        """Clear the stored session, then tell the backend if it answers quickly."""
        refresh_token = session.refresh_token
        session.clear()
        self.db.commit()

        try:
            await asyncio.wait_for(
                self.client.post(
                    "/auth/logout",
                    json={"refreshToken": refresh_token},
                    retry=False
                ),
                timeout=2
            )
        except (BackendError, BackendUnavailable, asyncio.TimeoutError):
            logger.warning("Logout API call failed, but session was cleared locally")
        return True

    async def get_profile(self, session: PortalSession) -> UserResponse:
        """Fresh profile from the backend, or the cached copy if that fails."""
        try:
            data = await self.client.get("/auth/profile")
        except (BackendError, BackendUnavailable) as e:
            logger.warning(f"Serving cached profile for user {session.user_id}: {e.detail}")
            return UserResponse.model_validate(session.user)

        user = UserResponse.model_validate(data)
        session.user = user.model_dump(by_alias=True, mode="json")
        self.db.commit()
        return user

    async def update_profile(self, session: PortalSession, profile_data: ProfileUpdate) -> UserResponse:
        payload = profile_data.model_dump(by_alias=True, exclude_none=True)
        if not payload:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Nothing to update"
            )
        try:
            await self.client.put("/auth/profile", json=payload, fallback_error=PROFILE_ERROR)
        except BackendUnavailable:
            raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=PROFILE_ERROR)
        return await self.get_profile(session)

    async def submit_credentials(self, session: PortalSession, credentials: CredentialSubmission) -> dict:
        """Send a doctor's credentials and mark the cached user as pending review."""
        data = await self.client.post(
            "/doctor/credentials",
            json={"doctorId": session.user_id, **credentials.model_dump(by_alias=True)},
            fallback_error="Failed to submit credentials"
        )
        user = session.user
        user["doctorStatus"] = DoctorStatus.PENDING.value
        session.user = user
        self.db.commit()
        return data or {}

    def _start_session(
        self,
        user: UserResponse,
        access_token: Optional[str],
        refresh_token: Optional[str],
    ) -> LoginResponse:
        if not access_token:
            raise AuthenticationError("Backend did not issue an access token")

        session_id = generate_session_id()
        session = PortalSession(
            session_hash=hash_session_id(session_id),
            user_id=user.id,
            user_type=user.user_type.value,
            access_token=access_token,
            refresh_token=refresh_token,
            is_active=True,
        )
        session.user = user.model_dump(by_alias=True, mode="json")
        self.db.add(session)
        self.db.commit()

        token = create_session_token(session_id, user.id, user.user_type.value)
        return LoginResponse(
            session_token=token.session_token,
            token_type=token.token_type,
            expires_in=token.expires_in,
            user=user,
            redirect_to=redirect_for(user),
        )
