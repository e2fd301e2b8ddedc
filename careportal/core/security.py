from datetime import datetime, timedelta
from typing import Optional
from jose import JWTError, jwt
from fastapi import HTTPException, status
from fastapi.security import HTTPBearer
from pydantic import BaseModel
import hashlib
import secrets
import time
from enum import Enum

from .config import settings

# Portal session bearer tokens
security = HTTPBearer()

class UserRole(str, Enum):
    ADMIN = "admin"
    DOCTOR = "doctor"
    PATIENT = "patient"

class DoctorStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

class SessionToken(BaseModel):
    session_token: str
    token_type: str = "bearer"
    expires_in: int

class TokenPayload(BaseModel):
    sub: Optional[str] = None  # portal session id
    user_id: Optional[int] = None
    role: Optional[str] = None
    exp: Optional[int] = None
    token_type: Optional[str] = None

def generate_session_id() -> str:
    """Generate an opaque identifier for a stored session."""
    return secrets.token_urlsafe(32)

def hash_session_id(session_id: str) -> str:
    return hashlib.sha256(session_id.encode()).hexdigest()

# JWT utilities
def create_session_token(
    session_id: str,
    user_id: int,
    role: str,
    expires_delta: Optional[timedelta] = None
) -> SessionToken:
    """Create the portal's bearer token pointing at a stored session."""
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.SESSION_TOKEN_EXPIRE_MINUTES)
    expire = datetime.utcnow() + expires_delta

    to_encode = {
        "sub": session_id,
        "user_id": user_id,
        "role": role,
        "exp": expire,
        "token_type": "session",
    }

    encoded_jwt = jwt.encode(
        to_encode,
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM
    )
    return SessionToken(
        session_token=encoded_jwt,
        expires_in=int(expires_delta.total_seconds())
    )

def verify_token(token: str) -> Optional[TokenPayload]:
    """Verify and decode a portal session token."""
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )

        return TokenPayload(**payload)

    except JWTError:
        return None

def backend_token_expired(token: Optional[str], leeway: int = 0) -> bool:
    """Check the ``exp`` claim of a backend access token.

    The backend's signing key is unknown to the portal, so the claims are read
    without verification. Tokens that are not JWTs or carry no ``exp`` are
    treated as live and left for the backend to judge.
    """
    if not token:
        return True
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return False
    exp = claims.get("exp")
    if exp is None:
        return False
    return int(exp) <= int(time.time()) + leeway

# Security exceptions
class AuthenticationError(HTTPException):
    def __init__(self, detail: str = "Could not validate credentials"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )

class AuthorizationError(HTTPException):
    def __init__(self, detail: str = "Not enough permissions"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
        )
