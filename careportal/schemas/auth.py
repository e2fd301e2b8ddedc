from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Optional

from ..core.security import UserRole

class UserLogin(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)

class UserRegister(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    password: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    user_type: UserRole = Field(UserRole.PATIENT, alias="userType")

class ProfileUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    current_password: Optional[str] = Field(None, alias="currentPassword")
    new_password: Optional[str] = Field(None, alias="newPassword")

class UserResponse(BaseModel):
    """User as transported by the backend and cached by the portal."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    email: str
    name: Optional[str] = None
    user_type: UserRole = Field(..., alias="userType")
    doctor_status: Optional[str] = Field(None, alias="doctorStatus")

class LoginResponse(BaseModel):
    session_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse
    redirect_to: str
