"""Authentication schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from brevet.modules.users.models import UserRole


class LoginRequest(BaseModel):
    """Login request schema."""

    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshRequest(BaseModel):
    """Refresh request schema."""

    refresh_token: str = Field(..., min_length=1)


class LogoutRequest(BaseModel):
    """Logout request schema. The access credential comes from the header."""

    refresh_token: str = Field(..., min_length=1)


class UserResponse(BaseModel):
    """User response schema for login."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    name: str
    role: UserRole
    is_active: bool
    is_verified: bool
    created_at: datetime


class LoginResponse(BaseModel):
    """Login response schema."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserResponse


class AccessTokenResponse(BaseModel):
    """Refresh response schema."""

    access_token: str
    token_type: str = "bearer"


class CurrentUserResponse(BaseModel):
    """Identity carried by the caller's access credential."""

    id: UUID
    email: str
    role: UserRole | None = None
    name: str | None = None
    expires_at: datetime


class MessageResponse(BaseModel):
    """Generic message response."""

    message: str
