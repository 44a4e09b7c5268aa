"""Credential authentication schemas"""

import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from helpdesk.models.user import UserRole
from helpdesk.services.user_service import normalize_email

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# Roles a caller may pick for themselves at registration.
SELF_SERVICE_ROLES = (UserRole.CLIENT, UserRole.SUPPORT, UserRole.MANAGER)


def validate_email(value: str) -> str:
    """Normalize an email address and reject malformed ones"""
    email = normalize_email(value)
    if len(email) > 255 or not EMAIL_PATTERN.match(email):
        raise ValueError("Invalid email address")
    return email


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class EmailField(_CamelModel):
    email: str

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, v):
        return validate_email(v)


class UserRegister(EmailField):
    """Self-registration payload"""
    password: str = Field(..., min_length=1)
    name: str = Field(..., max_length=120)
    role: UserRole = UserRole.CLIENT

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v):
        v = v.strip()
        if len(v) < 2:
            raise ValueError("Name must be at least 2 characters")
        return v

    @field_validator("role")
    @classmethod
    def _self_service_role(cls, v):
        if v not in SELF_SERVICE_ROLES:
            raise ValueError("Role must be one of: client, support, manager")
        return v


class UserLogin(EmailField):
    """User login schema"""
    password: str = Field(..., min_length=1)
    device_id: Optional[str] = Field(None, alias="deviceId", max_length=128)


class RefreshTokenRequest(_CamelModel):
    refresh_token: Optional[str] = Field(None, alias="refreshToken")


class LogoutRequest(_CamelModel):
    refresh_token: Optional[str] = Field(None, alias="refreshToken")


class ForgotPasswordRequest(EmailField):
    pass


class ResetPasswordRequest(_CamelModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class ChangePasswordRequest(_CamelModel):
    current_password: str = Field(..., alias="currentPassword", min_length=1)
    new_password: str = Field(..., alias="newPassword", min_length=1)


class UserPublic(_CamelModel):
    """Public user fields; never carries the password hash"""
    id: int
    email: str
    name: str
    role: str
    department: Optional[str] = None
    is_verified: bool = Field(False, alias="isVerified")
    is_active: bool = Field(True, alias="isActive")
    last_login: Optional[datetime] = Field(None, alias="lastLogin")


class RegisterResponse(_CamelModel):
    message: str
    user_id: int = Field(..., alias="userId")


class LoginResponse(_CamelModel):
    message: str = "Login successful"
    user: UserPublic
    access_token: str = Field(..., alias="accessToken")
    refresh_token: str = Field(..., alias="refreshToken")


class TokenPairResponse(_CamelModel):
    message: str = "Token refreshed successfully"
    access_token: str = Field(..., alias="accessToken")
    refresh_token: str = Field(..., alias="refreshToken")


class MeResponse(_CamelModel):
    user: UserPublic
    permissions: List[Dict[str, Any]]


class SessionResponse(_CamelModel):
    """An active refresh-token session (device), never the token itself"""
    id: int
    device_id: str = Field(..., alias="deviceId")
    ip_address: Optional[str] = Field(None, alias="ipAddress")
    user_agent: Optional[str] = Field(None, alias="userAgent")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    expires_at: datetime = Field(..., alias="expiresAt")
