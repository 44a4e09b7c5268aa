"""Pydantic schemas for API validation"""

from helpdesk.schemas.user import (
    UserRegister,
    UserLogin,
    UserPublic,
    RefreshTokenRequest,
    LogoutRequest,
    ForgotPasswordRequest,
    ResetPasswordRequest,
    ChangePasswordRequest,
    RegisterResponse,
    LoginResponse,
    TokenPairResponse,
    MeResponse,
    SessionResponse,
)
from helpdesk.schemas.otp import (
    OTPRequest,
    OTPVerifyRequest,
    CheckAuthRequest,
    OTPRequestResponse,
    OTPVerifyResponse,
    CheckAuthResponse,
)
from helpdesk.schemas.response import MessageResponse, ErrorResponse
from helpdesk.schemas.audit import AuditEventResponse

__all__ = [
    "UserRegister", "UserLogin", "UserPublic", "RefreshTokenRequest", "LogoutRequest",
    "ForgotPasswordRequest", "ResetPasswordRequest", "ChangePasswordRequest",
    "RegisterResponse", "LoginResponse", "TokenPairResponse", "MeResponse", "SessionResponse",
    "OTPRequest", "OTPVerifyRequest", "CheckAuthRequest",
    "OTPRequestResponse", "OTPVerifyResponse", "CheckAuthResponse",
    "AuditEventResponse",
    "MessageResponse", "ErrorResponse",
]
