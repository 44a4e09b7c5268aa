"""Client portal (OTP) schemas"""

from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from helpdesk.schemas.user import EmailField, _CamelModel


class OTPRequest(EmailField):
    pass


class OTPVerifyRequest(EmailField):
    otp: str

    @field_validator("otp")
    @classmethod
    def _six_digits(cls, v):
        v = v.strip()
        if len(v) != 6 or not v.isdigit():
            raise ValueError("OTP must be a 6-digit code")
        return v


class CheckAuthRequest(EmailField):
    pass


class OTPRequestResponse(_CamelModel):
    success: bool = True
    message: str
    expires_at: datetime = Field(..., alias="expiresAt")
    otp: Optional[str] = None


class OTPVerifyResponse(_CamelModel):
    success: bool = True
    message: str = "OTP verified"
    expires_at: datetime = Field(..., alias="expiresAt")


class CheckAuthResponse(_CamelModel):
    authenticated: bool
