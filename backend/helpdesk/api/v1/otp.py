"""Client portal routes: passwordless one-time codes"""

from fastapi import APIRouter, Depends, Request

from helpdesk.api.deps import client_ip, get_otp_service
from helpdesk.config import settings
from helpdesk.schemas.otp import (
    CheckAuthRequest,
    CheckAuthResponse,
    OTPRequest,
    OTPRequestResponse,
    OTPVerifyRequest,
    OTPVerifyResponse,
)
from helpdesk.services.otp_service import OTPService
from helpdesk.services.rate_limiter import rate_limiter

router = APIRouter()


@router.post("/request-otp", response_model=OTPRequestResponse, response_model_exclude_none=True)
def request_otp(
    body: OTPRequest,
    request: Request,
    otp: OTPService = Depends(get_otp_service),
):
    """
    Issue a six-digit code for the email

    The code is only echoed back in development mode (no real mail transport
    outside production); otherwise it is mailed.
    """
    rate_limiter.enforce(
        f"otp:{body.email}",
        client_ip(request),
        per_minute=settings.OTP_RATE_LIMIT_PER_MINUTE,
    )
    issued = otp.request_otp(body.email)
    if issued.dev_mode:
        return OTPRequestResponse(
            message="OTP generated (development mode)",
            expiresAt=issued.expires_at,
            otp=issued.code,
        )
    return OTPRequestResponse(message="OTP sent to email", expiresAt=issued.expires_at)


@router.post("/verify-otp", response_model=OTPVerifyResponse)
def verify_otp(body: OTPVerifyRequest, otp: OTPService = Depends(get_otp_service)):
    session = otp.verify_otp(body.email, body.otp)
    return OTPVerifyResponse(expiresAt=session.expires_at)


@router.post("/check-auth", response_model=CheckAuthResponse)
def check_auth(body: CheckAuthRequest, otp: OTPService = Depends(get_otp_service)):
    return CheckAuthResponse(authenticated=otp.check_session(body.email))

