"""Authentication routes"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from helpdesk.api.deps import (
    ACCESS_COOKIE,
    REFRESH_COOKIE,
    client_ip,
    get_request_context,
    get_token_claims,
)
from helpdesk.config import settings
from helpdesk.core.database import get_db
from helpdesk.core.exceptions import ValidationError
from helpdesk.schemas.response import MessageResponse
from helpdesk.schemas.user import (
    ChangePasswordRequest,
    ForgotPasswordRequest,
    LoginResponse,
    LogoutRequest,
    MeResponse,
    RefreshTokenRequest,
    RegisterResponse,
    ResetPasswordRequest,
    SessionResponse,
    TokenPairResponse,
    UserLogin,
    UserPublic,
    UserRegister,
)
from helpdesk.services.audit_service import RequestContext
from helpdesk.services.auth_service import auth_service
from helpdesk.services.rate_limiter import rate_limiter
from helpdesk.services.token_service import TokenPair

router = APIRouter()

FORGOT_PASSWORD_MESSAGE = "If the email exists, a password reset link has been sent."


def _set_auth_cookies(response: Response, pair: TokenPair) -> None:
    common = {"httponly": True, "samesite": "strict", "secure": settings.is_production, "path": "/"}
    response.set_cookie(
        ACCESS_COOKIE,
        pair.access_token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        **common,
    )
    response.set_cookie(
        REFRESH_COOKIE,
        pair.refresh_token,
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 3600,
        **common,
    )


def _clear_auth_cookies(response: Response) -> None:
    for name in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.delete_cookie(name, path="/", httponly=True, samesite="strict", secure=settings.is_production)


def _auth_gate(request: Request, scope: str) -> None:
    rate_limiter.enforce(
        scope,
        client_ip(request),
        per_minute=settings.AUTH_RATE_LIMIT_PER_MINUTE,
        per_hour=settings.AUTH_RATE_LIMIT_PER_HOUR,
    )


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
def register(
    body: UserRegister,
    request: Request,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """
    Register a password account

    Returns:
        New user id; a verification link is mailed when mail is configured
    """
    _auth_gate(request, "register")
    user = auth_service.register(
        db,
        email=body.email,
        password=body.password,
        name=body.name,
        role=body.role.value,
        context=context,
    )
    return RegisterResponse(
        message="User registered successfully. Please check your email to verify your account.",
        userId=user.id,
    )


@router.post("/login", response_model=LoginResponse)
def login(
    credentials: UserLogin,
    request: Request,
    response: Response,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """
    Login endpoint - verify password and issue an access/refresh pair

    Both tokens are returned in the body and set as http-only cookies.
    """
    _auth_gate(request, f"login:{credentials.email}")
    pair = auth_service.login(
        db,
        email=credentials.email,
        password=credentials.password,
        device_id=credentials.device_id,
        context=context,
    )
    _set_auth_cookies(response, pair)
    return LoginResponse(
        user=UserPublic(**pair.user.to_public_dict()),
        accessToken=pair.access_token,
        refreshToken=pair.refresh_token,
    )


@router.post("/refresh", response_model=TokenPairResponse)
def refresh_token(
    request: Request,
    response: Response,
    body: Optional[RefreshTokenRequest] = None,
    db: Session = Depends(get_db),
):
    """Rotate a refresh token (body or cookie) into a new pair"""
    rate_limiter.enforce(
        "refresh",
        client_ip(request),
        per_minute=settings.REFRESH_RATE_LIMIT_PER_MINUTE,
    )
    token = (body.refresh_token if body else None) or request.cookies.get(REFRESH_COOKIE)
    if not token:
        raise ValidationError("Refresh token required")

    pair = auth_service.refresh(db, token)
    _set_auth_cookies(response, pair)
    return TokenPairResponse(accessToken=pair.access_token, refreshToken=pair.refresh_token)


@router.post("/logout", response_model=MessageResponse)
def logout(
    request: Request,
    response: Response,
    body: Optional[LogoutRequest] = None,
    claims: Dict[str, Any] = Depends(get_token_claims),
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    token = (body.refresh_token if body else None) or request.cookies.get(REFRESH_COOKIE)
    revoked = auth_service.logout(db, claims=claims, refresh_token=token, context=context)
    _clear_auth_cookies(response)
    return MessageResponse(message="Logout successful", data={"refreshTokenRevoked": revoked})


@router.post("/logout-all", response_model=MessageResponse)
def logout_all(
    response: Response,
    claims: Dict[str, Any] = Depends(get_token_claims),
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """Revoke every refresh token of the caller (all devices)"""
    count = auth_service.logout_all(db, claims=claims, context=context)
    _clear_auth_cookies(response)
    return MessageResponse(message="Logged out from all devices", data={"revokedCount": count})


@router.get("/sessions", response_model=List[SessionResponse])
def list_sessions(
    claims: Dict[str, Any] = Depends(get_token_claims),
    db: Session = Depends(get_db),
):
    sessions = []
    for row in auth_service.list_sessions(db, int(claims["sub"])):
        info = row.device_details()
        sessions.append(
            SessionResponse(
                id=row.id,
                deviceId=row.device_id,
                ipAddress=info.get("ip"),
                userAgent=info.get("user_agent"),
                createdAt=row.created_at,
                expiresAt=row.expires_at,
            )
        )
    return sessions


@router.get("/verify-email", response_model=MessageResponse)
def verify_email(token: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    auth_service.verify_email(db, token)
    return MessageResponse(message="Email verified successfully")


@router.post("/forgot-password", response_model=MessageResponse)
def forgot_password(
    body: ForgotPasswordRequest,
    request: Request,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    """
    Start a password reset

    The response is identical whether or not the account exists.
    """
    _auth_gate(request, "forgot-password")
    auth_service.request_password_reset(db, email=body.email, context=context)
    return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse)
def reset_password(
    body: ResetPasswordRequest,
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    auth_service.reset_password(db, token=body.token, new_password=body.password, context=context)
    return MessageResponse(message="Password reset successfully")


@router.get("/me", response_model=MeResponse)
def get_current_user_info(
    claims: Dict[str, Any] = Depends(get_token_claims),
    db: Session = Depends(get_db),
):
    """Profile and effective permissions of the token holder"""
    user, permissions = auth_service.get_profile(db, int(claims["sub"]))
    return MeResponse(user=UserPublic(**user.to_public_dict()), permissions=permissions)


@router.post("/change-password", response_model=MessageResponse)
def change_password(
    body: ChangePasswordRequest,
    claims: Dict[str, Any] = Depends(get_token_claims),
    context: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db),
):
    auth_service.change_password(
        db,
        user_id=int(claims["sub"]),
        current_password=body.current_password,
        new_password=body.new_password,
        context=context,
    )
    return MessageResponse(message="Password changed successfully")
