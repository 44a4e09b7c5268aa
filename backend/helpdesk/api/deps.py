"""API dependencies - authentication and authorization"""

from typing import Any, Callable, Dict, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from helpdesk.core.database import get_db
from helpdesk.core.security import decode_access_token
from helpdesk.core.exceptions import AuthenticationError, AuthorizationError, TokenInvalidError
from helpdesk.models.user import User, UserRole
from helpdesk.services.audit_service import RequestContext
from helpdesk.services.otp_service import OTPService, otp_service
from helpdesk.services.user_service import user_service

ACCESS_COOKIE = "accessToken"
REFRESH_COOKIE = "refreshToken"

# Bearer header is optional: the access token may come from the cookie instead
security = HTTPBearer(auto_error=False)


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def get_request_context(request: Request) -> RequestContext:
    return RequestContext(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


def get_token_claims(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Dict[str, Any]:
    """
    Verified access-token claims from the bearer header or the access cookie

    Raises:
        TokenInvalidError: If no token is present or it fails verification
    """
    token = credentials.credentials if credentials else request.cookies.get(ACCESS_COOKIE)
    if not token:
        raise TokenInvalidError("Access token required", reason="missing_token")

    payload = decode_access_token(token)
    if not payload:
        raise TokenInvalidError(reason="verification_failed")
    return payload


def get_current_user(
    claims: Dict[str, Any] = Depends(get_token_claims),
    db: Session = Depends(get_db),
) -> User:
    """
    Get current authenticated user from the access token

    Raises:
        AuthenticationError: If the user no longer exists or is disabled
    """
    user = user_service.get_user_by_id(db, int(claims["sub"]))
    if not user:
        raise AuthenticationError("User not found")
    if not user.is_active:
        raise AuthenticationError("User account is disabled")
    return user


def require_roles(*roles: UserRole) -> Callable[..., User]:
    """Dependency factory: current user whose role is one of ``roles``"""
    allowed = {UserRole(r).value for r in roles}

    def _dependency(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in allowed:
            raise AuthorizationError("Insufficient permissions")
        return current_user

    return _dependency


def get_otp_service() -> OTPService:
    return otp_service
