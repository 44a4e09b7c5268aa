"""Custom exception classes for the application"""

from typing import Optional, Dict, Any


class BaseAPIException(Exception):
    """Base exception for all API errors

    ``reason`` carries the internal cause for server-side logs only; it is
    never part of the response body.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
        reason: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.reason = reason
        super().__init__(self.message)


# Authentication Errors
class AuthenticationError(BaseAPIException):
    """Base authentication error"""
    def __init__(self, message: str = "Authentication failed", reason: Optional[str] = None):
        super().__init__(message, status_code=401, reason=reason)


class InvalidCredentialsError(AuthenticationError):
    """Unknown email or wrong password; the two are indistinguishable to callers"""
    def __init__(self, reason: Optional[str] = None):
        super().__init__("Invalid credentials", reason=reason)


class TokenInvalidError(AuthenticationError):
    """Access token is missing, malformed, expired or of the wrong type"""
    def __init__(self, message: str = "Invalid or expired token", reason: Optional[str] = None):
        super().__init__(message, reason=reason)


class RefreshTokenInvalidError(AuthenticationError):
    """Refresh token failed cryptographic verification"""
    def __init__(self, reason: Optional[str] = None):
        super().__init__("Invalid refresh token", reason=reason)


class RefreshTokenRevokedError(AuthenticationError):
    """Refresh token verified but has no live ledger row"""
    def __init__(self, reason: Optional[str] = None):
        super().__init__("Refresh token not found or revoked", reason=reason)


class AccountDisabledError(AuthenticationError):
    def __init__(self):
        super().__init__("Account is deactivated")


class CurrentPasswordIncorrectError(AuthenticationError):
    def __init__(self):
        super().__init__("Current password is incorrect")


class AccountLockedError(BaseAPIException):
    """Account is locked due to failed login attempts"""
    def __init__(self, locked_until: str):
        super().__init__(
            "Account is temporarily locked",
            status_code=423,
            details={"locked_until": locked_until}
        )


# Authorization Errors
class AuthorizationError(BaseAPIException):
    """Insufficient permissions"""
    def __init__(self, message: str = "Insufficient permissions", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=403, details=details)


class EmailNotVerifiedError(AuthorizationError):
    def __init__(self):
        super().__init__("Email address has not been verified")


# Resource Errors
class ResourceNotFoundError(BaseAPIException):
    """Resource not found"""
    def __init__(self, resource: str):
        super().__init__(f"{resource} not found", status_code=404)


class ResourceAlreadyExistsError(BaseAPIException):
    """Resource already exists"""
    def __init__(self, resource: str):
        super().__init__(f"{resource} already exists", status_code=409)


# Validation Errors
class ValidationError(BaseAPIException):
    """Validation error"""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=400, details=details)


class WeakPasswordError(ValidationError):
    """Password rejected by the strength policy"""
    def __init__(self, problems, message: str = "Password does not meet requirements"):
        super().__init__(message, details={"problems": list(problems)})


class InvalidTokenError(ValidationError):
    """Unknown, consumed or expired single-use token (verification / reset)"""
    def __init__(self, message: str):
        super().__init__(message)


class OTPNotFoundError(ValidationError):
    def __init__(self):
        super().__init__("No OTP found for this email")


class OTPExpiredError(ValidationError):
    def __init__(self):
        super().__init__("OTP expired")


class OTPMismatchError(ValidationError):
    def __init__(self):
        super().__init__("Invalid OTP")


# System Errors
class EmailDeliveryError(BaseAPIException):
    """Outbound mail could not be delivered (SMTP failure or timeout)"""
    def __init__(self, message: str = "Failed to send email", reason: Optional[str] = None):
        super().__init__(message, status_code=500, reason=reason)


class RateLimitExceededError(BaseAPIException):
    """Rate limit exceeded"""
    def __init__(self, message: str = "Rate limit exceeded. Please try again later."):
        super().__init__(message, status_code=429)
