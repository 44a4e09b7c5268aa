"""Credential authentication flow for staff and client accounts.

Orchestrates the directory, the login guard and the refresh-token ledger.
Failures that could reveal whether an account exists collapse into one
caller-visible error; the specific cause travels on ``reason`` for the logs.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from helpdesk.config import settings
from helpdesk.core import security
from helpdesk.core.exceptions import (
    AccountDisabledError,
    AccountLockedError,
    AuthenticationError,
    CurrentPasswordIncorrectError,
    EmailDeliveryError,
    EmailNotVerifiedError,
    InvalidCredentialsError,
    InvalidTokenError,
    ResourceAlreadyExistsError,
    ResourceNotFoundError,
    WeakPasswordError,
)
from helpdesk.models.audit import AuditAction
from helpdesk.models.security import RefreshToken
from helpdesk.models.user import User, UserRole
from helpdesk.services.audit_service import RequestContext, audit_service
from helpdesk.services.email_service import email_service, redact_email
from helpdesk.services.login_guard import login_guard
from helpdesk.services.permission_service import permission_service
from helpdesk.services.token_service import TokenPair, token_service
from helpdesk.services.user_service import normalize_email, user_service

logger = logging.getLogger(__name__)


def _check_strength(password: str, message: str = "Password does not meet requirements") -> None:
    problems = security.validate_password_strength(password)
    if problems:
        raise WeakPasswordError(problems, message=message)


class AuthService:
    """Registration, login, token refresh, logout and password workflows"""

    @staticmethod
    def register(
        db: Session,
        *,
        email: str,
        password: str,
        name: str,
        role: str = UserRole.CLIENT.value,
        context: Optional[RequestContext] = None,
    ) -> User:
        email = normalize_email(email)
        if user_service.get_user_by_email(db, email):
            raise ResourceAlreadyExistsError("User")
        _check_strength(password)

        verification_token = security.generate_secure_token()
        try:
            user = user_service.create_user(
                db,
                email=email,
                name=name,
                password_hash=security.get_password_hash(password),
                role=role,
                email_verification_token=verification_token,
            )
        except IntegrityError:
            # Lost a race with a concurrent registration for the same email.
            db.rollback()
            raise ResourceAlreadyExistsError("User")

        # Verification mail is best-effort.
        try:
            email_service.send_email_verification(user.email, verification_token)
        except EmailDeliveryError as exc:
            logger.warning(f"Verification email not delivered to {redact_email(user.email)}: {exc.reason}")

        audit_service.log_auth_event(
            db,
            action=AuditAction.REGISTER,
            email=user.email,
            success=True,
            user_id=user.id,
            context=context,
            details={"userId": user.id, "role": user.role},
        )
        return user

    @staticmethod
    def login(
        db: Session,
        *,
        email: str,
        password: str,
        device_id: Optional[str] = None,
        context: Optional[RequestContext] = None,
    ) -> TokenPair:
        email = normalize_email(email)
        context = context or RequestContext()

        user = user_service.get_user_by_email(db, email)
        if user is None:
            audit_service.log_auth_event(
                db,
                action=AuditAction.FAILED_LOGIN,
                email=email,
                success=False,
                context=context,
                device_id=device_id,
                details={"reason": "User not found"},
            )
            raise InvalidCredentialsError(reason="unknown_email")

        lockout = login_guard.check_lockout(user)
        if not lockout.allowed:
            audit_service.log_auth_event(
                db,
                action=AuditAction.FAILED_LOGIN,
                email=email,
                success=False,
                user_id=user.id,
                context=context,
                device_id=device_id,
                details={"reason": "Account locked"},
            )
            raise AccountLockedError(lockout.locked_until.isoformat())

        if not user.is_active:
            audit_service.log_auth_event(
                db,
                action=AuditAction.FAILED_LOGIN,
                email=email,
                success=False,
                user_id=user.id,
                context=context,
                device_id=device_id,
                details={"reason": "Account deactivated"},
            )
            raise AccountDisabledError()

        if not security.verify_password(password, user.password_hash):
            failed_attempts, locked_until = login_guard.record_failure(db, email)
            details: Dict[str, Any] = {"reason": "Invalid password", "failedAttempts": failed_attempts}
            if locked_until:
                details["lockedUntil"] = locked_until.isoformat()
            audit_service.log_auth_event(
                db,
                action=AuditAction.FAILED_LOGIN,
                email=email,
                success=False,
                user_id=user.id,
                context=context,
                device_id=device_id,
                details=details,
            )
            raise InvalidCredentialsError(reason="wrong_password")

        if not user.is_verified:
            if settings.REQUIRE_VERIFIED_EMAIL:
                raise EmailNotVerifiedError()
            logger.info(f"User {redact_email(email)} not verified, login allowed by policy")

        login_guard.record_success(db, user.id)
        pair = token_service.issue_token_pair(
            db,
            user,
            device_id=device_id,
            device_info={"ip": context.ip_address, "user_agent": context.user_agent},
        )
        audit_service.log_auth_event(
            db,
            action=AuditAction.LOGIN,
            email=email,
            success=True,
            user_id=user.id,
            context=context,
            device_id=pair.device_id,
            details={"method": "password"},
        )
        return pair

    @staticmethod
    def refresh(db: Session, refresh_token: str) -> TokenPair:
        try:
            return token_service.rotate_refresh_token(db, refresh_token)
        except AuthenticationError as exc:
            logger.info(f"Refresh rejected: {exc.reason or exc.message}")
            raise

    @staticmethod
    def logout(
        db: Session,
        *,
        claims: Dict[str, Any],
        refresh_token: Optional[str] = None,
        context: Optional[RequestContext] = None,
    ) -> bool:
        """Revoke the supplied refresh token (if any) and record the logout.

        Identity comes from the access token claims, so logout succeeds even
        when the refresh token is missing or already dead.
        """
        user_id = int(claims["sub"])
        revoked = False
        if refresh_token:
            revoked = token_service.revoke(db, refresh_token, user_id=user_id)

        audit_service.log_auth_event(
            db,
            action=AuditAction.LOGOUT,
            email=claims.get("email") or "",
            success=True,
            user_id=user_id,
            context=context,
            device_id=claims.get("device_id"),
            details={"refreshTokenRevoked": revoked},
        )
        return revoked

    @staticmethod
    def logout_all(
        db: Session,
        *,
        claims: Dict[str, Any],
        context: Optional[RequestContext] = None,
    ) -> int:
        user_id = int(claims["sub"])
        count = token_service.revoke_all_for_user(db, user_id)
        audit_service.log_auth_event(
            db,
            action=AuditAction.LOGOUT,
            email=claims.get("email") or "",
            success=True,
            user_id=user_id,
            context=context,
            device_id=claims.get("device_id"),
            details={"scope": "all_devices", "revokedCount": count},
        )
        return count

    @staticmethod
    def list_sessions(db: Session, user_id: int) -> List[RefreshToken]:
        return token_service.list_active_sessions(db, user_id)

    @staticmethod
    def get_profile(db: Session, user_id: int) -> Tuple[User, List[Dict[str, Any]]]:
        user = user_service.get_user_by_id(db, user_id)
        if user is None:
            raise ResourceNotFoundError("User")
        return user, permission_service.get_user_permissions(db, user)

    @staticmethod
    def change_password(
        db: Session,
        *,
        user_id: int,
        current_password: str,
        new_password: str,
        context: Optional[RequestContext] = None,
    ) -> None:
        user = user_service.get_user_by_id(db, user_id)
        if user is None:
            raise ResourceNotFoundError("User")
        if not security.verify_password(current_password, user.password_hash):
            raise CurrentPasswordIncorrectError()
        _check_strength(new_password, "New password does not meet requirements")

        user_service.update_password(db, user, security.get_password_hash(new_password))
        revoked = 0
        if settings.REVOKE_SESSIONS_ON_PASSWORD_CHANGE:
            revoked = token_service.revoke_all_for_user(db, user.id)

        audit_service.log_auth_event(
            db,
            action=AuditAction.PASSWORD_CHANGED,
            email=user.email,
            success=True,
            user_id=user.id,
            context=context,
            details={"revokedSessions": revoked} if revoked else None,
        )

    @staticmethod
    def request_password_reset(
        db: Session,
        *,
        email: str,
        context: Optional[RequestContext] = None,
    ) -> None:
        """Issue a reset token and mail it. Silent when the account is unknown.

        Mail failure is raised to the caller: without the message there is no
        way to complete the reset.
        """
        email = normalize_email(email)
        user = user_service.get_user_by_email(db, email)
        if user is None:
            logger.info(f"Password reset requested for unknown email {redact_email(email)}")
            return

        reset_token = security.generate_secure_token()
        expires_at = security.utcnow() + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES)
        user_service.set_password_reset_token(db, user, reset_token, expires_at)

        try:
            email_service.send_password_reset(user.email, reset_token)
        except EmailDeliveryError as exc:
            audit_service.log_auth_event(
                db,
                action=AuditAction.PASSWORD_RESET_REQUESTED,
                email=user.email,
                success=False,
                user_id=user.id,
                context=context,
                details={"reason": "Email delivery failed"},
            )
            raise EmailDeliveryError("Failed to send reset email", reason=exc.reason) from exc

        audit_service.log_auth_event(
            db,
            action=AuditAction.PASSWORD_RESET_REQUESTED,
            email=user.email,
            success=True,
            user_id=user.id,
            context=context,
        )

    @staticmethod
    def reset_password(
        db: Session,
        *,
        token: str,
        new_password: str,
        context: Optional[RequestContext] = None,
    ) -> None:
        user = user_service.get_user_by_reset_token(db, token)
        if user is None:
            raise InvalidTokenError("Invalid or expired reset token")
        _check_strength(new_password)

        # Clearing the token in the same conditional update makes it single-use
        # even if two requests present it at once.
        consumed = (
            db.query(User)
            .filter(User.id == user.id, User.password_reset_token == token)
            .update(
                {
                    User.password_hash: security.get_password_hash(new_password),
                    User.password_reset_token: None,
                    User.password_reset_expires: None,
                },
                synchronize_session=False,
            )
        )
        if consumed != 1:
            db.rollback()
            raise InvalidTokenError("Invalid or expired reset token")
        db.commit()

        if settings.REVOKE_SESSIONS_ON_PASSWORD_CHANGE:
            token_service.revoke_all_for_user(db, user.id)

        audit_service.log_auth_event(
            db,
            action=AuditAction.PASSWORD_RESET_COMPLETED,
            email=user.email,
            success=True,
            user_id=user.id,
            context=context,
        )

    @staticmethod
    def verify_email(db: Session, token: str) -> User:
        user = user_service.get_user_by_verification_token(db, token)
        if user is None:
            raise InvalidTokenError("Invalid verification token")
        user_service.mark_verified(db, user)
        logger.info(f"Email verified for user {user.id}")
        return user

    @staticmethod
    def bootstrap_admin(db: Session) -> Optional[User]:
        """Create the configured admin account if it does not exist yet"""
        if user_service.get_user_by_email(db, settings.ADMIN_EMAIL):
            return None
        user = user_service.create_user(
            db,
            email=settings.ADMIN_EMAIL,
            name=settings.ADMIN_NAME,
            password_hash=security.get_password_hash(settings.ADMIN_PASSWORD),
            role=UserRole.ADMIN.value,
            is_verified=True,
        )
        logger.info(f"Created admin user: {user.email}")
        return user


auth_service = AuthService()
