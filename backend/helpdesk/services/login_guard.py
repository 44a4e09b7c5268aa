"""Brute-force lockout policy for password logins.

Counters live on the user row, so lockouts survive process restarts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from helpdesk.config import settings
from helpdesk.core import security
from helpdesk.models.user import User
from helpdesk.services.user_service import normalize_email

logger = logging.getLogger(__name__)


@dataclass
class LockoutStatus:
    allowed: bool
    locked_until: Optional[datetime] = None


class LoginGuard:
    """Decide whether a login may proceed and track failed attempts."""

    @staticmethod
    def check_lockout(user: User) -> LockoutStatus:
        locked_until = security.naive_utc(user.account_locked_until)
        if locked_until and locked_until > security.utcnow():
            return LockoutStatus(allowed=False, locked_until=locked_until)
        return LockoutStatus(allowed=True)

    @staticmethod
    def record_failure(db: Session, email: str) -> Tuple[int, Optional[datetime]]:
        """
        Count a wrong-password attempt against an existing account

        The increment happens in SQL so concurrent failures are not lost.

        Returns:
            (new failure count, lock expiry if this attempt triggered a lock)
        """
        key = normalize_email(email)
        db.query(User).filter(User.email == key).update(
            {User.failed_login_attempts: User.failed_login_attempts + 1},
            synchronize_session=False,
        )
        user = db.query(User).filter(User.email == key).populate_existing().first()
        if user is None:
            db.rollback()
            return 0, None

        locked_until = None
        if user.failed_login_attempts >= settings.MAX_FAILED_LOGIN_ATTEMPTS:
            locked_until = security.utcnow() + timedelta(minutes=settings.LOCKOUT_DURATION_MINUTES)
            user.account_locked_until = locked_until
            logger.warning(
                f"Account locked for user: {key} after {user.failed_login_attempts} failed attempts"
            )
        count = user.failed_login_attempts
        db.commit()
        return count, locked_until

    @staticmethod
    def record_success(db: Session, user_id: int) -> None:
        db.query(User).filter(User.id == user_id).update(
            {
                User.failed_login_attempts: 0,
                User.account_locked_until: None,
                User.last_login: security.utcnow(),
            },
            synchronize_session=False,
        )
        db.commit()


login_guard = LoginGuard()
