"""User directory - account lookups and updates"""

from sqlalchemy.orm import Session
from typing import Optional
from helpdesk.core import security
from helpdesk.models.user import User
import logging

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    """Canonical form used for every email lookup and store key"""
    return (email or "").strip().lower()


class UserService:
    """Read/write access to the account directory"""

    @staticmethod
    def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
        """Get user by ID"""
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[User]:
        """Get user by email, case-insensitively"""
        return db.query(User).filter(User.email == normalize_email(email)).first()

    @staticmethod
    def get_user_by_verification_token(db: Session, token: str) -> Optional[User]:
        if not token:
            return None
        return db.query(User).filter(User.email_verification_token == token).first()

    @staticmethod
    def get_user_by_reset_token(db: Session, token: str) -> Optional[User]:
        """Get the user owning an unexpired password reset token"""
        if not token:
            return None
        return (
            db.query(User)
            .filter(
                User.password_reset_token == token,
                User.password_reset_expires > security.utcnow(),
            )
            .first()
        )

    @staticmethod
    def create_user(
        db: Session,
        *,
        email: str,
        name: str,
        password_hash: Optional[str],
        role: str,
        is_verified: bool = False,
        email_verification_token: Optional[str] = None,
    ) -> User:
        """
        Create new user

        Args:
            db: Database session
            email: Email address, stored lower-case
            name: Display name
            password_hash: bcrypt hash
            role: Role value

        Returns:
            Created user
        """
        user = User(
            email=normalize_email(email),
            name=name,
            password_hash=password_hash,
            role=role,
            is_active=True,
            is_verified=is_verified,
            email_verification_token=email_verification_token,
            failed_login_attempts=0,
        )
        db.add(user)
        db.commit()
        db.refresh(user)

        logger.info(f"Created user: {user.email} (role: {user.role})")
        return user

    @staticmethod
    def update_password(db: Session, user: User, password_hash: str) -> None:
        user.password_hash = password_hash
        db.commit()

    @staticmethod
    def set_password_reset_token(db: Session, user: User, token: str, expires_at) -> None:
        user.password_reset_token = token
        user.password_reset_expires = expires_at
        db.commit()

    @staticmethod
    def mark_verified(db: Session, user: User) -> None:
        user.is_verified = True
        user.email_verification_token = None
        db.commit()


# Singleton instance
user_service = UserService()
