"""User model"""

from enum import Enum

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from helpdesk.core.database import Base


class UserRole(str, Enum):
    """User role enumeration"""
    CLIENT = "client"
    SUPPORT = "support"
    MANAGER = "manager"
    ADMIN = "admin"


class User(Base):
    """Staff and client accounts for password authentication"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(120), nullable=False)
    password_hash = Column(String(255), nullable=True)
    role = Column(String(20), default=UserRole.CLIENT.value, nullable=False)
    department = Column(String(120), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    email_verification_token = Column(String(128), unique=True, nullable=True)
    password_reset_token = Column(String(128), unique=True, nullable=True)
    password_reset_expires = Column(DateTime(timezone=True), nullable=True)
    failed_login_attempts = Column(Integer, default=0, nullable=False)
    account_locked_until = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_login = Column(DateTime(timezone=True))

    # Relationships
    refresh_tokens = relationship("RefreshToken", cascade="all, delete-orphan", back_populates="user")
    permissions = relationship("UserPermission", cascade="all, delete-orphan", back_populates="user")

    __table_args__ = (
        Index('idx_users_role', 'role'),
    )

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"

    def to_public_dict(self):
        """Fields safe to return to the account holder (never the hash or tokens)"""
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "department": self.department,
            "isVerified": bool(self.is_verified),
            "isActive": bool(self.is_active),
            "lastLogin": self.last_login.isoformat() if self.last_login else None,
        }
