"""Refresh token ledger."""

import json

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index, Text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from helpdesk.core.database import Base


class RefreshToken(Base):
    """Server-side record of an issued refresh token.

    Only the SHA-256 digest of the token is stored. A refresh token is usable
    only while its row exists, is not revoked and has not expired.
    """

    __tablename__ = "jwt_refresh_tokens"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token_hash = Column(String(64), unique=True, nullable=False)
    token_jti = Column(String(64), nullable=True)
    device_id = Column(String(128), nullable=False, default="unknown")
    device_info = Column(Text, nullable=True)
    is_revoked = Column(Boolean, default=False, nullable=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    replaced_by_jti = Column(String(64), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="refresh_tokens")

    __table_args__ = (
        Index("idx_jwt_refresh_tokens_user_device", "user_id", "device_id"),
    )

    def device_details(self):
        """ip and user_agent captured when the session was issued"""
        if not self.device_info:
            return {}
        try:
            return json.loads(self.device_info)
        except ValueError:
            return {}
