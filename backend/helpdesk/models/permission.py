"""Per-user permission overrides."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from helpdesk.core.database import Base


class UserPermission(Base):
    """Grant or deny a (resource, action) pair for one user, overriding the role default."""

    __tablename__ = "user_permissions"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    resource = Column(String(64), nullable=False)
    action = Column(String(64), nullable=False)
    granted = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="permissions")

    __table_args__ = (
        UniqueConstraint("user_id", "resource", "action", name="uq_user_permissions_user_resource_action"),
    )
