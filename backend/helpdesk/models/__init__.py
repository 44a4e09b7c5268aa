"""Database models"""

from helpdesk.models.user import User, UserRole
from helpdesk.models.security import RefreshToken
from helpdesk.models.audit import AuthAuditEvent, AuditAction
from helpdesk.models.permission import UserPermission

__all__ = ["User", "UserRole", "RefreshToken", "AuthAuditEvent", "AuditAction", "UserPermission"]
