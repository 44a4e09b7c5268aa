"""Effective permissions: role defaults merged with per-user overrides"""

from typing import Dict, List, Tuple

from sqlalchemy.orm import Session

from helpdesk.models.permission import UserPermission
from helpdesk.models.user import User

_CRUD = ("create", "read", "update", "delete")

ROLE_PERMISSIONS: Dict[str, Tuple[Tuple[str, str], ...]] = {
    "admin": tuple(
        [("tickets", a) for a in _CRUD + ("assign",)]
        + [("assets", a) for a in _CRUD + ("assign",)]
        + [("users", a) for a in _CRUD]
        + [("kb", a) for a in _CRUD + ("publish",)]
    ),
    "manager": (
        ("tickets", "create"), ("tickets", "read"), ("tickets", "update"), ("tickets", "assign"),
        ("assets", "create"), ("assets", "read"), ("assets", "update"), ("assets", "assign"),
        ("users", "read"),
        ("kb", "create"), ("kb", "read"), ("kb", "update"),
    ),
    "support": (
        ("tickets", "create"), ("tickets", "read"), ("tickets", "update"),
        ("assets", "read"), ("assets", "update"),
        ("kb", "read"),
    ),
    "client": (
        ("tickets", "create"), ("tickets", "read"),
        ("assets", "read"),
    ),
}


class PermissionService:

    @staticmethod
    def get_user_permissions(db: Session, user: User) -> List[Dict[str, object]]:
        """
        List a user's effective permissions

        User overrides win over the role default for the same (resource, action).
        """
        effective = {pair: True for pair in ROLE_PERMISSIONS.get(user.role, ())}
        overrides = db.query(UserPermission).filter(UserPermission.user_id == user.id).all()
        for row in overrides:
            effective[(row.resource, row.action)] = bool(row.granted)

        return [
            {"resource": resource, "action": action, "granted": granted}
            for (resource, action), granted in sorted(effective.items())
        ]


permission_service = PermissionService()
