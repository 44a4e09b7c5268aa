"""Admin routes - authentication audit trail"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from helpdesk.api.deps import require_roles
from helpdesk.core.database import get_db
from helpdesk.models.audit import AuditAction
from helpdesk.models.user import User, UserRole
from helpdesk.schemas.audit import AuditEventResponse
from helpdesk.services.audit_service import audit_service

router = APIRouter()


@router.get("/audit-events", response_model=List[AuditEventResponse])
def list_audit_events(
    user_id: Optional[int] = Query(None),
    email: Optional[str] = Query(None),
    action: Optional[AuditAction] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    current_user: User = Depends(require_roles(UserRole.MANAGER, UserRole.ADMIN)),
    db: Session = Depends(get_db),
):
    """
    List recent authentication events, newest first

    Args:
        user_id: Only events for this user
        email: Only events for this email
        action: Only events of this kind
        limit: Maximum rows returned
    """
    events = audit_service.list_events(
        db,
        user_id=user_id,
        email=email,
        action=action.value if action else None,
        limit=limit,
    )
    return [
        AuditEventResponse(
            id=event.id,
            user_id=event.user_id,
            email=event.email,
            action=event.action,
            ip_address=event.ip_address,
            user_agent=event.user_agent,
            device_id=event.device_id,
            success=event.success,
            details=audit_service.parse_details(event),
            created_at=event.created_at,
        )
        for event in events
    ]
