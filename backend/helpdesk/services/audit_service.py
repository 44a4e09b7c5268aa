"""Audit service for authentication events."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from prometheus_client import Counter
from sqlalchemy.orm import Session

from helpdesk.models.audit import AuditAction, AuthAuditEvent
from helpdesk.services.user_service import normalize_email

logger = logging.getLogger(__name__)

AUTH_EVENTS = Counter(
    "helpdesk_auth_events_total",
    "Authentication audit events",
    ["action", "success"],
)


@dataclass
class RequestContext:
    """Request metadata recorded alongside security events."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


class AuditService:
    """Persist immutable audit trail entries."""

    @staticmethod
    def log_auth_event(
        db: Session,
        *,
        action: AuditAction,
        email: str,
        success: bool,
        user_id: Optional[int] = None,
        context: Optional[RequestContext] = None,
        device_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuthAuditEvent:
        context = context or RequestContext()
        event = AuthAuditEvent(
            user_id=user_id,
            email=email,
            action=AuditAction(action).value,
            ip_address=context.ip_address,
            user_agent=(context.user_agent or "")[:512] or None,
            device_id=device_id,
            success=success,
            details=json.dumps(details, ensure_ascii=False) if details else None,
        )
        db.add(event)
        db.commit()
        db.refresh(event)
        AUTH_EVENTS.labels(event.action, "true" if success else "false").inc()
        return event

    @staticmethod
    def list_events(
        db: Session,
        *,
        user_id: Optional[int] = None,
        email: Optional[str] = None,
        action: Optional[str] = None,
        limit: int = 50,
    ) -> List[AuthAuditEvent]:
        query = db.query(AuthAuditEvent)
        if user_id is not None:
            query = query.filter(AuthAuditEvent.user_id == user_id)
        if email:
            query = query.filter(AuthAuditEvent.email == normalize_email(email))
        if action:
            query = query.filter(AuthAuditEvent.action == action)
        query = query.order_by(AuthAuditEvent.created_at.desc(), AuthAuditEvent.id.desc())
        return query.limit(max(1, min(limit, 500))).all()

    @staticmethod
    def parse_details(event: AuthAuditEvent) -> Dict[str, Any]:
        if not event.details:
            return {}
        try:
            return json.loads(event.details)
        except json.JSONDecodeError:
            logger.warning("Unreadable audit details on event %s", event.id)
            return {"raw": event.details}


audit_service = AuditService()
