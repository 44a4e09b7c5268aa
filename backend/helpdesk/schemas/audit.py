"""Audit event response schemas."""

from datetime import datetime
from typing import Optional, Dict, Any

from pydantic import BaseModel


class AuditEventResponse(BaseModel):
    id: int
    user_id: Optional[int]
    email: str
    action: str
    ip_address: Optional[str]
    user_agent: Optional[str]
    device_id: Optional[str]
    success: bool
    details: Dict[str, Any] = {}
    created_at: Optional[datetime]
