from typing import Optional, Dict, Any
from datetime import datetime
from tellus_crm.models.audit_log import ActionType, UserType
from tellus_crm.schemas.common import CamelModel


class AuditLogResponse(CamelModel):
    """Response schema for audit log."""
    id: int
    action_type: ActionType
    user_type: UserType
    user_id: Optional[int] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    status: str
    request_id: Optional[str] = None
    created_at: datetime


class AuditLogListResponse(CamelModel):
    """Response schema for audit log list."""
    logs: list[AuditLogResponse]
    total: int
    limit: int
    offset: int
