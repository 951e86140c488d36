from typing import Optional
from datetime import datetime
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from tellus_crm.database import get_db
from tellus_crm.api.deps import require_admin
from tellus_crm.schemas.audit import AuditLogListResponse, AuditLogResponse
from tellus_crm.schemas.common import ApiResponse
from tellus_crm.services.audit_service import AuditService
from tellus_crm.models.audit_log import ActionType, UserType
from tellus_crm.models.user import User

router = APIRouter()


@router.get("", response_model=ApiResponse[AuditLogListResponse])
async def get_audit_logs(
    action_type: Optional[ActionType] = Query(None, alias="actionType"),
    user_type: Optional[UserType] = Query(None, alias="userType"),
    user_id: Optional[int] = Query(None, alias="userId"),
    resource_type: Optional[str] = Query(None, alias="resourceType", max_length=50),
    resource_id: Optional[str] = Query(None, alias="resourceId", max_length=100),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(require_admin)
):
    """
    Query the audit trail with filters. Admin role only.
    """
    logs, total = await AuditService.get_audit_logs(
        db=db,
        action_type=action_type,
        user_type=user_type,
        user_id=user_id,
        resource_type=resource_type,
        resource_id=resource_id,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset
    )

    return ApiResponse(
        data=AuditLogListResponse(
            logs=[AuditLogResponse.model_validate(log) for log in logs],
            total=total,
            limit=limit,
            offset=offset
        )
    )
