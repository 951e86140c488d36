import logging
from datetime import datetime
from typing import Optional, Dict, Any, List, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, func
from tellus_crm.models.audit_log import AuditLog, ActionType, UserType
from tellus_crm.core.logging_utils import mask_sensitive_data

logger = logging.getLogger(__name__)


class AuditService:
    """Service for writing and querying the audit trail."""

    @staticmethod
    async def log_action(
        db: AsyncSession,
        action_type: ActionType,
        user_type: UserType,
        user_id: Optional[int] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[Any] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status: str = "success",
        request_id: Optional[str] = None
    ) -> AuditLog:
        """
        Write one audit record in the caller's session and commit it.

        Args:
            db: Database session
            action_type: Type of action
            user_type: STAFF, PUBLIC (link holder) or SYSTEM
            user_id: ID of the staff user, if any
            resource_type: Type of resource affected
            resource_id: ID of the resource (link tokens are strings)
            ip_address: IP address of the request
            user_agent: User agent string
            details: Extra context; personal data is masked before storing
            status: Status of the action (success/error)
            request_id: Request ID for tracing

        Returns:
            Created AuditLog record
        """
        audit_log = AuditLog(
            action_type=action_type,
            user_type=user_type,
            user_id=user_id,
            resource_type=resource_type,
            resource_id=str(resource_id) if resource_id is not None else None,
            ip_address=ip_address,
            user_agent=user_agent,
            details=mask_sensitive_data(details) if details else None,
            status=status,
            request_id=request_id
        )

        try:
            db.add(audit_log)
            await db.commit()
        except Exception as e:
            logger.exception(
                f"Failed to write audit log: {str(e)}",
                extra={
                    "action_type": action_type.value,
                    "user_type": user_type.value,
                    "request_id": request_id
                }
            )
            raise

        logger.debug(
            f"Audit log: {action_type.value}",
            extra={
                "action_type": action_type.value,
                "user_type": user_type.value,
                "user_id": user_id,
                "resource_type": resource_type,
                "status": status,
                "request_id": request_id
            }
        )
        return audit_log

    @staticmethod
    async def get_audit_logs(
        db: AsyncSession,
        action_type: Optional[ActionType] = None,
        user_type: Optional[UserType] = None,
        user_id: Optional[int] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 100,
        offset: int = 0
    ) -> Tuple[List[AuditLog], int]:
        """Query audit logs, newest first. Returns the page and the total match count."""
        conditions = []
        if action_type:
            conditions.append(AuditLog.action_type == action_type)
        if user_type:
            conditions.append(AuditLog.user_type == user_type)
        if user_id:
            conditions.append(AuditLog.user_id == user_id)
        if resource_type:
            conditions.append(AuditLog.resource_type == resource_type)
        if resource_id:
            conditions.append(AuditLog.resource_id == resource_id)
        if start_date:
            conditions.append(AuditLog.created_at >= start_date)
        if end_date:
            conditions.append(AuditLog.created_at <= end_date)

        query = select(AuditLog)
        count_query = select(func.count()).select_from(AuditLog)
        if conditions:
            query = query.where(and_(*conditions))
            count_query = count_query.where(and_(*conditions))

        total = (await db.execute(count_query)).scalar_one()

        query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).offset(offset)
        result = await db.execute(query)
        return list(result.scalars().all()), total
