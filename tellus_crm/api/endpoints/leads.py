from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from tellus_crm.database import get_db
from tellus_crm.api.deps import AuditContext, get_audit_context, get_current_user, get_staff_audit_context
from tellus_crm.schemas.common import ApiResponse
from tellus_crm.schemas.lead import LeadCreateBody, LeadListResponse, LeadResponse, LeadStatusUpdateRequest
from tellus_crm.services.lead_service import LeadService
from tellus_crm.middleware.rate_limit import rate_limit_public_links
from tellus_crm.models.audit_log import ActionType
from tellus_crm.models.lead import LeadSource, LeadStatus
from tellus_crm.models.user import User

router = APIRouter()


@router.post("", response_model=ApiResponse[LeadResponse], status_code=201)
@rate_limit_public_links()
async def create_lead(
    request: Request,
    body: LeadCreateBody,
    db: AsyncSession = Depends(get_db),
    audit: AuditContext = Depends(get_audit_context)
):
    """
    Public intake form. The body's `source` selects which fields are accepted.
    """
    lead = await LeadService.create_lead(db, body.root)
    await audit.log_action(
        ActionType.LEAD_CREATED,
        resource_type="lead",
        resource_id=lead.id,
        details={"source": lead.source.value}
    )
    return ApiResponse(data=LeadResponse.model_validate(lead), message="Lead received")


@router.get("", response_model=ApiResponse[LeadListResponse])
async def list_leads(
    status: Optional[LeadStatus] = None,
    source: Optional[LeadSource] = None,
    search: Optional[str] = Query(None, max_length=100),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    leads, total = await LeadService.list_leads(db, status, source, search, page, limit)
    return ApiResponse(
        data=LeadListResponse(
            leads=[LeadResponse.model_validate(lead) for lead in leads],
            total=total,
            page=page,
            limit=limit
        )
    )


@router.get("/{lead_id}", response_model=ApiResponse[LeadResponse])
async def get_lead(
    lead_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    lead = await LeadService.get_lead(db, lead_id)
    return ApiResponse(data=LeadResponse.model_validate(lead))


@router.patch("/{lead_id}/status", response_model=ApiResponse[LeadResponse])
async def update_lead_status(
    lead_id: int,
    update: LeadStatusUpdateRequest,
    db: AsyncSession = Depends(get_db),
    audit: AuditContext = Depends(get_staff_audit_context)
):
    """
    Move a lead through the pipeline. `rejeitado` requires `rejectionReason`.
    """
    lead = await LeadService.update_status(db, lead_id, update.status, update.rejection_reason)
    await audit.log_action(
        ActionType.LEAD_STATUS_CHANGED,
        resource_type="lead",
        resource_id=lead.id,
        details={"status": lead.status.value}
    )
    return ApiResponse(data=LeadResponse.model_validate(lead), message="Status updated")
