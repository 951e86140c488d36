from typing import Optional
from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession
from tellus_crm.database import get_db
from tellus_crm.api.deps import (
    AuditContext,
    get_audit_context,
    get_current_user,
    get_staff_audit_context,
    get_upload_service,
)
from tellus_crm.schemas.common import ApiResponse
from tellus_crm.schemas.customer_upload import (
    PublicUploadLinkResponse,
    UploadLinkCreateRequest,
    UploadLinkListResponse,
    UploadLinkResponse,
    UploadResult,
)
from tellus_crm.services.link_service import LinkLifecycleService
from tellus_crm.services.upload_service import UploadIngestionService
from tellus_crm.middleware.rate_limit import rate_limit_public_links
from tellus_crm.models.customer_upload_link import CustomerUploadLink
from tellus_crm.models.audit_log import ActionType
from tellus_crm.models.user import User

router = APIRouter()


@router.post("/create", response_model=ApiResponse[UploadLinkResponse], status_code=201)
async def create_upload_link(
    link_data: UploadLinkCreateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    audit: AuditContext = Depends(get_staff_audit_context)
):
    """
    Create a link through which a customer can send documents without logging in.
    """
    link = await LinkLifecycleService.create_upload_link(
        db,
        customer_id=link_data.customer_id,
        created_by=current_user.id,
        expires_in_hours=link_data.expires_in_hours,
        allowed_document_types=link_data.allowed_document_types,
        max_file_size=link_data.max_file_size,
        max_files=link_data.max_files,
        max_access=link_data.max_access
    )
    await audit.log_action(
        ActionType.UPLOAD_LINK_CREATED,
        resource_type="customer_upload_link",
        resource_id=link.id,
        details={"customerId": link.customer_id, "maxFiles": link.max_files}
    )
    return ApiResponse(data=UploadLinkResponse.model_validate(link), message="Upload link created")


@router.get("/my-links", response_model=ApiResponse[UploadLinkListResponse])
async def list_my_links(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Upload links created by the current user, newest first.
    """
    links, total = await LinkLifecycleService.list_for_user(db, CustomerUploadLink, current_user.id, page, limit)
    return ApiResponse(
        data=UploadLinkListResponse(
            links=[UploadLinkResponse.model_validate(link) for link in links],
            total=total,
            page=page,
            limit=limit
        )
    )


@router.get("/{link_id}", response_model=ApiResponse[PublicUploadLinkResponse])
@rate_limit_public_links()
async def get_upload_link(
    request: Request,
    link_id: str,
    db: AsyncSession = Depends(get_db),
    audit: AuditContext = Depends(get_audit_context)
):
    """
    Upload page data. Counts as one access; uploads made from the page do not.
    """
    link, time_remaining = await LinkLifecycleService.resolve(db, CustomerUploadLink, link_id)
    await audit.log_action(
        ActionType.UPLOAD_LINK_ACCESSED,
        resource_type="customer_upload_link",
        resource_id=link.id,
        details={"accessCount": link.access_count}
    )
    return ApiResponse(
        data=PublicUploadLinkResponse(
            id=link.id,
            customer_name=link.customer_name,
            expires_at=link.expires_at,
            access_count=link.access_count,
            max_access=link.max_access,
            allowed_document_types=link.allowed_document_types,
            max_file_size=link.max_file_size,
            max_files=link.max_files,
            files_uploaded=link.files_uploaded,
            remaining_files=link.remaining_files,
            time_remaining=time_remaining
        )
    )


@router.post("/{link_id}/upload", response_model=ApiResponse[UploadResult], status_code=201)
@rate_limit_public_links()
async def upload_via_link(
    request: Request,
    link_id: str,
    file: UploadFile = File(...),
    document_type: Optional[str] = Form(None, alias="documentType", max_length=64),
    db: AsyncSession = Depends(get_db),
    upload_service: UploadIngestionService = Depends(get_upload_service),
    audit: AuditContext = Depends(get_audit_context)
):
    """
    Receive one file through an upload link.
    """
    result = await upload_service.ingest(db, link_id, file, document_type=document_type)
    await audit.log_action(
        ActionType.DOCUMENT_UPLOADED,
        resource_type="customer_upload_link",
        resource_id=link_id,
        details={"documentId": result["documentId"], "fileSize": result["fileSize"]}
    )
    return ApiResponse(
        data=UploadResult(
            document_id=result["documentId"],
            file_name=result["fileName"],
            file_size=result["fileSize"]
        ),
        message="Document received"
    )


@router.post("/{link_id}/deactivate", response_model=ApiResponse)
async def deactivate_upload_link(
    link_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    audit: AuditContext = Depends(get_staff_audit_context)
):
    """
    Deactivate an upload link. Only its creator may do this; repeating is harmless.
    """
    link = await LinkLifecycleService.deactivate(db, CustomerUploadLink, link_id, current_user.id)
    await audit.log_action(
        ActionType.UPLOAD_LINK_DEACTIVATED,
        resource_type="customer_upload_link",
        resource_id=link.id
    )
    return ApiResponse(message="Link deactivated")
