from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from tellus_crm.database import get_db
from tellus_crm.api.deps import (
    AuditContext,
    get_audit_context,
    get_current_user,
    get_signed_url_service,
    get_staff_audit_context,
)
from tellus_crm.schemas.common import ApiResponse
from tellus_crm.schemas.sharing import (
    BatchSignedUrlRequest,
    BatchSignedUrlResponse,
    DownloadAllResponse,
    ShareableLinkListResponse,
    ShareableLinkResponse,
    SharedCustomerView,
    SharePermissions,
    ShareLinkCreateRequest,
    SignedDocument,
    SignedUrlRequest,
    SignedUrlResponse,
)
from tellus_crm.services.link_service import LinkLifecycleService
from tellus_crm.services.customer_service import CustomerService
from tellus_crm.services.projection_service import project_customer, shared_documents
from tellus_crm.services.signed_url_service import SignedUrlService
from tellus_crm.middleware.rate_limit import rate_limit_public_links
from tellus_crm.models.shareable_link import ShareableLink
from tellus_crm.models.audit_log import ActionType
from tellus_crm.models.mixins import utcnow
from tellus_crm.models.user import User
from tellus_crm.core.exceptions import ForbiddenError, NotFoundError

router = APIRouter()


@router.post("/create", response_model=ApiResponse[ShareableLinkResponse], status_code=201)
async def create_share_link(
    link_data: ShareLinkCreateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    audit: AuditContext = Depends(get_staff_audit_context)
):
    """
    Create a shareable link exposing selected data groups and documents of a customer.
    """
    link = await LinkLifecycleService.create_share_link(
        db,
        customer_id=link_data.customer_id,
        created_by=current_user.id,
        expires_in_hours=link_data.expires_in_hours,
        permissions=link_data.permissions.model_dump(by_alias=True),
        document_ids=link_data.document_ids,
        max_access=link_data.max_access
    )
    await audit.log_action(
        ActionType.SHARE_LINK_CREATED,
        resource_type="shareable_link",
        resource_id=link.id,
        details={"customerId": link.customer_id, "expiresInHours": link_data.expires_in_hours}
    )
    return ApiResponse(data=ShareableLinkResponse.model_validate(link), message="Shareable link created")


@router.get("/my-links", response_model=ApiResponse[ShareableLinkListResponse])
async def list_my_links(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    Shareable links created by the current user, newest first.
    """
    links, total = await LinkLifecycleService.list_for_user(db, ShareableLink, current_user.id, page, limit)
    return ApiResponse(
        data=ShareableLinkListResponse(
            links=[ShareableLinkResponse.model_validate(link) for link in links],
            total=total,
            page=page,
            limit=limit
        )
    )


@router.post("/document/signed-url", response_model=ApiResponse[SignedUrlResponse])
async def create_document_signed_url(
    url_request: SignedUrlRequest,
    signed_url_service: SignedUrlService = Depends(get_signed_url_service),
    audit: AuditContext = Depends(get_staff_audit_context)
):
    """
    Fresh signed URL for one stored document (staff view).
    """
    signed = await signed_url_service.issue_with_fallback(url_request.file_path, url_request.expires_in)
    await audit.log_action(
        ActionType.SIGNED_URL_ISSUED,
        resource_type="document",
        resource_id=url_request.file_path,
        details={"expiresIn": signed.expires_in}
    )
    return ApiResponse(
        data=SignedUrlResponse(
            signed_url=signed.url,
            expires_in=signed.expires_in,
            expires_at=signed.expires_at
        )
    )


@router.get("/{link_id}", response_model=ApiResponse[SharedCustomerView])
@rate_limit_public_links()
async def get_shared_customer(
    request: Request,
    link_id: str,
    db: AsyncSession = Depends(get_db),
    audit: AuditContext = Depends(get_audit_context)
):
    """
    Public view of a shareable link. Counts as one access.
    """
    link, time_remaining = await LinkLifecycleService.resolve(db, ShareableLink, link_id)
    customer = await CustomerService.get_customer(db, link.customer_id)

    await audit.log_action(
        ActionType.SHARE_LINK_ACCESSED,
        resource_type="shareable_link",
        resource_id=link.id,
        details={"accessCount": link.access_count}
    )
    return ApiResponse(
        data=SharedCustomerView(
            id=link.id,
            created_at=link.created_at,
            expires_at=link.expires_at,
            access_count=link.access_count,
            max_access=link.max_access,
            permissions=SharePermissions.model_validate(link.permissions),
            customer=project_customer(link, customer),
            time_remaining=time_remaining
        )
    )


@router.post("/{link_id}/access", response_model=ApiResponse)
@rate_limit_public_links()
async def record_access(
    request: Request,
    link_id: str,
    db: AsyncSession = Depends(get_db),
    audit: AuditContext = Depends(get_audit_context)
):
    """
    Record a view of a shareable link. Counts against max_access like a page view.
    """
    link, _ = await LinkLifecycleService.resolve(db, ShareableLink, link_id)
    await audit.log_action(
        ActionType.SHARE_LINK_ACCESSED,
        resource_type="shareable_link",
        resource_id=link.id,
        details={"accessCount": link.access_count}
    )
    return ApiResponse(message="Access recorded")


@router.get("/{link_id}/download-all", response_model=ApiResponse[DownloadAllResponse])
@rate_limit_public_links()
async def download_all(
    request: Request,
    link_id: str,
    db: AsyncSession = Depends(get_db),
    signed_url_service: SignedUrlService = Depends(get_signed_url_service)
):
    """
    Signed URLs for every document shared through the link.

    URL lifetime follows the link's remaining lifetime. Does not count as an access.
    """
    now = utcnow()
    link, _ = await LinkLifecycleService.resolve(db, ShareableLink, link_id, record_access=False, now=now)
    if not link.allows("viewDocuments"):
        raise ForbiddenError("This link does not include documents")

    customer = await CustomerService.get_customer(db, link.customer_id)
    documents = shared_documents(link, customer)
    if not documents:
        raise NotFoundError("No documents found")

    _, urls, _ = await signed_url_service.issue_many_for_grant(
        [doc["id"] for doc in documents], link.expires_at, now
    )

    signed_documents = [
        SignedDocument(
            id=doc["id"],
            file_name=doc["fileName"] or "",
            document_type=doc["documentType"] or "",
            signed_url=urls[doc["id"]].url,
            expires_in=urls[doc["id"]].expires_in
        )
        for doc in documents
        if doc["id"] in urls
    ]
    return ApiResponse(
        data=DownloadAllResponse(
            customer_name=link.customer_name,
            documents=signed_documents,
            total_documents=len(signed_documents)
        )
    )


@router.post("/{link_id}/signed-urls", response_model=ApiResponse[BatchSignedUrlResponse])
@rate_limit_public_links()
async def create_signed_urls(
    request: Request,
    link_id: str,
    url_request: BatchSignedUrlRequest,
    db: AsyncSession = Depends(get_db),
    signed_url_service: SignedUrlService = Depends(get_signed_url_service)
):
    """
    Signed URLs for the requested documents of a shareable link.

    Ids not shared through the link are ignored. Does not count as an access.
    """
    now = utcnow()
    link, time_remaining = await LinkLifecycleService.resolve(
        db, ShareableLink, link_id, record_access=False, now=now
    )
    if not link.allows("viewDocuments"):
        raise ForbiddenError("This link does not include documents")

    customer = await CustomerService.get_customer(db, link.customer_id)
    requested = set(url_request.document_ids)
    paths = [doc["id"] for doc in shared_documents(link, customer) if doc["id"] in requested]

    ttl, urls, errors = await signed_url_service.issue_many_for_grant(paths, link.expires_at, now)
    return ApiResponse(
        data=BatchSignedUrlResponse(
            urls={path: signed.url for path, signed in urls.items()},
            errors=errors,
            expires_in_seconds=ttl,
            time_remaining=time_remaining // 1000
        )
    )


@router.post("/{link_id}/deactivate", response_model=ApiResponse)
async def deactivate_share_link(
    link_id: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
    audit: AuditContext = Depends(get_staff_audit_context)
):
    """
    Deactivate a shareable link. Only its creator may do this; repeating is harmless.
    """
    link = await LinkLifecycleService.deactivate(db, ShareableLink, link_id, current_user.id)
    await audit.log_action(ActionType.SHARE_LINK_DEACTIVATED, resource_type="shareable_link", resource_id=link.id)
    return ApiResponse(message="Link deactivated")
