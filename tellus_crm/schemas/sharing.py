from typing import Any, Dict, List, Optional
from datetime import datetime
from pydantic import Field
from tellus_crm.config import settings
from tellus_crm.schemas.common import CamelModel


class SharePermissions(CamelModel):
    """Data groups a shareable link exposes. Unset flags default to hidden."""
    view_personal_data: bool = False
    view_address: bool = False
    view_financial_data: bool = False
    view_documents: bool = False
    view_notes: bool = False


class SharedDocumentRef(CamelModel):
    """Document selected for a shareable link at creation time."""
    id: str
    file_name: str
    document_type: str


class ShareLinkCreateRequest(CamelModel):
    """Request schema for creating a shareable link."""
    customer_id: int
    expires_in_hours: int = Field(gt=0, le=settings.SHARE_LINK_MAX_HOURS)
    max_access: Optional[int] = Field(default=None, ge=1)
    permissions: SharePermissions
    document_ids: List[str] = []


class ShareableLinkResponse(CamelModel):
    """Shareable link as seen by the staff member who owns it."""
    id: str
    customer_id: int
    customer_name: str
    customer_cpf: str
    created_by: int
    created_at: datetime
    expires_at: datetime
    access_count: int
    max_access: Optional[int] = None
    is_active: bool
    last_accessed_at: Optional[datetime] = None
    permissions: SharePermissions
    documents: List[SharedDocumentRef] = []


class SharedCustomerView(CamelModel):
    """
    Public view of a shareable link.

    `customer` is the permission projection: hidden groups are absent, not null.
    `time_remaining` is in milliseconds.
    """
    id: str
    created_at: datetime
    expires_at: datetime
    access_count: int
    max_access: Optional[int] = None
    permissions: SharePermissions
    customer: Dict[str, Any]
    time_remaining: int


class SignedDocument(CamelModel):
    """Document plus a fresh signed URL."""
    id: str
    file_name: str
    document_type: str
    signed_url: str
    expires_in: int


class DownloadAllResponse(CamelModel):
    """Response schema for downloading every document of a link."""
    customer_name: str
    documents: List[SignedDocument]
    total_documents: int


class SignedUrlRequest(CamelModel):
    """Request schema for a staff signed URL."""
    file_path: str = Field(min_length=1)
    expires_in: int = Field(default=settings.SIGNED_URL_DEFAULT_TTL, ge=60, le=7 * 24 * 3600)


class SignedUrlResponse(CamelModel):
    """Response schema for a staff signed URL."""
    signed_url: str
    expires_in: int
    expires_at: datetime


class BatchSignedUrlRequest(CamelModel):
    """Request schema for signing several documents of a shareable link."""
    document_ids: List[str] = Field(min_length=1)


class BatchSignedUrlResponse(CamelModel):
    """URLs keyed by document id; documents that could not be signed land in `errors`."""
    urls: Dict[str, str]
    errors: Dict[str, str] = {}
    expires_in_seconds: int
    time_remaining: int


class ShareableLinkListResponse(CamelModel):
    """Paginated list of the caller's shareable links."""
    links: List[ShareableLinkResponse]
    total: int
    page: int
    limit: int
