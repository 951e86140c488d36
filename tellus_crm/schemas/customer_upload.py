from typing import List, Optional
from datetime import datetime
from pydantic import Field, field_validator
from tellus_crm.config import settings
from tellus_crm.schemas.common import CamelModel


class UploadLinkCreateRequest(CamelModel):
    """Request schema for creating a customer upload link."""
    customer_id: int
    expires_in_hours: int = Field(default=settings.UPLOAD_LINK_DEFAULT_HOURS, gt=0, le=settings.SHARE_LINK_MAX_HOURS)
    max_access: Optional[int] = Field(default=None, ge=1)
    allowed_document_types: List[str] = Field(
        default_factory=lambda: list(settings.ALLOWED_FILE_TYPES),
        min_length=1
    )
    max_file_size: int = Field(default=settings.MAX_FILE_SIZE, gt=0, le=settings.MAX_REQUEST_SIZE)
    max_files: int = Field(default=settings.UPLOAD_LINK_DEFAULT_MAX_FILES, ge=1)

    @field_validator("allowed_document_types")
    @classmethod
    def normalize_types(cls, v: List[str]) -> List[str]:
        normalized = []
        for mime in v:
            mime = mime.strip().lower()
            if "/" not in mime:
                raise ValueError(f"Invalid MIME type: {mime}")
            if mime not in normalized:
                normalized.append(mime)
        return normalized


class UploadLinkResponse(CamelModel):
    """Upload link as seen by the staff member who owns it."""
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
    allowed_document_types: List[str]
    max_file_size: int
    max_files: int
    files_uploaded: int


class PublicUploadLinkResponse(CamelModel):
    """Upload link as seen by the customer; `time_remaining` is in milliseconds."""
    id: str
    customer_name: str
    expires_at: datetime
    access_count: int
    max_access: Optional[int] = None
    allowed_document_types: List[str]
    max_file_size: int
    max_files: int
    files_uploaded: int
    remaining_files: int
    time_remaining: int


class UploadResult(CamelModel):
    """Response schema for a file received through an upload link."""
    document_id: str
    file_name: str
    file_size: int


class UploadLinkListResponse(CamelModel):
    """Paginated list of the caller's upload links."""
    links: List[UploadLinkResponse]
    total: int
    page: int
    limit: int
