"""Pydantic schemas for request/response contracts."""
from tellus_crm.schemas.common import (
    ApiResponse,
    CamelModel,
)
from tellus_crm.schemas.auth import (
    LoginRequest,
    LoginResponse,
    UserResponse,
)
from tellus_crm.schemas.document import (
    DocumentAttachRequest,
    DocumentMetadata,
)
from tellus_crm.schemas.customer import (
    Address,
    CustomerCreateRequest,
    CustomerListResponse,
    CustomerResponse,
)
from tellus_crm.schemas.lead import (
    LeadCreateBody,
    LeadCreateRequest,
    LeadListResponse,
    LeadResponse,
    LeadStatusUpdateRequest,
)
from tellus_crm.schemas.audit import (
    AuditLogListResponse,
    AuditLogResponse,
)
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
from tellus_crm.schemas.customer_upload import (
    PublicUploadLinkResponse,
    UploadLinkCreateRequest,
    UploadLinkListResponse,
    UploadLinkResponse,
    UploadResult,
)

__all__ = [
    "ApiResponse",
    "CamelModel",
    "LoginRequest",
    "LoginResponse",
    "UserResponse",
    "DocumentAttachRequest",
    "DocumentMetadata",
    "Address",
    "CustomerCreateRequest",
    "CustomerListResponse",
    "CustomerResponse",
    "LeadCreateBody",
    "LeadCreateRequest",
    "LeadListResponse",
    "LeadResponse",
    "LeadStatusUpdateRequest",
    "AuditLogListResponse",
    "AuditLogResponse",
    "BatchSignedUrlRequest",
    "BatchSignedUrlResponse",
    "DownloadAllResponse",
    "ShareableLinkListResponse",
    "ShareableLinkResponse",
    "SharedCustomerView",
    "SharePermissions",
    "ShareLinkCreateRequest",
    "SignedDocument",
    "SignedUrlRequest",
    "SignedUrlResponse",
    "PublicUploadLinkResponse",
    "UploadLinkCreateRequest",
    "UploadLinkListResponse",
    "UploadLinkResponse",
    "UploadResult",
]
