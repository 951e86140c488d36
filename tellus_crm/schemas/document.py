from typing import Optional
from datetime import datetime
from pydantic import Field
from tellus_crm.schemas.common import CamelModel


class DocumentMetadata(CamelModel):
    """
    Document embedded in a customer record.

    `id` is the storage key. `url`/`file_url` are the last known URLs and
    only advisory; always ask for a fresh signed URL before showing a file.
    """
    id: str
    file_name: str
    file_type: str
    document_type: str
    uploaded_at: datetime
    file_size: Optional[int] = None
    file_path: Optional[str] = None
    url: Optional[str] = None
    file_url: Optional[str] = None
    custom_title: Optional[str] = None
    uploaded_via: Optional[str] = None
    upload_link_id: Optional[str] = None


class DocumentAttachRequest(CamelModel):
    """Request schema for attaching an uploaded document to a customer."""
    id: str = Field(min_length=1)
    file_name: str
    file_type: str
    document_type: str
    file_size: Optional[int] = None
    url: Optional[str] = None
    custom_title: Optional[str] = None
