from sqlalchemy import Column, Integer, JSON
from tellus_crm.database import Base
from tellus_crm.models.mixins import GrantMixin


class CustomerUploadLink(GrantMixin, Base):
    """Customer upload link model - a write grant for sending documents."""

    __tablename__ = "customer_upload_links"

    allowed_document_types = Column(JSON, nullable=False)  # MIME types
    max_file_size = Column(Integer, nullable=False)  # Bytes per file
    max_files = Column(Integer, nullable=False)  # Cumulative ceiling
    files_uploaded = Column(Integer, default=0, nullable=False)

    def accepts_type(self, mime_type: str) -> bool:
        return bool(mime_type) and mime_type in (self.allowed_document_types or [])

    @property
    def remaining_files(self) -> int:
        return max(0, self.max_files - self.files_uploaded)
