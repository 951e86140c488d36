from sqlalchemy import Column, JSON
from tellus_crm.database import Base
from tellus_crm.models.mixins import GrantMixin

PERMISSION_FLAGS = (
    "viewPersonalData",
    "viewAddress",
    "viewFinancialData",
    "viewDocuments",
    "viewNotes",
)


class ShareableLink(GrantMixin, Base):
    """Shareable link model - a read grant over one customer's data."""

    __tablename__ = "shareable_links"

    # {flag: bool} for each of PERMISSION_FLAGS
    permissions = Column(JSON, nullable=False)
    # Ordered [{id, fileName, documentType}] exposed through this grant
    documents = Column(JSON, nullable=False, default=list)

    def allows(self, flag: str) -> bool:
        return bool((self.permissions or {}).get(flag, False))

    @property
    def document_ids(self) -> list:
        return [doc["id"] for doc in self.documents or []]
