from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLEnum, JSON
import enum
from tellus_crm.database import Base
from tellus_crm.models.mixins import utcnow


class ActionType(str, enum.Enum):
    """Action type enumeration for audit logging."""
    USER_LOGIN = "user_login"
    CUSTOMER_CREATED = "customer_created"
    LEAD_CREATED = "lead_created"
    LEAD_STATUS_CHANGED = "lead_status_changed"
    DOCUMENT_UPLOADED = "document_uploaded"
    DOCUMENT_DELETED = "document_deleted"
    SHARE_LINK_CREATED = "share_link_created"
    SHARE_LINK_ACCESSED = "share_link_accessed"
    SHARE_LINK_DEACTIVATED = "share_link_deactivated"
    UPLOAD_LINK_CREATED = "upload_link_created"
    UPLOAD_LINK_ACCESSED = "upload_link_accessed"
    UPLOAD_LINK_DEACTIVATED = "upload_link_deactivated"
    SIGNED_URL_ISSUED = "signed_url_issued"


class UserType(str, enum.Enum):
    """User type enumeration for audit logging."""
    STAFF = "staff"
    PUBLIC = "public"  # Holder of a link, no credentials
    SYSTEM = "system"


class AuditLog(Base):
    """Audit log model - trail of grant and document actions."""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    action_type = Column(SQLEnum(ActionType), nullable=False, index=True)
    user_type = Column(SQLEnum(UserType), nullable=False, index=True)
    user_id = Column(Integer, nullable=True, index=True)
    resource_type = Column(String, nullable=True, index=True)  # e.g. "shareable_link", "customer", "document"
    resource_id = Column(String, nullable=True, index=True)
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    details = Column(JSON, nullable=True)
    status = Column(String, nullable=False, default="success", index=True)
    request_id = Column(String, nullable=True, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
