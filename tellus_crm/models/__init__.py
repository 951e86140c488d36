"""Database models."""
from tellus_crm.models.user import User
from tellus_crm.models.customer import Customer
from tellus_crm.models.lead import Lead, LeadSource, LeadStatus
from tellus_crm.models.shareable_link import ShareableLink, PERMISSION_FLAGS
from tellus_crm.models.customer_upload_link import CustomerUploadLink
from tellus_crm.models.audit_log import AuditLog, ActionType, UserType

__all__ = [
    "User",
    "Customer",
    "Lead",
    "LeadSource",
    "LeadStatus",
    "ShareableLink",
    "PERMISSION_FLAGS",
    "CustomerUploadLink",
    "AuditLog",
    "ActionType",
    "UserType",
]
