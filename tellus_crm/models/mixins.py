"""
Database model mixins for common functionality.
"""
from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import declared_attr


def utcnow() -> datetime:
    """Current time as naive UTC, the representation stored in every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TimestampMixin:
    """Adds created_at and updated_at columns."""
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class GrantMixin:
    """
    Columns shared by every access grant (shareable links and upload links).

    A grant is usable iff it is active, not yet expired, and either has no
    access ceiling or has not reached it.
    """
    id = Column(String(64), primary_key=True, index=True)  # Opaque public token

    @declared_attr
    def customer_id(cls):
        return Column(Integer, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)

    customer_name = Column(String, nullable=False)
    customer_cpf = Column(String(11), nullable=False)

    @declared_attr
    def created_by(cls):
        return Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    access_count = Column(Integer, default=0, nullable=False)
    max_access = Column(Integer, nullable=True)  # None = unlimited
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    last_accessed_at = Column(DateTime, nullable=True)
    deactivated_at = Column(DateTime, nullable=True)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """True once `now` reaches expires_at or the grant was deactivated."""
        now = now or utcnow()
        return not self.is_active or now >= self.expires_at

    def is_quota_exhausted(self) -> bool:
        return self.max_access is not None and self.access_count >= self.max_access

    def is_usable(self, now: Optional[datetime] = None) -> bool:
        return not self.is_expired(now) and not self.is_quota_exhausted()

    def time_remaining_ms(self, now: Optional[datetime] = None) -> int:
        """Milliseconds until expiry, never negative."""
        now = now or utcnow()
        return max(0, int((self.expires_at - now).total_seconds() * 1000))
