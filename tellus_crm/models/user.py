from sqlalchemy import Column, Integer, String, Boolean, DateTime
from tellus_crm.database import Base
from tellus_crm.models.mixins import utcnow


class User(Base):
    """Staff user model - people who sign in to the dashboard."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    hashed_password = Column(String, nullable=False)
    role = Column(String(16), default="user", nullable=False)  # "admin" or "user"
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
