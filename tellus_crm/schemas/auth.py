from pydantic import BaseModel, EmailStr, Field
from tellus_crm.schemas.common import CamelModel


class LoginRequest(BaseModel):
    """Request schema for email/password login."""
    email: EmailStr
    password: str = Field(min_length=6)


class UserResponse(CamelModel):
    """Response schema for a staff user."""
    id: int
    name: str
    email: str
    role: str


class LoginResponse(CamelModel):
    """Response schema for a successful login."""
    token: str
    token_type: str = "bearer"
    user: UserResponse
