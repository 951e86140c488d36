from typing import List, Optional
from datetime import datetime
from pydantic import EmailStr, Field, field_validator
from tellus_crm.schemas.common import CamelModel
from tellus_crm.schemas.document import DocumentMetadata


def _digits_only(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    return "".join(ch for ch in value if ch.isdigit())


class Address(CamelModel):
    """Postal address."""
    street: str = Field(min_length=1)
    number: str = Field(min_length=1)
    complement: Optional[str] = None
    neighborhood: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=2, max_length=2)
    zip_code: str

    @field_validator("zip_code")
    @classmethod
    def validate_zip_code(cls, v: str) -> str:
        digits = _digits_only(v)
        if len(digits) != 8:
            raise ValueError("CEP must have 8 digits")
        return digits


class CustomerCreateRequest(CamelModel):
    """Request schema for creating a customer."""
    name: str = Field(min_length=2)
    email: EmailStr
    phone: str = Field(min_length=10)
    cpf: str
    birth_date: Optional[str] = Field(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$")
    marital_status: Optional[str] = None
    address: Optional[Address] = None
    profession: Optional[str] = None
    employment_type: Optional[str] = None
    monthly_income: Optional[float] = Field(default=None, ge=0)
    company_name: Optional[str] = None
    property_value: Optional[float] = Field(default=None, ge=0)
    property_type: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("cpf")
    @classmethod
    def validate_cpf(cls, v: str) -> str:
        digits = _digits_only(v)
        if len(digits) != 11:
            raise ValueError("CPF must have 11 digits")
        return digits


class CustomerResponse(CamelModel):
    """Response schema for a customer (staff view, unredacted)."""
    id: int
    name: str
    email: str
    phone: str
    cpf: str
    birth_date: Optional[str] = None
    marital_status: Optional[str] = None
    address: Optional[dict] = None
    profession: Optional[str] = None
    employment_type: Optional[str] = None
    monthly_income: Optional[float] = None
    company_name: Optional[str] = None
    property_value: Optional[float] = None
    property_type: Optional[str] = None
    notes: Optional[str] = None
    uploaded_documents: List[DocumentMetadata] = []
    created_at: datetime
    updated_at: datetime


class CustomerListResponse(CamelModel):
    """Paginated customer list."""
    customers: List[CustomerResponse]
    total: int
    page: int
    limit: int
