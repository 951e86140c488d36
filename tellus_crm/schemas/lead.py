from typing import Annotated, List, Literal, Optional, Union
from datetime import datetime
from pydantic import EmailStr, Field, RootModel, field_validator
from tellus_crm.models.lead import LeadSource, LeadStatus
from tellus_crm.schemas.common import CamelModel
from tellus_crm.schemas.customer import Address


class LeadBase(CamelModel):
    """Contact fields every public intake form collects."""
    name: str = Field(min_length=2)
    email: EmailStr
    phone: str = Field(min_length=10)
    cpf: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("cpf")
    @classmethod
    def validate_cpf(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        digits = "".join(ch for ch in v if ch.isdigit())
        if len(digits) != 11:
            raise ValueError("CPF must have 11 digits")
        return digits


class CreditoLead(LeadBase):
    """Real-estate credit lead."""
    source: Literal["credito"]
    birth_date: Optional[str] = None
    marital_status: Optional[str] = None
    address: Optional[Address] = None
    profession: Optional[str] = None
    employment_type: Optional[str] = None
    monthly_income: Optional[float] = Field(default=None, ge=0)
    property_value: Optional[float] = Field(default=None, ge=0)
    property_type: Optional[str] = None
    property_city: Optional[str] = None
    property_state: Optional[str] = Field(default=None, min_length=2, max_length=2)


class AgroLead(LeadBase):
    """Rural credit lead."""
    source: Literal["agro"]
    farm_name: Optional[str] = None
    property_area: Optional[float] = Field(default=None, ge=0)  # hectares
    main_activity: Optional[str] = None
    credit_amount: Optional[float] = Field(default=None, ge=0)
    city: Optional[str] = None
    state: Optional[str] = Field(default=None, min_length=2, max_length=2)


class ConsultoriaLead(LeadBase):
    """Business consulting lead."""
    source: Literal["consultoria"]
    company_name: Optional[str] = None
    company_cnpj: Optional[str] = None
    service_interest: Optional[str] = None
    monthly_revenue: Optional[float] = Field(default=None, ge=0)


class ImobiliarioLead(LeadBase):
    """Developer / real-estate company lead."""
    source: Literal["imobiliario"]
    company_name: Optional[str] = None
    company_cnpj: Optional[str] = None
    project_name: Optional[str] = None
    project_city: Optional[str] = None
    project_state: Optional[str] = Field(default=None, min_length=2, max_length=2)
    units_count: Optional[int] = Field(default=None, ge=0)


class GeralLead(LeadBase):
    """General contact lead."""
    source: Literal["geral"]
    message: Optional[str] = None


LeadCreateRequest = Annotated[
    Union[CreditoLead, AgroLead, ConsultoriaLead, ImobiliarioLead, GeralLead],
    Field(discriminator="source"),
]

# Fields stored in the lead's own columns; everything else goes to `details`
LEAD_COMMON_FIELDS = {"source", "name", "email", "phone", "cpf", "notes"}


class LeadStatusUpdateRequest(CamelModel):
    """Request schema for moving a lead through the pipeline."""
    status: LeadStatus
    rejection_reason: Optional[str] = None


class LeadResponse(CamelModel):
    """Response schema for a lead."""
    id: int
    source: LeadSource
    status: LeadStatus
    name: str
    email: str
    phone: str
    cpf: Optional[str] = None
    notes: Optional[str] = None
    details: dict = {}
    rejection_reason: Optional[str] = None
    rejected_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class LeadListResponse(CamelModel):
    """Paginated lead list."""
    leads: List[LeadResponse]
    total: int
    page: int
    limit: int


class LeadCreateBody(RootModel[LeadCreateRequest]):
    """Request body for the public lead endpoint; `root` is the source variant."""
