import enum
from sqlalchemy import Column, Integer, String, DateTime, Text, JSON, Enum as SQLEnum
from tellus_crm.database import Base
from tellus_crm.models.mixins import TimestampMixin


class LeadSource(str, enum.Enum):
    """Lead source enumeration - one public intake form per source."""
    AGRO = "agro"
    CREDITO = "credito"
    CONSULTORIA = "consultoria"
    IMOBILIARIO = "imobiliario"
    GERAL = "geral"


class LeadStatus(str, enum.Enum):
    """Lead status enumeration."""
    NOVO = "novo"
    EM_ANALISE = "em_analise"
    APROVADO = "aprovado"
    REJEITADO = "rejeitado"
    CONVERTIDO = "convertido"


class Lead(TimestampMixin, Base):
    """Lead model - common contact columns plus source-specific details."""

    __tablename__ = "leads"

    id = Column(Integer, primary_key=True, index=True)
    source = Column(SQLEnum(LeadSource), nullable=False, index=True)
    status = Column(SQLEnum(LeadStatus), default=LeadStatus.NOVO, nullable=False, index=True)

    name = Column(String, nullable=False, index=True)
    email = Column(String, nullable=False, index=True)
    phone = Column(String, nullable=False)
    cpf = Column(String(11), nullable=True, index=True)
    notes = Column(Text, nullable=True)

    # Fields that belong to the lead's source variant only
    details = Column(JSON, nullable=False, default=dict)

    rejection_reason = Column(String, nullable=True)
    rejected_at = Column(DateTime, nullable=True)
