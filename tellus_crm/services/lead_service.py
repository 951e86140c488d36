import logging
from typing import List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_
from tellus_crm.models.lead import Lead, LeadSource, LeadStatus
from tellus_crm.models.mixins import utcnow
from tellus_crm.schemas.lead import LeadCreateRequest, LEAD_COMMON_FIELDS
from tellus_crm.core.exceptions import BadRequestError, NotFoundError
from tellus_crm.core.logging_utils import sanitize_log_message

logger = logging.getLogger(__name__)


class LeadService:
    """Service for leads captured by the public intake forms."""

    @staticmethod
    async def create_lead(db: AsyncSession, request: LeadCreateRequest) -> Lead:
        """
        Store a lead. Fields specific to the lead's source go to `details`.

        Args:
            db: Database session
            request: One of the per-source lead variants

        Returns:
            Created Lead
        """
        details = request.model_dump(
            mode="json",
            by_alias=True,
            exclude_none=True,
            exclude=LEAD_COMMON_FIELDS
        )
        lead = Lead(
            source=LeadSource(request.source),
            status=LeadStatus.NOVO,
            name=request.name,
            email=str(request.email),
            phone=request.phone,
            cpf=request.cpf,
            notes=request.notes,
            details=details
        )
        db.add(lead)
        await db.commit()
        await db.refresh(lead)

        logger.info(sanitize_log_message("Lead created", LeadID=lead.id, Source=lead.source.value))
        return lead

    @staticmethod
    async def get_lead(db: AsyncSession, lead_id: int) -> Lead:
        """
        Get a lead by ID.

        Raises:
            NotFoundError if the lead does not exist
        """
        result = await db.execute(select(Lead).where(Lead.id == lead_id))
        lead = result.scalar_one_or_none()
        if not lead:
            raise NotFoundError("Lead not found")
        return lead

    @staticmethod
    async def list_leads(
        db: AsyncSession,
        status: Optional[LeadStatus] = None,
        source: Optional[LeadSource] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[Lead], int]:
        """List leads, newest first. Returns (leads on the page, total)."""
        conditions = []
        if status:
            conditions.append(Lead.status == status)
        if source:
            conditions.append(Lead.source == source)
        if search:
            pattern = f"%{search.strip()}%"
            conditions.append(or_(Lead.name.ilike(pattern), Lead.email.ilike(pattern), Lead.cpf.like(pattern)))

        total = (await db.execute(select(func.count()).select_from(Lead).where(*conditions))).scalar_one()
        result = await db.execute(
            select(Lead)
            .where(*conditions)
            .order_by(Lead.created_at.desc(), Lead.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    @staticmethod
    async def update_status(
        db: AsyncSession,
        lead_id: int,
        status: LeadStatus,
        rejection_reason: Optional[str] = None
    ) -> Lead:
        """
        Move a lead to a new status.

        Rejecting requires a reason; leaving the rejected status clears it.

        Raises:
            NotFoundError if the lead does not exist
            BadRequestError if rejecting without a reason
        """
        lead = await LeadService.get_lead(db, lead_id)

        if status == LeadStatus.REJEITADO:
            if not rejection_reason or not rejection_reason.strip():
                raise BadRequestError("A rejection reason is required")
            lead.rejection_reason = rejection_reason.strip()
            lead.rejected_at = utcnow()
        else:
            lead.rejection_reason = None
            lead.rejected_at = None

        previous = lead.status
        lead.status = status
        await db.commit()
        await db.refresh(lead)

        logger.info(
            sanitize_log_message(
                "Lead status changed",
                LeadID=lead.id,
                From=previous.value,
                To=status.value
            )
        )
        return lead
