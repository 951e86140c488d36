"""
Lifecycle of access grants: shareable links (read) and customer upload links (write).

Resolution and the access-count increment are a single conditional UPDATE so
that two concurrent callers can never both consume the last unit of quota.
"""
import logging
import secrets
from datetime import datetime, timedelta
from typing import List, Optional, Tuple, Type, Union
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, func, or_, and_
from tellus_crm.models.customer import Customer
from tellus_crm.models.shareable_link import ShareableLink, PERMISSION_FLAGS
from tellus_crm.models.customer_upload_link import CustomerUploadLink
from tellus_crm.models.mixins import utcnow
from tellus_crm.core.exceptions import (
    BadRequestError,
    ExpiredError,
    ForbiddenError,
    NotFoundError,
    QuotaExceededError,
)
from tellus_crm.core.logging_utils import sanitize_log_message

logger = logging.getLogger(__name__)

Grant = Union[ShareableLink, CustomerUploadLink]
GrantModel = Type[Grant]


def generate_link_id() -> str:
    """Opaque URL-safe token used as the public link id."""
    return secrets.token_urlsafe(32)


class LinkLifecycleService:
    """Create, resolve, deactivate, list and purge access grants."""

    @staticmethod
    async def _get_customer(db: AsyncSession, customer_id: int) -> Customer:
        result = await db.execute(select(Customer).where(Customer.id == customer_id))
        customer = result.scalar_one_or_none()
        if not customer:
            raise NotFoundError("Customer not found")
        return customer

    @staticmethod
    async def create_share_link(
        db: AsyncSession,
        customer_id: int,
        created_by: int,
        expires_in_hours: int,
        permissions: dict,
        document_ids: Optional[List[str]] = None,
        max_access: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> ShareableLink:
        """
        Create a shareable link over a customer's data.

        Args:
            db: Database session
            customer_id: Customer the link exposes
            created_by: Staff user issuing the link
            expires_in_hours: Lifetime in hours
            permissions: {flag: bool}; unknown flags are dropped, missing flags are False
            document_ids: Customer documents exposed through the link, in display order
            max_access: Optional ceiling on successful resolutions
            now: Current time (naive UTC), injectable for tests

        Returns:
            Created ShareableLink

        Raises:
            NotFoundError if the customer does not exist
            BadRequestError if a document id does not belong to the customer
        """
        now = now or utcnow()
        customer = await LinkLifecycleService._get_customer(db, customer_id)

        documents = []
        for document_id in document_ids or []:
            document = customer.find_document(document_id)
            if not document:
                raise BadRequestError(f"Document {document_id} does not belong to this customer")
            documents.append({
                "id": document["id"],
                "fileName": document.get("fileName", ""),
                "documentType": document.get("documentType", ""),
            })

        link = ShareableLink(
            id=generate_link_id(),
            customer_id=customer.id,
            customer_name=customer.name,
            customer_cpf=customer.cpf,
            created_by=created_by,
            created_at=now,
            expires_at=now + timedelta(hours=expires_in_hours),
            access_count=0,
            max_access=max_access,
            is_active=True,
            permissions={flag: bool(permissions.get(flag, False)) for flag in PERMISSION_FLAGS},
            documents=documents
        )
        db.add(link)
        await db.commit()
        await db.refresh(link)

        logger.info(
            sanitize_log_message(
                "Shareable link created",
                LinkID=link.id[:8],
                CustomerID=customer.id,
                CreatedBy=created_by,
                ExpiresAt=link.expires_at.isoformat(),
                MaxAccess=max_access
            )
        )
        return link

    @staticmethod
    async def create_upload_link(
        db: AsyncSession,
        customer_id: int,
        created_by: int,
        expires_in_hours: int,
        allowed_document_types: List[str],
        max_file_size: int,
        max_files: int,
        max_access: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> CustomerUploadLink:
        """
        Create an upload link through which a customer can send documents.

        Raises:
            NotFoundError if the customer does not exist
        """
        now = now or utcnow()
        customer = await LinkLifecycleService._get_customer(db, customer_id)

        link = CustomerUploadLink(
            id=generate_link_id(),
            customer_id=customer.id,
            customer_name=customer.name,
            customer_cpf=customer.cpf,
            created_by=created_by,
            created_at=now,
            expires_at=now + timedelta(hours=expires_in_hours),
            access_count=0,
            max_access=max_access,
            is_active=True,
            allowed_document_types=list(allowed_document_types),
            max_file_size=max_file_size,
            max_files=max_files,
            files_uploaded=0
        )
        db.add(link)
        await db.commit()
        await db.refresh(link)

        logger.info(
            sanitize_log_message(
                "Upload link created",
                LinkID=link.id[:8],
                CustomerID=customer.id,
                CreatedBy=created_by,
                ExpiresAt=link.expires_at.isoformat(),
                MaxFiles=max_files
            )
        )
        return link

    @staticmethod
    async def get_link(db: AsyncSession, model: GrantModel, link_id: str) -> Optional[Grant]:
        result = await db.execute(
            select(model).where(model.id == link_id).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _raise_unusable(link: Optional[Grant], now: datetime, link_id: str) -> None:
        """Raise the error that explains why `link` cannot be used at `now`."""
        if link is None:
            logger.info(sanitize_log_message("Link not found", LinkID=link_id[:8]))
            raise NotFoundError()
        if link.is_expired(now):
            logger.info(
                sanitize_log_message(
                    "Link expired or deactivated",
                    LinkID=link_id[:8],
                    IsActive=link.is_active,
                    ExpiresAt=link.expires_at.isoformat()
                )
            )
            raise ExpiredError()
        logger.info(
            sanitize_log_message(
                "Link access limit reached",
                LinkID=link_id[:8],
                AccessCount=link.access_count,
                MaxAccess=link.max_access
            )
        )
        raise QuotaExceededError()

    @staticmethod
    async def resolve(
        db: AsyncSession,
        model: GrantModel,
        link_id: str,
        record_access: bool = True,
        allow_spent_quota: bool = False,
        now: Optional[datetime] = None
    ) -> Tuple[Grant, int]:
        """
        Fetch a usable grant, consuming one unit of its access quota.

        With `record_access=False` the grant is only checked and nothing is
        incremented. `allow_spent_quota` additionally accepts a grant whose last
        unit was taken by the page view still in progress (access_count ==
        max_access); only uploads, which share that view's budget, pass it.

        Args:
            db: Database session
            model: ShareableLink or CustomerUploadLink
            link_id: Public link id
            record_access: Increment access_count atomically with the check
            allow_spent_quota: With record_access=False, fail on quota only past max_access
            now: Current time (naive UTC), injectable for tests

        Returns:
            Tuple of (grant after the increment, milliseconds remaining)

        Raises:
            NotFoundError if the link does not exist
            ExpiredError if expired or deactivated
            QuotaExceededError if max_access has been reached
        """
        now = now or utcnow()

        if not record_access:
            link = await LinkLifecycleService.get_link(db, model, link_id)
            if link is None or link.is_expired(now):
                LinkLifecycleService._raise_unusable(link, now, link_id)
            if allow_spent_quota:
                over_quota = link.max_access is not None and link.access_count > link.max_access
            else:
                over_quota = link.is_quota_exhausted()
            if over_quota:
                LinkLifecycleService._raise_unusable(link, now, link_id)
            return link, link.time_remaining_ms(now)

        result = await db.execute(
            update(model)
            .where(
                and_(
                    model.id == link_id,
                    model.is_active.is_(True),
                    model.expires_at > now,
                    or_(model.max_access.is_(None), model.access_count < model.max_access)
                )
            )
            .values(access_count=model.access_count + 1, last_accessed_at=now)
            .returning(model.id)
            .execution_options(synchronize_session=False)
        )
        updated = result.scalar_one_or_none()
        await db.commit()

        if updated is None:
            link = await LinkLifecycleService.get_link(db, model, link_id)
            if link is not None and link.is_usable(now):
                # Lost the race for the last unit of quota
                raise QuotaExceededError()
            LinkLifecycleService._raise_unusable(link, now, link_id)

        link = await LinkLifecycleService.get_link(db, model, link_id)
        return link, link.time_remaining_ms(now)

    @staticmethod
    async def deactivate(
        db: AsyncSession,
        model: GrantModel,
        link_id: str,
        requestor_id: int,
        now: Optional[datetime] = None
    ) -> Grant:
        """
        Deactivate a grant. Repeating the call leaves the same end state.

        Raises:
            NotFoundError if the link does not exist
            ForbiddenError if the requestor did not create the link
        """
        link = await LinkLifecycleService.get_link(db, model, link_id)
        if link is None:
            raise NotFoundError("Link not found")
        if link.created_by != requestor_id:
            logger.warning(
                sanitize_log_message(
                    "Deactivation refused for non-owner",
                    LinkID=link_id[:8],
                    RequestorID=requestor_id
                )
            )
            raise ForbiddenError("Only the creator of a link can deactivate it")

        if link.is_active:
            link.is_active = False
            link.deactivated_at = now or utcnow()
            await db.commit()
            await db.refresh(link)
            logger.info(sanitize_log_message("Link deactivated", LinkID=link_id[:8], RequestorID=requestor_id))
        return link

    @staticmethod
    async def list_for_user(
        db: AsyncSession,
        model: GrantModel,
        user_id: int,
        page: int = 1,
        limit: int = 10
    ) -> Tuple[List[Grant], int]:
        """
        List grants created by a user, newest first.

        Returns:
            Tuple of (links on the page, total)
        """
        total = (
            await db.execute(select(func.count()).select_from(model).where(model.created_by == user_id))
        ).scalar_one()
        result = await db.execute(
            select(model)
            .where(model.created_by == user_id)
            .order_by(model.created_at.desc(), model.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    @staticmethod
    async def purge_expired(
        db: AsyncSession,
        model: GrantModel,
        now: Optional[datetime] = None
    ) -> int:
        """
        Delete grants that are expired or inactive.

        Returns:
            Number of rows deleted
        """
        now = now or utcnow()
        result = await db.execute(
            delete(model)
            .where(or_(model.expires_at < now, model.is_active.is_(False)))
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        return result.rowcount or 0

    @staticmethod
    async def purge_all(db: AsyncSession, now: Optional[datetime] = None) -> int:
        """Purge both grant tables and return the total number deleted."""
        now = now or utcnow()
        shares = await LinkLifecycleService.purge_expired(db, ShareableLink, now)
        uploads = await LinkLifecycleService.purge_expired(db, CustomerUploadLink, now)
        if shares or uploads:
            logger.info(
                sanitize_log_message(
                    "Purged expired links",
                    ShareableLinks=shares,
                    UploadLinks=uploads
                )
            )
        return shares + uploads
