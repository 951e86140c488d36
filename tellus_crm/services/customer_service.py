import logging
from typing import List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, or_
from tellus_crm.models.customer import Customer
from tellus_crm.models.mixins import utcnow
from tellus_crm.schemas.customer import CustomerCreateRequest
from tellus_crm.schemas.document import DocumentAttachRequest
from tellus_crm.core.exceptions import BadRequestError, NotFoundError
from tellus_crm.core.logging_utils import sanitize_log_message

logger = logging.getLogger(__name__)


class CustomerService:
    """Service for customer records and their embedded document lists."""

    @staticmethod
    async def get_customer(
        db: AsyncSession,
        customer_id: int,
        for_update: bool = False
    ) -> Customer:
        """
        Get a customer by ID.

        Args:
            db: Database session
            customer_id: Customer ID
            for_update: Lock the row (no-op on SQLite)

        Raises:
            NotFoundError if the customer does not exist
        """
        query = select(Customer).where(Customer.id == customer_id)
        if for_update:
            query = query.with_for_update()
        result = await db.execute(query)
        customer = result.scalar_one_or_none()
        if not customer:
            raise NotFoundError("Customer not found")
        return customer

    @staticmethod
    async def get_customer_by_cpf(db: AsyncSession, cpf: str) -> Optional[Customer]:
        result = await db.execute(select(Customer).where(Customer.cpf == cpf))
        return result.scalar_one_or_none()

    @staticmethod
    async def create_customer(
        db: AsyncSession,
        request: CustomerCreateRequest
    ) -> Customer:
        """
        Create a customer.

        Raises:
            BadRequestError if a customer with the same CPF exists
        """
        if await CustomerService.get_customer_by_cpf(db, request.cpf):
            raise BadRequestError("A customer with this CPF already exists")

        data = request.model_dump(exclude={"address"})
        customer = Customer(
            **data,
            address=request.address.model_dump(by_alias=True) if request.address else None,
            uploaded_documents=[]
        )
        db.add(customer)
        await db.commit()
        await db.refresh(customer)

        logger.info(sanitize_log_message("Customer created", CustomerID=customer.id, cpf=customer.cpf))
        return customer

    @staticmethod
    async def list_customers(
        db: AsyncSession,
        search: Optional[str] = None,
        city: Optional[str] = None,
        state: Optional[str] = None,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[Customer], int]:
        """
        List customers, newest first.

        `search` matches name, email or CPF. City and state filter on the
        embedded address.

        Returns:
            Tuple of (customers on the page, total matching)
        """
        conditions = []
        if search:
            pattern = f"%{search.strip()}%"
            digits = "".join(ch for ch in search if ch.isdigit())
            search_conditions = [Customer.name.ilike(pattern), Customer.email.ilike(pattern)]
            if digits:
                search_conditions.append(Customer.cpf.like(f"%{digits}%"))
            conditions.append(or_(*search_conditions))
        if city:
            conditions.append(func.lower(Customer.address["city"].as_string()) == city.strip().lower())
        if state:
            conditions.append(func.upper(Customer.address["state"].as_string()) == state.strip().upper())

        count_query = select(func.count()).select_from(Customer).where(*conditions)
        total = (await db.execute(count_query)).scalar_one()

        query = (
            select(Customer)
            .where(*conditions)
            .order_by(Customer.created_at.desc(), Customer.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        result = await db.execute(query)
        return list(result.scalars().all()), total

    @staticmethod
    async def attach_document(
        db: AsyncSession,
        customer_id: int,
        document: dict,
        commit: bool = True
    ) -> Customer:
        """
        Append a document metadata dict to the customer's document list.

        Raises:
            NotFoundError if the customer does not exist
            BadRequestError if a document with the same id is already attached
        """
        customer = await CustomerService.get_customer(db, customer_id, for_update=True)
        if customer.find_document(document["id"]):
            raise BadRequestError("Document already attached to this customer")

        # New list so the JSON column is flagged as changed
        customer.uploaded_documents = [*(customer.uploaded_documents or []), document]
        if commit:
            await db.commit()
            await db.refresh(customer)
        return customer

    @staticmethod
    async def attach_uploaded_document(
        db: AsyncSession,
        customer_id: int,
        request: DocumentAttachRequest
    ) -> Customer:
        """Attach metadata for a file a staff member already uploaded."""
        document = request.model_dump(by_alias=True, exclude_none=True)
        document["uploadedAt"] = utcnow().isoformat()
        return await CustomerService.attach_document(db, customer_id, document)

    @staticmethod
    async def remove_document(
        db: AsyncSession,
        customer_id: int,
        document_id: str
    ) -> Tuple[Customer, dict]:
        """
        Detach a document from the customer.

        Grants that list the document are left untouched; they skip it when
        resolving.

        Returns:
            Tuple of (customer, removed document dict)

        Raises:
            NotFoundError if the customer or document does not exist
        """
        customer = await CustomerService.get_customer(db, customer_id, for_update=True)
        document = customer.find_document(document_id)
        if not document:
            raise NotFoundError("Document not found")

        customer.uploaded_documents = [
            doc for doc in customer.uploaded_documents if doc.get("id") != document_id
        ]
        await db.commit()
        await db.refresh(customer)
        return customer, document
