from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from tellus_crm.database import get_db
from tellus_crm.api.deps import AuditContext, get_current_user, get_document_service, get_staff_audit_context
from tellus_crm.schemas.common import ApiResponse
from tellus_crm.schemas.customer import CustomerCreateRequest, CustomerListResponse, CustomerResponse
from tellus_crm.schemas.document import DocumentAttachRequest
from tellus_crm.services.customer_service import CustomerService
from tellus_crm.services.document_service import DocumentService
from tellus_crm.models.audit_log import ActionType
from tellus_crm.models.user import User
from tellus_crm.core.exceptions import NotFoundError

router = APIRouter()


@router.post("", response_model=ApiResponse[CustomerResponse], status_code=201)
async def create_customer(
    customer_data: CustomerCreateRequest,
    db: AsyncSession = Depends(get_db),
    audit: AuditContext = Depends(get_staff_audit_context)
):
    """
    Create a customer. CPF must be unique.
    """
    customer = await CustomerService.create_customer(db, customer_data)
    await audit.log_action(ActionType.CUSTOMER_CREATED, resource_type="customer", resource_id=customer.id)
    return ApiResponse(data=CustomerResponse.model_validate(customer), message="Customer created")


@router.get("", response_model=ApiResponse[CustomerListResponse])
async def list_customers(
    search: Optional[str] = Query(None, max_length=100),
    city: Optional[str] = Query(None, max_length=100),
    state: Optional[str] = Query(None, min_length=2, max_length=2),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """
    List customers, newest first. `search` matches name, email or CPF.
    """
    customers, total = await CustomerService.list_customers(db, search, city, state, page, limit)
    return ApiResponse(
        data=CustomerListResponse(
            customers=[CustomerResponse.model_validate(c) for c in customers],
            total=total,
            page=page,
            limit=limit
        )
    )


@router.get("/{customer_id}", response_model=ApiResponse[CustomerResponse])
async def get_customer(
    customer_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    customer = await CustomerService.get_customer(db, customer_id)
    return ApiResponse(data=CustomerResponse.model_validate(customer))


@router.post("/{customer_id}/documents", response_model=ApiResponse[CustomerResponse])
async def attach_document(
    customer_id: int,
    document: DocumentAttachRequest,
    db: AsyncSession = Depends(get_db),
    audit: AuditContext = Depends(get_staff_audit_context)
):
    """
    Attach an uploaded document (see POST /documents/upload) to a customer.
    """
    customer = await CustomerService.attach_uploaded_document(db, customer_id, document)
    await audit.log_action(
        ActionType.DOCUMENT_UPLOADED,
        resource_type="customer",
        resource_id=customer.id,
        details={"documentId": document.id, "documentType": document.document_type}
    )
    return ApiResponse(data=CustomerResponse.model_validate(customer), message="Document attached")


@router.delete("/{customer_id}/documents/{document_id:path}", response_model=ApiResponse[CustomerResponse])
async def delete_customer_document(
    customer_id: int,
    document_id: str,
    db: AsyncSession = Depends(get_db),
    document_service: DocumentService = Depends(get_document_service),
    audit: AuditContext = Depends(get_staff_audit_context)
):
    """
    Delete a customer document: the stored object first, then the record entry.

    Links that listed the document keep their reference and skip it.
    """
    customer = await CustomerService.get_customer(db, customer_id)
    document = customer.find_document(document_id)
    if not document:
        raise NotFoundError("Document not found")

    await document_service.delete_document(document.get("filePath") or document["id"])
    customer, _ = await CustomerService.remove_document(db, customer_id, document_id)

    await audit.log_action(
        ActionType.DOCUMENT_DELETED,
        resource_type="customer",
        resource_id=customer.id,
        details={"documentId": document_id}
    )
    return ApiResponse(data=CustomerResponse.model_validate(customer), message="Document deleted")
