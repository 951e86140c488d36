from typing import List, Optional
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from tellus_crm.api.deps import AuditContext, get_document_service, get_staff_audit_context
from tellus_crm.schemas.common import ApiResponse
from tellus_crm.schemas.document import DocumentMetadata
from tellus_crm.services.document_service import DocumentService
from tellus_crm.models.audit_log import ActionType
from tellus_crm.core.exceptions import NotFoundError

router = APIRouter()


@router.post("/upload", response_model=ApiResponse[DocumentMetadata], status_code=201)
async def upload_document(
    file: UploadFile = File(...),
    document_type: str = Form(..., alias="documentType"),
    user_cpf: Optional[str] = Form(None, alias="userCpf"),
    session_id: Optional[str] = Form(None, alias="sessionId"),
    custom_title: Optional[str] = Form(None, alias="customTitle"),
    document_service: DocumentService = Depends(get_document_service),
    audit: AuditContext = Depends(get_staff_audit_context)
):
    """
    Upload one document to storage.

    The object is stored under the customer's CPF, or under the session id
    for customers not created yet. Attach it with POST /customers/{id}/documents.
    """
    document = await document_service.upload_document(
        file,
        document_type,
        user_cpf=user_cpf,
        session_id=session_id,
        custom_title=custom_title
    )
    await audit.log_action(
        ActionType.DOCUMENT_UPLOADED,
        resource_type="document",
        resource_id=document["id"],
        details={"documentType": document_type, "fileSize": document["fileSize"]}
    )
    return ApiResponse(data=DocumentMetadata.model_validate(document), message="Document uploaded")


@router.post("/upload-multiple", response_model=ApiResponse[List[DocumentMetadata]], status_code=201)
async def upload_documents(
    files: List[UploadFile] = File(...),
    document_type: str = Form(..., alias="documentType"),
    user_cpf: Optional[str] = Form(None, alias="userCpf"),
    session_id: Optional[str] = Form(None, alias="sessionId"),
    document_service: DocumentService = Depends(get_document_service),
    audit: AuditContext = Depends(get_staff_audit_context)
):
    """
    Upload several documents of the same type and owner.
    """
    documents = await document_service.upload_documents(
        files, document_type, user_cpf=user_cpf, session_id=session_id
    )
    for document in documents:
        await audit.log_action(
            ActionType.DOCUMENT_UPLOADED,
            resource_type="document",
            resource_id=document["id"],
            details={"documentType": document_type, "fileSize": document["fileSize"]}
        )
    return ApiResponse(
        data=[DocumentMetadata.model_validate(document) for document in documents],
        message=f"{len(documents)} documents uploaded"
    )


@router.delete("", response_model=ApiResponse)
async def delete_document(
    file_path: str = Query(..., alias="filePath", min_length=1),
    document_service: DocumentService = Depends(get_document_service),
    audit: AuditContext = Depends(get_staff_audit_context)
):
    """
    Delete a stored object by its path.
    """
    if not await document_service.delete_document(file_path):
        raise NotFoundError("Document not found")
    await audit.log_action(ActionType.DOCUMENT_DELETED, resource_type="document", resource_id=file_path)
    return ApiResponse(message="Document deleted")
