import os
import logging
import uuid
import re
from typing import List, Optional, Tuple
from pathlib import Path
from fastapi import UploadFile
from tellus_crm.config import settings
from tellus_crm.models.mixins import utcnow
from tellus_crm.external.storage_client import StorageClient
from tellus_crm.core.exceptions import BadRequestError, TooLargeError, UnsupportedTypeError
from tellus_crm.core.logging_utils import sanitize_log_message

logger = logging.getLogger(__name__)

# Extensions kept on stored object keys; anything else is stored without one
ALLOWED_EXTENSIONS = {'.pdf', '.jpg', '.jpeg', '.png', '.webp', '.heic', '.doc', '.docx', '.xls', '.xlsx', '.txt'}

# Upper bound for one multi-file request
MAX_FILES_PER_REQUEST = 10


def sanitize_filename(original_filename: Optional[str]) -> Tuple[str, str]:
    """
    Sanitize filename for secure storage.

    Generates a UUID-based filename for storage while preserving
    the original filename for display purposes.

    Args:
        original_filename: Original filename from upload

    Returns:
        Tuple of (safe_storage_name, sanitized_display_name)
    """
    if original_filename:
        # Remove any path components (prevent path traversal)
        clean_name = os.path.basename(original_filename.replace('\\', '/'))
        clean_name = re.sub(r'\.\.[\\/]', '', clean_name)
        clean_name = re.sub(r'[\\/]', '', clean_name)
        ext = Path(clean_name).suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            ext = ''
    else:
        clean_name = 'unnamed'
        ext = ''

    safe_storage_name = f"{uuid.uuid4().hex}{ext}"

    # Remove control characters, limit length
    display_name = re.sub(r'[<>:"/\\|?*\x00-\x1f]', '_', clean_name) or 'unnamed'
    display_name = display_name[:255]

    return safe_storage_name, display_name


async def read_upload(file: UploadFile, max_size: int) -> bytes:
    """
    Read an uploaded file, refusing empty files and files over `max_size`.

    Reads at most one byte past the ceiling.

    Raises:
        TooLargeError, BadRequestError
    """
    content = await file.read(max_size + 1)
    if len(content) > max_size:
        raise TooLargeError(f"File exceeds the maximum size of {max_size} bytes")
    if not content:
        raise BadRequestError("File is empty")
    return content


class DocumentService:
    """Service for staff document uploads to object storage."""

    def __init__(self, storage: StorageClient):
        self.storage = storage
        self.allowed_types = settings.ALLOWED_FILE_TYPES
        self.max_file_size = settings.MAX_FILE_SIZE

    def _validate_file_type(self, mime_type: Optional[str]) -> bool:
        """
        Validate if file type is allowed.

        Args:
            mime_type: MIME type of the file

        Returns:
            True if allowed, False otherwise
        """
        return bool(mime_type) and mime_type.lower() in self.allowed_types

    @staticmethod
    def build_object_path(storage_name: str, user_cpf: Optional[str] = None, session_id: Optional[str] = None) -> str:
        """
        Object key for a document: `{cpf}/{name}` or `session/{session_id}/{name}`.

        Raises:
            BadRequestError if neither owner key is usable
        """
        if user_cpf:
            digits = "".join(ch for ch in user_cpf if ch.isdigit())
            if len(digits) != 11:
                raise BadRequestError("userCpf must have 11 digits")
            return f"{digits}/{storage_name}"
        if session_id:
            if not re.fullmatch(r'[A-Za-z0-9_-]{1,64}', session_id):
                raise BadRequestError("Invalid sessionId")
            return f"session/{session_id}/{storage_name}"
        raise BadRequestError("userCpf or sessionId is required")

    async def upload_document(
        self,
        file: UploadFile,
        document_type: str,
        user_cpf: Optional[str] = None,
        session_id: Optional[str] = None,
        custom_title: Optional[str] = None
    ) -> dict:
        """
        Validate and store one file.

        Returns:
            Document metadata dict ready to attach to a customer or lead

        Raises:
            UnsupportedTypeError, TooLargeError, BadRequestError, StorageError
        """
        if not document_type:
            raise BadRequestError("documentType is required")
        if not self._validate_file_type(file.content_type):
            raise UnsupportedTypeError(
                f"File type {file.content_type} is not allowed. Allowed types: {', '.join(self.allowed_types)}"
            )

        storage_name, display_name = sanitize_filename(file.filename)
        file_path = self.build_object_path(storage_name, user_cpf, session_id)
        content = await read_upload(file, self.max_file_size)

        await self.storage.upload(content, file_path, file.content_type)

        logger.info(
            sanitize_log_message(
                "Document uploaded",
                FilePath=file_path,
                FileSize=len(content),
                DocumentType=document_type
            )
        )

        document = {
            "id": file_path,
            "fileName": display_name,
            "filePath": file_path,
            "fileType": file.content_type,
            "fileSize": len(content),
            "documentType": document_type,
            "uploadedAt": utcnow().isoformat(),
        }
        if custom_title:
            document["customTitle"] = custom_title.strip()[:255]
        return document

    async def upload_documents(
        self,
        files: List[UploadFile],
        document_type: str,
        user_cpf: Optional[str] = None,
        session_id: Optional[str] = None
    ) -> List[dict]:
        """
        Store several files for the same owner.

        Every file is validated before the first one is stored; if storing
        fails midway, the files already stored are deleted.
        """
        if not files:
            raise BadRequestError("No files sent")
        if len(files) > MAX_FILES_PER_REQUEST:
            raise BadRequestError(f"At most {MAX_FILES_PER_REQUEST} files per request")
        for file in files:
            if not self._validate_file_type(file.content_type):
                raise UnsupportedTypeError(f"File type {file.content_type} is not allowed")

        documents = []
        try:
            for file in files:
                documents.append(
                    await self.upload_document(file, document_type, user_cpf=user_cpf, session_id=session_id)
                )
        except BaseException:
            for document in documents:
                await self.delete_document(document["filePath"])
            raise
        return documents

    async def delete_document(self, file_path: str) -> bool:
        """
        Delete a stored object.

        Returns:
            False when nothing was stored under `file_path`
        """
        if not file_path or '..' in file_path.split('/'):
            raise BadRequestError("Invalid filePath")
        deleted = await self.storage.delete(file_path)
        logger.info(sanitize_log_message("Document deleted", FilePath=file_path, Found=deleted))
        return deleted
