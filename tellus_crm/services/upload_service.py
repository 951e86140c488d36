"""
Files sent by customers through upload links.

Per request: link checked, file policy checked, bytes stored, customer record
updated. The customer is only touched after the bytes are stored, and an
object whose record update fails is deleted again.
"""
import logging
from datetime import datetime
from typing import Optional
from fastapi import UploadFile
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import update
from tellus_crm.models.customer_upload_link import CustomerUploadLink
from tellus_crm.models.mixins import utcnow
from tellus_crm.external.storage_client import StorageClient
from tellus_crm.services.link_service import LinkLifecycleService
from tellus_crm.services.customer_service import CustomerService
from tellus_crm.services.document_service import sanitize_filename, read_upload
from tellus_crm.core.exceptions import QuotaExceededError, StorageError, UnsupportedTypeError
from tellus_crm.core.logging_utils import sanitize_log_message

logger = logging.getLogger(__name__)

UPLOADED_VIA = "customer_upload_link"
DEFAULT_DOCUMENT_TYPE = "customer_upload"


class UploadIngestionService:
    """Accept a file against an upload link and attach it to the customer."""

    def __init__(self, storage: StorageClient):
        self.storage = storage

    async def _discard(self, file_path: str, link_id: str) -> None:
        """Delete an object that never made it onto the customer record."""
        try:
            await self.storage.delete(file_path)
        except StorageError as e:
            logger.error(
                sanitize_log_message(
                    "Orphaned upload could not be deleted",
                    FilePath=file_path,
                    Bucket=e.bucket,
                    LinkID=link_id[:8],
                    Reason=e.reason
                )
            )

    async def ingest(
        self,
        db: AsyncSession,
        link_id: str,
        file: UploadFile,
        document_type: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> dict:
        """
        Store one file sent through an upload link.

        The link's access count is not touched: the page view that led to the
        upload was already counted.

        Returns:
            {"documentId", "fileName", "fileSize"}

        Raises:
            NotFoundError, ExpiredError, QuotaExceededError (link or file limit),
            UnsupportedTypeError, TooLargeError, BadRequestError (empty file),
            StorageError
        """
        now = now or utcnow()
        link, _ = await LinkLifecycleService.resolve(
            db, CustomerUploadLink, link_id, record_access=False, allow_spent_quota=True, now=now
        )

        mime_type = (file.content_type or "").lower()
        if not link.accepts_type(mime_type):
            logger.info(
                sanitize_log_message(
                    "Upload rejected: file type not allowed",
                    LinkID=link_id[:8],
                    FileType=mime_type
                )
            )
            raise UnsupportedTypeError(
                f"File type {mime_type or 'unknown'} is not allowed for this link"
            )

        content = await read_upload(file, link.max_file_size)

        if link.files_uploaded >= link.max_files:
            raise QuotaExceededError("Upload limit reached for this link")

        storage_name, display_name = sanitize_filename(file.filename)
        file_path = f"{link.customer_cpf}/{storage_name}"

        try:
            await self.storage.upload(content, file_path, mime_type)
        except StorageError as e:
            logger.error(
                sanitize_log_message(
                    "Upload via link failed",
                    FilePath=file_path,
                    Bucket=e.bucket,
                    LinkID=link_id[:8],
                    Reason=e.reason
                )
            )
            raise

        document = {
            "id": file_path,
            "fileName": display_name,
            "filePath": file_path,
            "fileUrl": self.storage.public_url(file_path),
            "fileType": mime_type,
            "fileSize": len(content),
            "documentType": document_type or DEFAULT_DOCUMENT_TYPE,
            "uploadedAt": now.isoformat(),
            "uploadedVia": UPLOADED_VIA,
            "uploadLinkId": link.id,
        }

        try:
            # Claim a slot and attach in one transaction; the WHERE clause
            # keeps files_uploaded <= max_files under concurrent uploads
            result = await db.execute(
                update(CustomerUploadLink)
                .where(
                    CustomerUploadLink.id == link.id,
                    CustomerUploadLink.files_uploaded < CustomerUploadLink.max_files
                )
                .values(files_uploaded=CustomerUploadLink.files_uploaded + 1)
                .returning(CustomerUploadLink.id)
                .execution_options(synchronize_session=False)
            )
            if result.scalar_one_or_none() is None:
                raise QuotaExceededError("Upload limit reached for this link")

            await CustomerService.attach_document(db, link.customer_id, document, commit=False)
            await db.commit()
        except BaseException:
            # Includes cancellation: a disconnected client must not leave the object behind
            await db.rollback()
            await self._discard(file_path, link_id)
            raise

        logger.info(
            sanitize_log_message(
                "Document received via upload link",
                LinkID=link_id[:8],
                CustomerID=link.customer_id,
                FilePath=file_path,
                FileSize=len(content)
            )
        )
        return {
            "documentId": file_path,
            "fileName": display_name,
            "fileSize": len(content),
        }
