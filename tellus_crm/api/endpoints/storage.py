import mimetypes
import logging
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response
from tellus_crm.api.deps import get_storage_client
from tellus_crm.external.storage_client import StorageClient
from tellus_crm.middleware.rate_limit import rate_limit_public_links
from tellus_crm.core.exceptions import ForbiddenError
from tellus_crm.core.security import decode_relay_token
from tellus_crm.core.logging_utils import sanitize_log_message, get_request_id

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/object")
@rate_limit_public_links()
async def relay_object(
    request: Request,
    token: str = Query(..., min_length=16),
    storage: StorageClient = Depends(get_storage_client)
):
    """
    Serve one stored object to the holder of a relay URL.

    Relay URLs are issued by the local backend and when the provider cannot
    sign; the token names the object and expires like a signed URL.
    """
    file_path = decode_relay_token(token)
    if not file_path:
        raise ForbiddenError("Invalid or expired URL")

    content = await storage.download(file_path)
    logger.debug(
        sanitize_log_message(
            "Relayed object",
            FilePath=file_path,
            Size=len(content),
            RequestID=get_request_id(request)
        )
    )

    media_type = mimetypes.guess_type(file_path)[0] or "application/octet-stream"
    return Response(
        content=content,
        media_type=media_type,
        headers={
            "Content-Disposition": "inline",
            "Cache-Control": "private, no-store",
        }
    )
