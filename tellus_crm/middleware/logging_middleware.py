import logging
import time
import uuid
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from tellus_crm.config import settings
from tellus_crm.core.logging_utils import mask_headers, mask_path, sanitize_log_message

logger = logging.getLogger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Assign a request ID to every request and log requests/responses with sensitive data masked."""

    # Endpoints to skip logging (reduce noise)
    SKIP_PATHS = {"/health", "/"}
    SKIP_PREFIXES = ("/docs", "/redoc", "/openapi.json")

    def _should_log(self, path: str) -> bool:
        if not settings.LOG_ENABLE_REQUEST_LOGGING:
            return False
        return path not in self.SKIP_PATHS and not path.startswith(self.SKIP_PREFIXES)

    async def dispatch(self, request: Request, call_next):
        # Honour an upstream request ID, otherwise generate one
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        if not self._should_log(request.url.path):
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response

        start_time = time.time()
        method = request.method
        path = mask_path(request.url.path)
        client_ip = request.client.host if request.client else None

        logger.debug(
            sanitize_log_message(
                f"Request: {method} {path}",
                RequestID=request_id,
                IP=client_ip,
                UserAgent=request.headers.get("user-agent"),
                QueryParams=dict(request.query_params),
                Headers=mask_headers(dict(request.headers))
            )
        )

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = time.time() - start_time
            logger.exception(
                sanitize_log_message(
                    f"Exception in request: {method} {path}",
                    RequestID=request_id,
                    ProcessTime=f"{process_time:.3f}s",
                    IP=client_ip,
                    Error=str(e)
                )
            )
            raise

        process_time = time.time() - start_time
        response.headers["X-Request-ID"] = request_id
        logger.info(
            sanitize_log_message(
                f"Response: {method} {path}",
                RequestID=request_id,
                Status=response.status_code,
                ProcessTime=f"{process_time:.3f}s",
                IP=client_ip
            )
        )
        return response
