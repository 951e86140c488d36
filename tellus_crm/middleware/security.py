"""
Security middleware for request size limiting and security headers.
"""
import logging
from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from tellus_crm.config import settings
from tellus_crm.core.logging_utils import mask_path

logger = logging.getLogger(__name__)


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """
    Middleware to limit request body size.

    Checks the Content-Length header and rejects requests exceeding the limit.
    """

    def __init__(self, app, max_size: int = None):
        super().__init__(app)
        self.max_size = max_size or settings.MAX_REQUEST_SIZE

    async def dispatch(self, request: Request, call_next) -> Response:
        content_length = request.headers.get("content-length")

        if content_length and content_length.isdigit():
            size = int(content_length)
            if size > self.max_size:
                logger.warning(
                    f"Request body too large: {size} bytes (max: {self.max_size})",
                    extra={
                        "path": mask_path(request.url.path),
                        "method": request.method,
                        "content_length": size,
                        "max_size": self.max_size,
                        "ip": request.client.host if request.client else None
                    }
                )
                return JSONResponse(
                    status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                    content={"success": False, "error": "Request body too large"}
                )

        return await call_next(request)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add security headers to all responses.

    Share and upload pages embed document URLs, so responses must never be
    cached by intermediaries or sent as a referrer to third parties.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        path = request.url.path
        if "/docs" in path or "/redoc" in path or path.endswith("/openapi.json"):
            response.headers["Content-Security-Policy"] = (
                "default-src 'self'; "
                "script-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
                "style-src 'self' 'unsafe-inline' https://cdn.jsdelivr.net; "
                "img-src 'self' data: https://fastapi.tiangolo.com https://cdn.jsdelivr.net; "
                "frame-ancestors 'none'"
            )
        else:
            response.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none'"

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Permissions-Policy"] = "camera=(), geolocation=(), microphone=(), payment=()"

        if "Cache-Control" not in response.headers:
            response.headers["Cache-Control"] = "no-store"

        return response


def setup_security_middleware(app, max_request_size: int = None) -> None:
    """
    Configure security middleware for the FastAPI application.

    Args:
        app: FastAPI application instance
        max_request_size: Maximum allowed request body size in bytes
    """
    max_request_size = max_request_size or settings.MAX_REQUEST_SIZE
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware, max_size=max_request_size)

    logger.info(
        f"Security middleware enabled: max_request_size={max_request_size / (1024*1024):.1f}MB"
    )
