"""
Rate limiting middleware using slowapi.
"""
import logging
from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from tellus_crm.config import settings
from tellus_crm.core.logging_utils import sanitize_log_message, get_request_id

logger = logging.getLogger(__name__)


def get_client_ip(request: Request) -> str:
    """
    Get client IP address from request.
    Handles X-Forwarded-For header for proxied requests.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # Take the first IP in the chain (original client)
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


# Create limiter instance
limiter = Limiter(
    key_func=get_client_ip,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    enabled=settings.RATE_LIMIT_ENABLED
)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Render rate limit errors in the standard error envelope."""
    logger.warning(
        sanitize_log_message(
            "Rate limit exceeded",
            Path=request.url.path,
            ClientIP=get_client_ip(request),
            Limit=str(exc.detail),
            RequestID=get_request_id(request)
        )
    )
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={"success": False, "error": "Too many requests, please try again later"}
    )


def setup_rate_limiting(app: FastAPI) -> None:
    """
    Configure rate limiting for the FastAPI application.

    Args:
        app: FastAPI application instance
    """
    if not settings.RATE_LIMIT_ENABLED:
        logger.info("Rate limiting is disabled")
        return

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    logger.info(
        f"Rate limiting enabled: default={settings.RATE_LIMIT_DEFAULT}, "
        f"auth={settings.RATE_LIMIT_AUTH}, public_links={settings.RATE_LIMIT_PUBLIC_LINKS}"
    )


# Decorators for specific rate limits
def rate_limit_auth():
    """Rate limit decorator for auth endpoints."""
    return limiter.limit(settings.RATE_LIMIT_AUTH)


def rate_limit_public_links():
    """Rate limit decorator for public link endpoints (token guessing, quota burning)."""
    return limiter.limit(settings.RATE_LIMIT_PUBLIC_LINKS)
