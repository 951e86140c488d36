import asyncio
import logging
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from tellus_crm.api.router import api_router
from tellus_crm.config import settings
from tellus_crm.core.exceptions import AppException, StorageError
from tellus_crm.core.logging_config import setup_logging, cleanup_old_logs
from tellus_crm.core.logging_utils import sanitize_log_message, get_request_id, mask_path
from tellus_crm.database import init_db, close_db
from tellus_crm.external.storage_client import build_storage_client
from tellus_crm.middleware.logging_middleware import LoggingMiddleware
from tellus_crm.middleware.rate_limit import setup_rate_limiting
from tellus_crm.middleware.security import setup_security_middleware
from tellus_crm.services.maintenance import run_link_purge_loop

logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_PREFIX}/openapi.json",
    docs_url=f"{settings.API_PREFIX}/docs",
    redoc_url=f"{settings.API_PREFIX}/redoc",
)


@app.on_event("startup")
async def startup_event():
    """Initialize logging, database, storage client and the link purge task."""
    setup_logging()
    cleanup_old_logs()
    await init_db()

    app.state.storage = build_storage_client()

    app.state.purge_task = None
    if settings.LINK_PURGE_INTERVAL_MINUTES > 0:
        app.state.purge_task = asyncio.create_task(
            run_link_purge_loop(settings.LINK_PURGE_INTERVAL_MINUTES)
        )
    logger.info("Application startup complete")


@app.on_event("shutdown")
async def shutdown_event():
    """Stop background work and release connections."""
    purge_task = getattr(app.state, "purge_task", None)
    if purge_task:
        purge_task.cancel()
        try:
            await purge_task
        except asyncio.CancelledError:
            pass

    storage = getattr(app.state, "storage", None)
    if storage:
        await storage.close()
    await close_db()
    logger.info("Application shutdown complete")


# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID", "Accept", "Origin"],
)

# Security middleware (request size limit + security headers)
setup_security_middleware(app, max_request_size=settings.MAX_REQUEST_SIZE)

# Logging middleware (assigns X-Request-ID)
app.add_middleware(LoggingMiddleware)

# Rate limiting
setup_rate_limiting(app)

# Include API router
app.include_router(api_router, prefix=settings.API_PREFIX)


def error_response(status_code: int, message: str, headers: dict = None) -> JSONResponse:
    """Error envelope shared by every handler."""
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message},
        headers=headers
    )


# Exception handlers with logging
@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    context = dict(
        Path=mask_path(request.url.path),
        Method=request.method,
        IP=request.client.host if request.client else None,
        StatusCode=exc.status_code,
        Detail=exc.detail,
        RequestID=get_request_id(request)
    )
    if isinstance(exc, StorageError):
        context.update(FilePath=exc.file_path, Bucket=exc.bucket, Reason=exc.reason)

    if exc.status_code >= 500:
        logger.error(sanitize_log_message(f"{type(exc).__name__}", **context))
    else:
        logger.warning(sanitize_log_message(f"{type(exc).__name__}", **context))

    return error_response(exc.status_code, exc.detail)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.warning(
        sanitize_log_message(
            "HTTP error",
            Path=mask_path(request.url.path),
            Method=request.method,
            StatusCode=exc.status_code,
            Detail=exc.detail,
            RequestID=get_request_id(request)
        )
    )
    return error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ())[1:])
        messages.append(f"{location}: {error.get('msg')}" if location else error.get("msg", "Invalid value"))
    message = "; ".join(messages) or "Invalid request"

    logger.info(
        sanitize_log_message(
            "Request validation failed",
            Path=mask_path(request.url.path),
            Method=request.method,
            Errors=message,
            RequestID=get_request_id(request)
        )
    )
    return error_response(status.HTTP_400_BAD_REQUEST, message)


# Generic exception handler for unhandled exceptions
@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.exception(
        sanitize_log_message(
            f"Unhandled exception: {type(exc).__name__}",
            Path=mask_path(request.url.path),
            Method=request.method,
            IP=request.client.host if request.client else None,
            ExceptionMessage=str(exc),
            RequestID=get_request_id(request)
        )
    )
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error, please try again")


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": settings.VERSION}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": settings.PROJECT_NAME,
        "version": settings.VERSION,
        "docs": f"{settings.API_PREFIX}/docs"
    }
