import uuid
from typing import Optional, Dict, Any
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from tellus_crm.database import get_db
from tellus_crm.models.user import User
from tellus_crm.core.security import decode_access_token
from tellus_crm.external.storage_client import StorageClient, build_storage_client
from tellus_crm.services.auth_service import AuthService
from tellus_crm.services.audit_service import AuditService
from tellus_crm.services.document_service import DocumentService
from tellus_crm.services.signed_url_service import SignedUrlService
from tellus_crm.services.upload_service import UploadIngestionService
from tellus_crm.models.audit_log import ActionType, UserType


# HTTP Bearer scheme for JWT authentication
bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    Get current staff user from JWT token.
    Dependency for endpoints requiring authentication.

    Raises:
        HTTPException: 401 if token is missing/invalid or the user is unknown/inactive
    """
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token required",
            headers={"WWW-Authenticate": "Bearer"}
        )

    payload = decode_access_token(credentials.credentials)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"}
        )

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"}
        )

    user = await AuthService.get_user_by_id(db, user_id)
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
            headers={"WWW-Authenticate": "Bearer"}
        )

    return user


async def require_admin(current_user: User = Depends(get_current_user)) -> User:
    """Allow only admin users."""
    if current_user.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required"
        )
    return current_user


def get_storage_client(request: Request) -> StorageClient:
    """The storage client built at startup, shared by every request."""
    storage = getattr(request.app.state, "storage", None)
    if storage is None:
        storage = build_storage_client()
        request.app.state.storage = storage
    return storage


# Service Dependencies for Dependency Injection
def get_signed_url_service(storage: StorageClient = Depends(get_storage_client)) -> SignedUrlService:
    """Get SignedUrlService instance."""
    return SignedUrlService(storage)


def get_document_service(storage: StorageClient = Depends(get_storage_client)) -> DocumentService:
    """Get DocumentService instance."""
    return DocumentService(storage)


def get_upload_service(storage: StorageClient = Depends(get_storage_client)) -> UploadIngestionService:
    """Get UploadIngestionService instance."""
    return UploadIngestionService(storage)


class AuditContext:
    """Request-scoped audit logging context with request ID and caller identity."""

    def __init__(
        self,
        request: Request,
        db: AsyncSession,
        user_id: Optional[int] = None,
        user_type: Optional[UserType] = None
    ):
        """
        Initialize audit context with request-scoped information.

        Args:
            request: FastAPI Request object
            db: Database session
            user_id: Staff user ID, if authenticated
            user_type: STAFF, PUBLIC or SYSTEM
        """
        # Get or generate request ID from request state
        if not hasattr(request.state, "request_id"):
            request.state.request_id = str(uuid.uuid4())

        self.request_id = request.state.request_id
        self.db = db
        self.user_id = user_id
        self.user_type = user_type or UserType.PUBLIC
        self.ip_address = request.client.host if request.client else None
        self.user_agent = request.headers.get("user-agent")

    async def log_action(
        self,
        action_type: ActionType,
        resource_type: Optional[str] = None,
        resource_id: Optional[Any] = None,
        details: Optional[Dict[str, Any]] = None,
        status: str = "success"
    ) -> None:
        """Log an action with automatic context and request ID."""
        await AuditService.log_action(
            db=self.db,
            action_type=action_type,
            user_type=self.user_type,
            user_id=self.user_id,
            resource_type=resource_type,
            resource_id=resource_id,
            ip_address=self.ip_address,
            user_agent=self.user_agent,
            details=details,
            status=status,
            request_id=self.request_id
        )


async def get_audit_context(
    request: Request,
    db: AsyncSession = Depends(get_db)
) -> AuditContext:
    """
    Audit context for public endpoints (link holders, no credentials).

    Usage:
        @router.get("/endpoint")
        async def endpoint(audit: AuditContext = Depends(get_audit_context)):
            await audit.log_action(...)
    """
    return AuditContext(request=request, db=db, user_type=UserType.PUBLIC)


async def get_staff_audit_context(
    request: Request,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user)
) -> AuditContext:
    """Audit context for authenticated staff endpoints."""
    return AuditContext(request=request, db=db, user_id=current_user.id, user_type=UserType.STAFF)
