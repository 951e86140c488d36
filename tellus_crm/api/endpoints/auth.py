from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from tellus_crm.database import get_db
from tellus_crm.api.deps import AuditContext, get_current_user
from tellus_crm.schemas.auth import LoginRequest, LoginResponse, UserResponse
from tellus_crm.schemas.common import ApiResponse
from tellus_crm.services.auth_service import AuthService
from tellus_crm.middleware.rate_limit import rate_limit_auth
from tellus_crm.models.audit_log import ActionType, UserType
from tellus_crm.models.user import User

router = APIRouter()


@router.post("/login", response_model=ApiResponse[LoginResponse])
@rate_limit_auth()
async def login(
    request: Request,
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db)
):
    """
    Authenticate with email and password and return a JWT.
    """
    user, token = await AuthService.authenticate(db, credentials.email, credentials.password)

    audit = AuditContext(request=request, db=db, user_id=user.id, user_type=UserType.STAFF)
    await audit.log_action(ActionType.USER_LOGIN, resource_type="user", resource_id=user.id)

    return ApiResponse(
        data=LoginResponse(token=token, user=UserResponse.model_validate(user)),
        message="Login successful"
    )


@router.get("/me", response_model=ApiResponse[UserResponse])
async def get_me(current_user: User = Depends(get_current_user)):
    """
    Get the authenticated user.
    """
    return ApiResponse(data=UserResponse.model_validate(current_user))
