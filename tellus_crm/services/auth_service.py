import logging
from typing import Optional, Tuple
from datetime import timedelta
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from tellus_crm.models.user import User
from tellus_crm.config import settings
from tellus_crm.core.security import create_access_token, verify_password, get_password_hash
from tellus_crm.core.exceptions import AuthenticationError, BadRequestError
from tellus_crm.core.logging_utils import sanitize_log_message

logger = logging.getLogger(__name__)


class AuthService:
    """Service for staff user lookup, password login and token issuance."""

    @staticmethod
    async def get_user_by_email(
        db: AsyncSession,
        email: str
    ) -> Optional[User]:
        """
        Get user by email (case-insensitive).

        Args:
            db: Database session
            email: Login email

        Returns:
            User record or None
        """
        result = await db.execute(
            select(User).where(User.email == email.strip().lower())
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get_user_by_id(
        db: AsyncSession,
        user_id: int
    ) -> Optional[User]:
        result = await db.execute(
            select(User).where(User.id == user_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def create_user(
        db: AsyncSession,
        email: str,
        name: str,
        password: str,
        role: str = "user"
    ) -> User:
        """
        Create a staff user.

        Raises:
            BadRequestError if the email is taken or the role is unknown
        """
        if role not in ("admin", "user"):
            raise BadRequestError(f"Invalid role: {role}")
        if await AuthService.get_user_by_email(db, email):
            raise BadRequestError("A user with this email already exists")

        user = User(
            email=email.strip().lower(),
            name=name,
            hashed_password=get_password_hash(password),
            role=role,
            is_active=True
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user

    @staticmethod
    async def authenticate(
        db: AsyncSession,
        email: str,
        password: str
    ) -> Tuple[User, str]:
        """
        Check credentials and issue a JWT.

        Returns:
            Tuple of (user, access_token)

        Raises:
            AuthenticationError on unknown email, wrong password or inactive user
        """
        user = await AuthService.get_user_by_email(db, email)
        if not user or not verify_password(password, user.hashed_password):
            logger.warning(sanitize_log_message("Failed login attempt", email=email))
            raise AuthenticationError("Invalid email or password")
        if not user.is_active:
            logger.warning(sanitize_log_message("Login attempt for inactive user", UserID=user.id))
            raise AuthenticationError("Invalid email or password")

        token = create_access_token(
            data={"sub": str(user.id), "email": user.email, "role": user.role},
            expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        )
        return user, token
