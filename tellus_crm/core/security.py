from datetime import datetime, timedelta
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from tellus_crm.config import settings

# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# Audience claim that separates storage relay tokens from login tokens
RELAY_TOKEN_AUDIENCE = "storage-relay"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password."""
    return pwd_context.hash(password)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    """Decode and verify a JWT access token. Relay tokens are rejected."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    if payload.get("aud") == RELAY_TOKEN_AUDIENCE:
        return None
    return payload


def create_relay_token(file_path: str, expires_in: int) -> str:
    """
    Create a short-lived token granting read access to one stored object.

    Args:
        file_path: Object key the token is bound to
        expires_in: Lifetime in seconds

    Returns:
        Encoded JWT
    """
    expire = datetime.utcnow() + timedelta(seconds=expires_in)
    return jwt.encode(
        {"path": file_path, "aud": RELAY_TOKEN_AUDIENCE, "exp": expire},
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM
    )


def decode_relay_token(token: str) -> Optional[str]:
    """Return the object key bound to a relay token, or None if invalid/expired."""
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            audience=RELAY_TOKEN_AUDIENCE
        )
    except JWTError:
        return None
    # jose skips the audience check for tokens without an aud claim
    if payload.get("aud") != RELAY_TOKEN_AUDIENCE:
        return None
    return payload.get("path")
