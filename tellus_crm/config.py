from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Project Info
    PROJECT_NAME: str = "Tellus CRM API"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api"
    ENVIRONMENT: str = Field(default="development", description="Environment: development, staging, production")
    API_BASE_URL: str = Field(default="http://localhost:8000", description="Public base URL of this API (used for relay URLs)")

    # Database
    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///./data/tellus_crm.db",
        description="Database URL (SQLite or PostgreSQL)"
    )
    DB_POOL_SIZE: int = Field(default=5, description="Database connection pool size")
    DB_MAX_OVERFLOW: int = Field(default=10, description="Database max overflow connections")
    DB_POOL_TIMEOUT: int = Field(default=30, description="Database pool timeout in seconds")
    DB_POOL_RECYCLE: int = Field(default=3600, description="Database pool recycle time in seconds")

    # Security - JWT
    SECRET_KEY: str = Field(..., description="Secret key for JWT token generation")
    ALGORITHM: str = Field(default="HS256", description="JWT algorithm")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60 * 24 * 7, description="JWT token expiration in minutes")

    @field_validator('SECRET_KEY')
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        if len(v) < 32:
            raise ValueError('SECRET_KEY must be at least 32 characters')
        return v

    # Security - CORS
    BACKEND_CORS_ORIGINS: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins"
    )

    # Object storage
    STORAGE_BACKEND: str = Field(default="local", description="Object storage backend: supabase or local")
    SUPABASE_URL: str = Field(default="", description="Supabase project URL")
    SUPABASE_SERVICE_KEY: str = Field(default="", description="Supabase service role key (backend only)")
    SUPABASE_STORAGE_BUCKET: str = Field(default="user-documents", description="Storage bucket for documents")
    STORAGE_TIMEOUT: int = Field(default=30, description="Storage API timeout in seconds")
    STORAGE_RETRY_ATTEMPTS: int = Field(default=3, description="Storage API retry attempts")
    STORAGE_PUBLIC_URL_FALLBACK: bool = Field(
        default=False,
        description="Fall back to the public object URL when signing fails (public buckets only)"
    )
    LOCAL_STORAGE_DIR: str = Field(default="./uploads", description="Directory for the local storage backend")

    # Uploads
    MAX_FILE_SIZE: int = Field(default=10485760, description="Max file size in bytes (default 10MB)")
    MAX_REQUEST_SIZE: int = Field(default=52428800, description="Max request body size in bytes (default 50MB)")
    ALLOWED_FILE_TYPES: List[str] = Field(
        default=["application/pdf", "image/jpeg", "image/jpg", "image/png", "image/webp"],
        description="Allowed MIME types for file uploads"
    )

    # Shareable / upload links
    SHARE_LINK_MAX_HOURS: int = Field(default=24 * 30, description="Upper bound for share link lifetime in hours")
    UPLOAD_LINK_DEFAULT_HOURS: int = Field(default=72, description="Default upload link lifetime in hours")
    UPLOAD_LINK_DEFAULT_MAX_FILES: int = Field(default=20, description="Default cumulative file limit for upload links")
    LINK_PURGE_INTERVAL_MINUTES: int = Field(
        default=60,
        description="Interval for purging expired/inactive links (0 disables the periodic task)"
    )

    # Signed URLs
    SIGNED_URL_DEFAULT_TTL: int = Field(default=3600, description="Default signed URL lifetime in seconds")
    SIGNED_URL_MIN_TTL: int = Field(default=300, description="Minimum signed URL lifetime for grant-scoped URLs")

    # Server Configuration
    WORKERS: int = Field(default=4, description="Number of Uvicorn workers")
    HOST: str = Field(default="0.0.0.0", description="Server host")
    PORT: int = Field(default=8000, description="Server port")

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    LOG_DIR: str = Field(default="./logs", description="Directory for log files")
    LOG_RETENTION_DAYS: int = Field(default=30, description="Number of days to keep log files")
    LOG_ENABLE_REQUEST_LOGGING: bool = Field(default=True, description="Enable HTTP request/response logging")

    # Rate Limiting
    RATE_LIMIT_ENABLED: bool = Field(default=True, description="Enable rate limiting")
    RATE_LIMIT_DEFAULT: str = Field(default="100/minute", description="Default rate limit")
    RATE_LIMIT_AUTH: str = Field(default="5/minute", description="Rate limit for auth endpoints")
    RATE_LIMIT_PUBLIC_LINKS: str = Field(default="30/minute", description="Rate limit for public link endpoints")
    RATE_LIMIT_STORAGE_URI: str = Field(default="memory://", description="Rate limit storage URI")

    # Circuit Breaker
    CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = Field(default=5, description="Failures before circuit opens")
    CIRCUIT_BREAKER_RECOVERY_TIMEOUT: int = Field(default=30, description="Seconds before attempting reset")
    CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS: int = Field(default=3, description="Max calls in half-open state")

    def get_log_level(self) -> str:
        """Get log level based on environment."""
        if self.ENVIRONMENT.lower() in ["development", "dev", "test"]:
            return "DEBUG"
        return self.LOG_LEVEL.upper()

    def get_storage_backend(self) -> str:
        """Resolve the storage backend, falling back to local when Supabase is not configured."""
        backend = self.STORAGE_BACKEND.lower()
        if backend == "supabase" and not (self.SUPABASE_URL and self.SUPABASE_SERVICE_KEY):
            return "local"
        return backend


settings = Settings()
