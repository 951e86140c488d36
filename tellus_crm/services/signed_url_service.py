import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, Optional, Tuple
from tellus_crm.config import settings
from tellus_crm.external.storage_client import StorageClient, build_relay_url
from tellus_crm.models.mixins import utcnow
from tellus_crm.core.exceptions import ExpiredError, StorageError
from tellus_crm.core.logging_utils import sanitize_log_message

logger = logging.getLogger(__name__)


@dataclass
class SignedUrl:
    url: str
    expires_in: int  # seconds
    expires_at: datetime


class SignedUrlService:
    """
    Issue time-limited URLs for stored documents.

    URLs are always minted on request; URLs saved on documents are advisory.
    """

    def __init__(self, storage: StorageClient):
        self.storage = storage
        self.min_ttl = settings.SIGNED_URL_MIN_TTL

    async def issue(
        self,
        file_path: str,
        ttl_seconds: int = None,
        now: Optional[datetime] = None
    ) -> SignedUrl:
        """
        Ask the storage provider for a signed URL.

        Raises:
            StorageError if the provider fails (bucket missing, permission denied)
        """
        if ttl_seconds is None:
            ttl_seconds = settings.SIGNED_URL_DEFAULT_TTL
        now = now or utcnow()
        url = await self.storage.create_signed_url(file_path, ttl_seconds)
        return SignedUrl(url=url, expires_in=ttl_seconds, expires_at=now + timedelta(seconds=ttl_seconds))

    async def issue_with_fallback(
        self,
        file_path: str,
        ttl_seconds: int = None,
        now: Optional[datetime] = None
    ) -> SignedUrl:
        """
        Issue a signed URL, falling back when the provider cannot sign.

        The fallback is the public object URL when the bucket is configured as
        public, otherwise a relay URL served by this API.
        """
        if ttl_seconds is None:
            ttl_seconds = settings.SIGNED_URL_DEFAULT_TTL
        now = now or utcnow()
        try:
            return await self.issue(file_path, ttl_seconds, now)
        except StorageError as e:
            logger.warning(
                sanitize_log_message(
                    "Signed URL failed, using fallback",
                    FilePath=file_path,
                    Bucket=e.bucket,
                    Reason=e.reason
                )
            )

        if settings.STORAGE_PUBLIC_URL_FALLBACK:
            url = self.storage.public_url(file_path)
        else:
            url = build_relay_url(file_path, ttl_seconds)
        return SignedUrl(url=url, expires_in=ttl_seconds, expires_at=now + timedelta(seconds=ttl_seconds))

    def ttl_for_grant(self, grant_expires_at: datetime, now: Optional[datetime] = None) -> int:
        """
        Seconds a document URL issued under a grant stays valid.

        Never less than the configured floor, otherwise the grant's remaining
        lifetime.

        Raises:
            ExpiredError if the grant has already expired
        """
        now = now or utcnow()
        remaining = int((grant_expires_at - now).total_seconds())
        if remaining <= 0:
            raise ExpiredError()
        return max(self.min_ttl, remaining)

    async def issue_for_grant(
        self,
        file_path: str,
        grant_expires_at: datetime,
        now: Optional[datetime] = None
    ) -> SignedUrl:
        """Issue a URL whose lifetime is bound to the grant it was issued under."""
        now = now or utcnow()
        ttl = self.ttl_for_grant(grant_expires_at, now)
        return await self.issue_with_fallback(file_path, ttl, now)

    async def issue_many_for_grant(
        self,
        file_paths: Iterable[str],
        grant_expires_at: datetime,
        now: Optional[datetime] = None
    ) -> Tuple[int, Dict[str, SignedUrl], Dict[str, str]]:
        """
        Issue grant-bound URLs for several objects concurrently.

        Duplicate paths are signed once. A provider failure on one path does
        not fail the others.

        Returns:
            Tuple of (ttl in seconds, urls by path, public error message by path for failures)

        Raises:
            ExpiredError if the grant has already expired (before any provider call)
        """
        now = now or utcnow()
        ttl = self.ttl_for_grant(grant_expires_at, now)
        paths = list(dict.fromkeys(file_paths))
        results = await asyncio.gather(
            *(self.issue_for_grant(path, grant_expires_at, now) for path in paths),
            return_exceptions=True
        )

        urls: Dict[str, SignedUrl] = {}
        errors: Dict[str, str] = {}
        for path, result in zip(paths, results):
            if isinstance(result, StorageError):
                logger.error(
                    sanitize_log_message(
                        "Could not issue URL",
                        FilePath=path,
                        Bucket=result.bucket,
                        Reason=result.reason
                    )
                )
                errors[path] = result.detail
            elif isinstance(result, BaseException):
                raise result
            else:
                urls[path] = result
        return ttl, urls, errors
