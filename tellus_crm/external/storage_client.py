"""
Object storage adapters.

Every adapter exposes the same capability: store bytes under a key, produce a
time-limited URL for a key, read a key back, delete a key. One instance is
built at application startup and shared by reference.
"""
import asyncio
import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import quote, urlencode

import aiofiles
import httpx

from tellus_crm.config import settings
from tellus_crm.core.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOpenException,
)
from tellus_crm.core.exceptions import NotFoundError, StorageError
from tellus_crm.core.logging_utils import sanitize_log_message
from tellus_crm.core.security import create_relay_token

# Timeout for local file operations (30 seconds)
FILE_OPERATION_TIMEOUT = 30

logger = logging.getLogger(__name__)


def _provider_failed(response: httpx.Response) -> bool:
    return response.status_code >= 500 or response.status_code == 429


# Shared by every Supabase client in the process
storage_circuit_breaker = CircuitBreaker(name="object_storage", is_failure=_provider_failed)


def build_relay_url(file_path: str, expires_in: int) -> str:
    """
    URL served by this API that streams one object for `expires_in` seconds.

    Used by the local backend and as a fallback when the provider cannot sign.
    """
    token = create_relay_token(file_path, expires_in)
    base_url = settings.API_BASE_URL.rstrip('/')
    return f"{base_url}{settings.API_PREFIX}/storage/object?{urlencode({'token': token})}"


class StorageClient(ABC):
    """Port: object storage."""

    bucket: str = ""

    @abstractmethod
    async def upload(self, content: bytes, path: str, content_type: str = "application/octet-stream") -> str:
        """Store bytes under `path` and return the path."""

    @abstractmethod
    async def create_signed_url(self, path: str, expires_in: int) -> str:
        """Return a URL granting read access to `path` for `expires_in` seconds."""

    @abstractmethod
    async def download(self, path: str) -> bytes:
        """Return the bytes stored under `path`."""

    @abstractmethod
    async def delete(self, path: str) -> bool:
        """Delete `path`. Returns False when nothing was stored there."""

    @abstractmethod
    def public_url(self, path: str) -> str:
        """Unsigned URL for `path`; only usable when the bucket is public."""

    async def close(self) -> None:
        """Release any held resources."""


class SupabaseStorageClient(StorageClient):
    """Supabase Storage REST client with retry logic and circuit breaker."""

    def __init__(
        self,
        base_url: str = None,
        service_key: str = None,
        bucket: str = None,
        timeout: int = None,
        retry_attempts: int = None,
        circuit_breaker: CircuitBreaker = None,
        transport: httpx.AsyncBaseTransport = None
    ):
        self.base_url = (base_url or settings.SUPABASE_URL).rstrip('/')
        self.service_key = service_key or settings.SUPABASE_SERVICE_KEY
        self.bucket = bucket or settings.SUPABASE_STORAGE_BUCKET
        self.timeout = timeout or settings.STORAGE_TIMEOUT
        self.retry_attempts = retry_attempts or settings.STORAGE_RETRY_ATTEMPTS
        self.circuit_breaker = circuit_breaker or storage_circuit_breaker
        self._client = httpx.AsyncClient(
            base_url=f"{self.base_url}/storage/v1",
            timeout=self.timeout,
            transport=transport
        )

    def _get_headers(self, content_type: Optional[str] = None) -> Dict[str, str]:
        """Get request headers with service key authentication."""
        headers = {
            "Authorization": f"Bearer {self.service_key}",
            "apikey": self.service_key,
        }
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    def _object_path(self, path: str) -> str:
        return f"{quote(self.bucket)}/{quote(path.lstrip('/'), safe='/')}"

    async def _execute_request(self, method: str, endpoint: str, **kwargs) -> httpx.Response:
        """Execute a single HTTP request (used by circuit breaker)."""
        return await self._client.request(method, endpoint, **kwargs)

    async def _make_request(self, method: str, endpoint: str, file_path: str, **kwargs) -> httpx.Response:
        """
        Make an HTTP request with retries on 5xx/429/timeouts.

        Raises:
            StorageError if the request fails after retries, on any other 4xx,
            or when the circuit breaker is open
        """
        last_reason = "unknown error"
        start_time = datetime.now()

        for attempt in range(self.retry_attempts):
            try:
                response = await self.circuit_breaker.call(
                    self._execute_request, method, endpoint, **kwargs
                )
            except CircuitBreakerOpenException as e:
                logger.warning(
                    sanitize_log_message(
                        "Circuit breaker open for object storage",
                        FilePath=file_path,
                        Bucket=self.bucket
                    )
                )
                raise StorageError(reason=e.message, file_path=file_path, bucket=self.bucket)
            except httpx.TimeoutException as e:
                last_reason = f"timeout: {str(e)}"
                logger.warning(
                    sanitize_log_message(
                        "Object storage timeout",
                        FilePath=file_path,
                        Attempt=attempt + 1,
                        MaxAttempts=self.retry_attempts
                    )
                )
            except httpx.RequestError as e:
                last_reason = f"request error: {str(e)}"
                logger.warning(
                    sanitize_log_message(
                        "Object storage request error",
                        FilePath=file_path,
                        Attempt=attempt + 1,
                        Error=str(e)
                    )
                )
            else:
                response_time = (datetime.now() - start_time).total_seconds()
                if response.status_code < 400:
                    logger.debug(
                        sanitize_log_message(
                            f"Object storage {method} succeeded",
                            FilePath=file_path,
                            StatusCode=response.status_code,
                            ResponseTime=f"{response_time:.3f}s"
                        )
                    )
                    return response

                last_reason = f"{response.status_code} - {response.text[:300]}"
                # 4xx (bucket not found, permission denied, missing object) won't get better
                if response.status_code < 500 and response.status_code != 429:
                    raise StorageError(reason=last_reason, file_path=file_path, bucket=self.bucket)

                logger.warning(
                    sanitize_log_message(
                        "Retrying object storage request",
                        FilePath=file_path,
                        StatusCode=response.status_code,
                        Attempt=attempt + 1,
                        MaxAttempts=self.retry_attempts
                    )
                )

            if attempt < self.retry_attempts - 1:
                # Exponential backoff: 1s, 2s, 4s...
                await asyncio.sleep(2 ** attempt)

        raise StorageError(reason=last_reason, file_path=file_path, bucket=self.bucket)

    async def upload(self, content: bytes, path: str, content_type: str = "application/octet-stream") -> str:
        await self._make_request(
            "POST",
            f"/object/{self._object_path(path)}",
            file_path=path,
            content=content,
            headers={**self._get_headers(content_type), "x-upsert": "false"}
        )
        return path

    async def create_signed_url(self, path: str, expires_in: int) -> str:
        response = await self._make_request(
            "POST",
            f"/object/sign/{self._object_path(path)}",
            file_path=path,
            json={"expiresIn": expires_in},
            headers=self._get_headers("application/json")
        )
        signed_path = response.json().get("signedURL") or response.json().get("signedUrl")
        if not signed_path:
            raise StorageError(reason="signed URL missing from response", file_path=path, bucket=self.bucket)
        return f"{self.base_url}/storage/v1{signed_path}"

    async def download(self, path: str) -> bytes:
        response = await self._make_request(
            "GET",
            f"/object/authenticated/{self._object_path(path)}",
            file_path=path,
            headers=self._get_headers()
        )
        return response.content

    async def delete(self, path: str) -> bool:
        try:
            await self._make_request(
                "DELETE",
                f"/object/{self._object_path(path)}",
                file_path=path,
                headers=self._get_headers()
            )
        except StorageError as e:
            if e.reason.startswith("404"):
                return False
            raise
        return True

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self._object_path(path)}"

    async def close(self) -> None:
        await self._client.aclose()


class LocalStorageClient(StorageClient):
    """
    Filesystem storage for development and single-node deployments.

    Signed URLs point at this API's relay endpoint.
    """

    def __init__(self, root_dir: str = None):
        self.root = Path(root_dir or settings.LOCAL_STORAGE_DIR).resolve()
        self.bucket = "local"

    def _resolve(self, path: str) -> Path:
        """Map a key to a file under the root, refusing anything that escapes it."""
        target = (self.root / path.lstrip('/')).resolve()
        if target != self.root and self.root not in target.parents:
            raise StorageError(reason="path escapes storage root", file_path=path, bucket=self.bucket)
        return target

    async def upload(self, content: bytes, path: str, content_type: str = "application/octet-stream") -> str:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        try:
            async with aiofiles.open(target, 'wb') as f:
                await asyncio.wait_for(f.write(content), timeout=FILE_OPERATION_TIMEOUT)
        except (asyncio.TimeoutError, OSError) as e:
            if target.exists():
                os.remove(target)
            raise StorageError(reason=f"write failed: {e!r}", file_path=path, bucket=self.bucket)
        return path

    async def create_signed_url(self, path: str, expires_in: int) -> str:
        if not self._resolve(path).is_file():
            raise StorageError(reason="object not found", file_path=path, bucket=self.bucket)
        return build_relay_url(path, expires_in)

    async def download(self, path: str) -> bytes:
        target = self._resolve(path)
        if not target.is_file():
            raise NotFoundError("Document not found")
        try:
            async with aiofiles.open(target, 'rb') as f:
                return await asyncio.wait_for(f.read(), timeout=FILE_OPERATION_TIMEOUT)
        except (asyncio.TimeoutError, OSError) as e:
            raise StorageError(reason=f"read failed: {e!r}", file_path=path, bucket=self.bucket)

    async def delete(self, path: str) -> bool:
        target = self._resolve(path)
        if not target.is_file():
            return False
        os.remove(target)
        return True

    def public_url(self, path: str) -> str:
        return self._resolve(path).as_uri()


def build_storage_client() -> StorageClient:
    """Create the storage client selected by configuration."""
    backend = settings.get_storage_backend()
    if backend == "supabase":
        logger.info(f"Using Supabase storage, bucket '{settings.SUPABASE_STORAGE_BUCKET}'")
        return SupabaseStorageClient()
    if settings.STORAGE_BACKEND.lower() == "supabase":
        logger.warning("Supabase storage is not configured; falling back to local storage")
    logger.info(f"Using local storage at {Path(settings.LOCAL_STORAGE_DIR).resolve()}")
    return LocalStorageClient()
