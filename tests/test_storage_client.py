"""
Tests for the object storage adapters and the relay endpoint.
"""
import json
import httpx
import pytest
from tellus_crm.core.circuit_breaker import CircuitBreaker
from tellus_crm.core.exceptions import NotFoundError, StorageError
from tellus_crm.core.security import create_relay_token, decode_relay_token
from tellus_crm.external.storage_client import LocalStorageClient, SupabaseStorageClient, build_relay_url


class TestLocalStorageClient:
    """Tests for the filesystem backend."""

    @pytest.fixture(autouse=True)
    def _client(self, tmp_path):
        self.root = tmp_path
        self.client = LocalStorageClient(root_dir=str(tmp_path))

    async def test_upload_and_download(self):
        await self.client.upload(b"hello", "12345678909/a.pdf", "application/pdf")

        assert (self.root / "12345678909" / "a.pdf").read_bytes() == b"hello"
        assert await self.client.download("12345678909/a.pdf") == b"hello"

    async def test_download_missing(self):
        with pytest.raises(NotFoundError):
            await self.client.download("12345678909/missing.pdf")

    async def test_path_traversal_refused(self):
        with pytest.raises(StorageError):
            await self.client.upload(b"x", "../outside.txt")

        assert not (self.root.parent / "outside.txt").exists()

    async def test_delete(self):
        await self.client.upload(b"hello", "session/abc/a.pdf")

        assert await self.client.delete("session/abc/a.pdf") is True
        assert await self.client.delete("session/abc/a.pdf") is False

    async def test_signed_url_is_relay_url(self):
        await self.client.upload(b"hello", "12345678909/a.pdf")

        url = await self.client.create_signed_url("12345678909/a.pdf", 600)

        token = httpx.URL(url).params["token"]
        assert decode_relay_token(token) == "12345678909/a.pdf"

    async def test_signed_url_for_missing_object(self):
        with pytest.raises(StorageError):
            await self.client.create_signed_url("12345678909/missing.pdf", 600)


def supabase_client(handler, retry_attempts: int = 1) -> SupabaseStorageClient:
    return SupabaseStorageClient(
        base_url="https://project.supabase.test",
        service_key="service-key",
        bucket="user-documents",
        retry_attempts=retry_attempts,
        circuit_breaker=CircuitBreaker(name="test", failure_threshold=100),
        transport=httpx.MockTransport(handler)
    )


class TestSupabaseStorageClient:
    """Tests for the Supabase REST backend against a mock transport."""

    async def test_create_signed_url(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json={"signedURL": "/object/sign/user-documents/123/a.pdf?token=abc"})

        client = supabase_client(handler)
        url = await client.create_signed_url("123/a.pdf", 300)
        await client.close()

        assert seen["path"] == "/storage/v1/object/sign/user-documents/123/a.pdf"
        assert seen["body"] == {"expiresIn": 300}
        assert seen["auth"] == "Bearer service-key"
        assert url == "https://project.supabase.test/storage/v1/object/sign/user-documents/123/a.pdf?token=abc"

    async def test_upload_does_not_overwrite(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["upsert"] = request.headers["x-upsert"]
            seen["content_type"] = request.headers["Content-Type"]
            return httpx.Response(200, json={"Key": "user-documents/123/a.pdf"})

        client = supabase_client(handler)
        assert await client.upload(b"data", "123/a.pdf", "application/pdf") == "123/a.pdf"
        await client.close()

        assert seen == {"upsert": "false", "content_type": "application/pdf"}

    async def test_client_error_not_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(400, json={"error": "Bucket not found"})

        client = supabase_client(handler, retry_attempts=3)
        with pytest.raises(StorageError) as exc_info:
            await client.create_signed_url("123/a.pdf", 300)
        await client.close()

        assert len(calls) == 1
        assert exc_info.value.reason.startswith("400")
        assert exc_info.value.bucket == "user-documents"
        assert "Bucket" not in exc_info.value.detail

    async def test_delete_missing_object(self):
        client = supabase_client(lambda request: httpx.Response(404, json={"error": "not_found"}))

        assert await client.delete("123/a.pdf") is False
        await client.close()

    async def test_server_error(self):
        client = supabase_client(lambda request: httpx.Response(503, text="unavailable"))

        with pytest.raises(StorageError) as exc_info:
            await client.download("123/a.pdf")
        await client.close()

        assert exc_info.value.reason.startswith("503")

    def test_public_url(self):
        client = supabase_client(lambda request: httpx.Response(200))

        assert client.public_url("123/a b.pdf") == (
            "https://project.supabase.test/storage/v1/object/public/user-documents/123/a%20b.pdf"
        )


class TestRelayEndpoint:
    """Tests for GET /api/storage/object."""

    async def test_relay_serves_object(self, async_client, storage):
        storage.objects["12345678909/a.pdf"] = b"%PDF-1.4"
        url = httpx.URL(build_relay_url("12345678909/a.pdf", 600))

        response = await async_client.get("/api/storage/object", params={"token": url.params["token"]})

        assert response.status_code == 200
        assert response.content == b"%PDF-1.4"
        assert response.headers["content-type"] == "application/pdf"
        assert response.headers["Cache-Control"] == "private, no-store"

    async def test_relay_rejects_bad_token(self, async_client):
        response = await async_client.get("/api/storage/object", params={"token": "not-a-valid-token-at-all"})

        assert response.status_code == 403
        assert response.json()["success"] is False

    async def test_relay_rejects_expired_token(self, async_client):
        token = create_relay_token("12345678909/a.pdf", -10)

        response = await async_client.get("/api/storage/object", params={"token": token})

        assert response.status_code == 403

    async def test_relay_missing_object(self, async_client):
        token = create_relay_token("12345678909/missing.pdf", 600)

        response = await async_client.get("/api/storage/object", params={"token": token})

        assert response.status_code == 404
