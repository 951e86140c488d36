"""
Tests for the storage circuit breaker.
"""
import httpx
import pytest
from tellus_crm.core.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException, CircuitState
from tellus_crm.core.exceptions import StorageError
from tellus_crm.external.storage_client import SupabaseStorageClient


async def failing():
    raise httpx.ConnectError("connection refused")


async def succeeding():
    return "ok"


def make_breaker(**kwargs) -> CircuitBreaker:
    return CircuitBreaker(
        name="test",
        failure_threshold=kwargs.get("failure_threshold", 2),
        recovery_timeout=kwargs.get("recovery_timeout", 60),
        half_open_max_calls=kwargs.get("half_open_max_calls", 1)
    )


class TestCircuitBreaker:

    async def test_opens_after_threshold(self):
        breaker = make_breaker()

        for _ in range(2):
            with pytest.raises(httpx.ConnectError):
                await breaker.call(failing)

        assert breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitBreakerOpenException):
            await breaker.call(succeeding)

    async def test_success_resets_failure_count(self):
        breaker = make_breaker()

        with pytest.raises(httpx.ConnectError):
            await breaker.call(failing)
        assert await breaker.call(succeeding) == "ok"

        assert breaker.failure_count == 0
        assert breaker.state == CircuitState.CLOSED

    async def test_half_open_success_closes(self):
        breaker = make_breaker()
        for _ in range(2):
            with pytest.raises(httpx.ConnectError):
                await breaker.call(failing)

        breaker._opened_at -= 61

        assert await breaker.call(succeeding) == "ok"
        assert breaker.state == CircuitState.CLOSED

    async def test_half_open_failure_reopens(self):
        breaker = make_breaker()
        for _ in range(2):
            with pytest.raises(httpx.ConnectError):
                await breaker.call(failing)

        breaker._opened_at -= 61

        with pytest.raises(httpx.ConnectError):
            await breaker.call(failing)
        assert breaker.state == CircuitState.OPEN

    async def test_failed_results_count(self):
        breaker = CircuitBreaker(name="test", failure_threshold=2, is_failure=lambda status: status >= 500)

        async def respond(status):
            return status

        assert await breaker.call(respond, 503) == 503
        assert await breaker.call(respond, 502) == 502

        assert breaker.state == CircuitState.OPEN

    async def test_open_breaker_surfaces_as_storage_error(self):
        breaker = make_breaker(failure_threshold=1)
        with pytest.raises(httpx.ConnectError):
            await breaker.call(failing)

        client = SupabaseStorageClient(
            base_url="https://project.supabase.test",
            service_key="service-key",
            bucket="user-documents",
            retry_attempts=1,
            circuit_breaker=breaker,
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={}))
        )
        with pytest.raises(StorageError) as exc_info:
            await client.download("123/a.pdf")
        await client.close()

        assert exc_info.value.status_code == 500
        assert exc_info.value.file_path == "123/a.pdf"
