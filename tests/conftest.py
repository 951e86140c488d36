import os
import tempfile

# Settings are read at import time
os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-at-least-32-characters-long")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_tellus_crm.db")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="tellus-logs-"))
os.environ.setdefault("LOCAL_STORAGE_DIR", tempfile.mkdtemp(prefix="tellus-storage-"))
os.environ.setdefault("STORAGE_BACKEND", "local")
os.environ.setdefault("LINK_PURGE_INTERVAL_MINUTES", "0")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from typing import AsyncGenerator, Generator
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool
from tellus_crm.database import Base, get_db
from tellus_crm.api.deps import get_storage_client
from tellus_crm.external.storage_client import StorageClient
from tellus_crm.core.exceptions import NotFoundError, StorageError
from tellus_crm.core.security import create_access_token
from tellus_crm.services.auth_service import AuthService
import tellus_crm.models  # noqa: F401
from tellus_crm.models.customer import Customer

# Test database URL
TEST_DATABASE_URL = os.environ["DATABASE_URL"]

# Create test engine
test_engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    poolclass=NullPool,
    connect_args={"check_same_thread": False},
)

TestSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

CUSTOMER_CPF = "12345678909"

CUSTOMER_DOCUMENTS = [
    {
        "id": f"{CUSTOMER_CPF}/rg.pdf",
        "fileName": "rg.pdf",
        "filePath": f"{CUSTOMER_CPF}/rg.pdf",
        "fileType": "application/pdf",
        "fileSize": 1024,
        "documentType": "rg",
        "uploadedAt": "2026-01-10T12:00:00",
    },
    {
        "id": f"{CUSTOMER_CPF}/cnh.png",
        "fileName": "cnh.png",
        "filePath": f"{CUSTOMER_CPF}/cnh.png",
        "fileType": "image/png",
        "fileSize": 2048,
        "documentType": "cnh",
        "uploadedAt": "2026-01-11T12:00:00",
    },
    {
        "id": f"{CUSTOMER_CPF}/holerite.pdf",
        "fileName": "holerite.pdf",
        "filePath": f"{CUSTOMER_CPF}/holerite.pdf",
        "fileType": "application/pdf",
        "fileSize": 4096,
        "documentType": "comprovante_renda",
        "uploadedAt": "2026-01-12T12:00:00",
    },
]


class InMemoryStorage(StorageClient):
    """Storage double that keeps objects in a dict and records every call."""

    bucket = "test-bucket"

    def __init__(self):
        self.objects = {}
        self.calls = []
        self.fail_signing = False
        self.fail_upload = False
        self.missing_public = set()

    @property
    def writes(self):
        return [call for call in self.calls if call[0] == "upload"]

    async def upload(self, content: bytes, path: str, content_type: str = "application/octet-stream") -> str:
        self.calls.append(("upload", path))
        if self.fail_upload:
            raise StorageError(reason="503 - upstream unavailable", file_path=path, bucket=self.bucket)
        self.objects[path] = content
        return path

    async def create_signed_url(self, path: str, expires_in: int) -> str:
        self.calls.append(("sign", path, expires_in))
        if self.fail_signing:
            raise StorageError(reason="400 - Bucket not found", file_path=path, bucket=self.bucket)
        return f"https://storage.test/sign/{path}?expiresIn={expires_in}"

    async def download(self, path: str) -> bytes:
        self.calls.append(("download", path))
        if path not in self.objects:
            raise NotFoundError("Document not found")
        return self.objects[path]

    async def delete(self, path: str) -> bool:
        self.calls.append(("delete", path))
        return self.objects.pop(path, None) is not None

    def public_url(self, path: str) -> str:
        if path in self.missing_public:
            raise StorageError(reason="object not found", file_path=path, bucket=self.bucket)
        return f"https://storage.test/public/{path}"


@pytest.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    # Create tables
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Create session
    async with TestSessionLocal() as session:
        yield session
        await session.rollback()

    # Drop tables
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(scope="function")
def session_factory(db_session):
    """Factory for extra sessions on the test database, one per concurrent caller."""
    return TestSessionLocal


@pytest.fixture(scope="function")
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture(scope="function")
def client() -> Generator:
    """Create a sync test client (doesn't require db_session)."""
    from fastapi.testclient import TestClient
    from tellus_crm.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture(scope="function")
async def async_client(db_session: AsyncSession, storage: InMemoryStorage) -> AsyncGenerator:
    """Create an async test client with database session and storage overrides."""
    from httpx import AsyncClient, ASGITransport
    from tellus_crm.main import app

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage_client] = lambda: storage

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def user(db_session: AsyncSession):
    """Staff user who creates links."""
    return await AuthService.create_user(
        db_session, email="ana@tellus.com.br", name="Ana Souza", password="secret123"
    )


@pytest.fixture(scope="function")
async def other_user(db_session: AsyncSession):
    """Second staff user, not the creator of any fixture link."""
    return await AuthService.create_user(
        db_session, email="bruno@tellus.com.br", name="Bruno Lima", password="secret456"
    )


@pytest.fixture(scope="function")
def auth_headers(user) -> dict:
    token = create_access_token({"sub": str(user.id), "email": user.email, "role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="function")
def other_auth_headers(other_user) -> dict:
    token = create_access_token({"sub": str(other_user.id), "email": other_user.email, "role": other_user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="function")
async def customer(db_session: AsyncSession) -> Customer:
    """Customer with personal, address, financial data and three documents."""
    record = Customer(
        name="Maria Oliveira",
        email="maria@example.com",
        phone="11987654321",
        cpf=CUSTOMER_CPF,
        birth_date="1985-04-12",
        marital_status="casada",
        address={
            "street": "Rua das Flores",
            "number": "100",
            "neighborhood": "Centro",
            "city": "Campinas",
            "state": "SP",
            "zipCode": "13010000",
        },
        profession="Engenheira",
        employment_type="clt",
        monthly_income=12500.0,
        company_name="Acme Ltda",
        property_value=650000.0,
        property_type="apartamento",
        notes="Prefers contact by email",
        uploaded_documents=[dict(doc) for doc in CUSTOMER_DOCUMENTS],
    )
    db_session.add(record)
    await db_session.commit()
    await db_session.refresh(record)
    return record
