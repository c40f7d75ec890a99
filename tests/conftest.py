import os
from collections.abc import AsyncGenerator
from datetime import date, time, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Load environment variables from .env file
load_dotenv()

# Settings require these at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./vetclinic_app.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("MAILGUN_API_KEY", "")
os.environ.setdefault("MAILGUN_DOMAIN", "")

from app.config import settings  # noqa: E402
from app.core.documents import DocumentRenderer, get_document_renderer  # noqa: E402
from app.core.exceptions import TransientNotificationError  # noqa: E402
from app.core.mail import DeliveryReceipt, DeliveryStatus, EmailMessage, get_mail_transport  # noqa: E402
from app.core.security import create_access_token  # noqa: E402
from app.database import get_db, get_session_factory  # noqa: E402
from app.main import app  # noqa: E402
from app.models import appointments, metadata, pets, users  # noqa: E402

# Test database URL - MUST be different from the application database
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///./vetclinic_test.db")

if TEST_DATABASE_URL == settings.database_url:
    raise RuntimeError("TEST_DATABASE_URL must not point at the application database")

# Ensure we're using asyncpg driver for async operations
if TEST_DATABASE_URL.startswith("postgresql://"):
    TEST_DATABASE_URL = TEST_DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://")

IS_POSTGRES = TEST_DATABASE_URL.startswith("postgresql")

# Use NullPool to avoid event loop issues across tests
test_engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    poolclass=NullPool,
)

TestSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

requires_postgres = pytest.mark.skipif(
    not IS_POSTGRES,
    reason="needs PostgreSQL row locks; set TEST_DATABASE_URL",
)


class RecordingTransport:
    """Mail transport double that keeps sent messages in memory."""

    def __init__(self) -> None:
        self.sent: list[EmailMessage] = []
        self.error: str | None = None

    async def send(self, message: EmailMessage) -> DeliveryReceipt:
        if self.error is not None:
            raise TransientNotificationError(self.error)
        self.sent.append(message)
        return DeliveryReceipt(
            status=DeliveryStatus.DELIVERED,
            to=message.to,
            subject=message.subject,
            message_id=f"<{len(self.sent)}@test>",
        )


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session on a fresh schema."""
    async with test_engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)

    async with TestSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)


@pytest.fixture
def mail_transport() -> RecordingTransport:
    """Mail transport double shared by the app and the test."""
    return RecordingTransport()


@pytest.fixture
def document_renderer(tmp_path) -> DocumentRenderer:
    """Renderer writing into a per-test directory."""
    return DocumentRenderer(
        storage_dir=tmp_path / "prescriptions",
        url_prefix="/uploads/prescriptions",
        clinic_name="Test Clinic",
    )


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    mail_transport: RecordingTransport,
    document_renderer: DocumentRenderer,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestSessionLocal
    app.dependency_overrides[get_mail_transport] = lambda: mail_transport
    app.dependency_overrides[get_document_renderer] = lambda: document_renderer

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


async def create_user(
    db: AsyncSession,
    role: str,
    email: str | None = None,
    full_name: str = "Test User",
    is_active: bool = True,
) -> dict:
    """Insert a user row and return its values."""
    values = {
        "id": uuid4(),
        "email": email or f"{role}-{uuid4().hex[:8]}@example.com",
        "full_name": full_name,
        "role": role,
        "is_active": is_active,
    }
    await db.execute(insert(users).values(**values))
    await db.commit()
    return values


async def create_pet(db: AsyncSession, owner_id: UUID, name: str = "Rex") -> dict:
    """Insert a pet row and return its values."""
    values = {"id": uuid4(), "owner_id": owner_id, "name": name, "species": "dog", "breed": "Beagle"}
    await db.execute(insert(pets).values(**values))
    await db.commit()
    return values


async def create_appointment(
    db: AsyncSession,
    pet: dict,
    status: str = "requested",
    staff_initiated: bool = False,
    appointment_date: date = date(2026, 1, 20),
    appointment_time: time = time(10, 0),
) -> UUID:
    """Insert an appointment row directly, bypassing the lifecycle rules."""
    appointment_id = uuid4()
    await db.execute(
        insert(appointments).values(
            id=appointment_id,
            pet_id=pet["id"],
            client_id=pet["owner_id"],
            appointment_date=appointment_date,
            appointment_time=appointment_time,
            service_type="Consulta General",
            notes="",
            status=status,
            staff_initiated=staff_initiated,
        )
    )
    await db.commit()
    return appointment_id


def bearer(user: dict) -> dict:
    """Authorization headers for a user."""
    token = create_access_token(data={"sub": str(user["id"])}, expires_delta=timedelta(minutes=30))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def client_user(db_session: AsyncSession) -> dict:
    """Pet owner."""
    return await create_user(db_session, "client", "owner@example.com", "Ana Owner")


@pytest.fixture
async def other_client(db_session: AsyncSession) -> dict:
    """A second pet owner."""
    return await create_user(db_session, "client", "other@example.com", "Otto Other")


@pytest.fixture
async def staff_user(db_session: AsyncSession) -> dict:
    """Veterinarian."""
    return await create_user(db_session, "vet", "vet@example.com", "Dr. Vera Vet")


@pytest.fixture
async def pet(db_session: AsyncSession, client_user: dict) -> dict:
    """Pet owned by ``client_user``."""
    return await create_pet(db_session, client_user["id"])


@pytest.fixture
def client_headers(client_user: dict) -> dict:
    return bearer(client_user)


@pytest.fixture
def staff_headers(staff_user: dict) -> dict:
    return bearer(staff_user)


@pytest.fixture
def appointment_request(pet: dict) -> dict:
    """Payload for a client appointment request."""
    return {
        "pet_id": str(pet["id"]),
        "appointment_date": "2026-01-20",
        "appointment_time": "10:00:00",
        "service_type": "Consulta General",
        "notes": "Limping on the left leg",
    }


def prescription_item(quantity: int, unit_price: str, name: str = "Amoxicillin") -> dict:
    """One prescription item payload."""
    return {
        "inventory_item_id": str(uuid4()),
        "name": name,
        "quantity": quantity,
        "dosage": "1 tablet every 12h",
        "duration": "7 days",
        "unit_price": str(Decimal(unit_price)),
    }
