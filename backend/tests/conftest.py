import socket
import uuid
from collections.abc import AsyncGenerator, Iterator
from datetime import timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.auth import create_jwt
from app.core.config import settings
from app.models.base import Base
from app.services.portal_audit import AccessLogEntry, AccessLogWriter

# Use separate test database
TEST_DATABASE_URL = settings.database_url.replace(
    settings.database_name, f"{settings.database_name}_test"
)

# Fixed IDs so API tests can build URLs and claims up front
TEST_ORG_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
TEST_STAFF_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")
TEST_CUSTOMER_ID = uuid.UUID("00000000-0000-0000-0000-000000000003")
ORG_B_ID = uuid.UUID("00000000-0000-0000-0000-000000000099")

# Security: This is a test-only secret. Production uses a real secret from env.
TEST_AUTH_SECRET = "test-secret-key-that-is-at-least-32-characters-long"  # nosec B105  # gitleaks:allow


def create_test_jwt(
    org_id: uuid.UUID = TEST_ORG_ID,
    *,
    user_id: uuid.UUID = TEST_STAFF_USER_ID,
    secret: str = TEST_AUTH_SECRET,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed staff JWT for test authentication.

    Args:
        org_id: Organization UUID for the org claim.
        user_id: Staff user UUID for the sub claim.
        secret: Signing secret (must match settings.auth_secret in tests).
        expires_delta: Time until expiration. Defaults to 1 hour.

    Returns:
        Encoded JWT string.
    """
    return create_jwt(
        user_id=str(user_id),
        org_id=str(org_id),
        secret=secret,
        expires_delta=expires_delta,
    )


def _is_postgres_available() -> bool:
    """Check if PostgreSQL is accepting connections.

    Returns:
        True if PostgreSQL is reachable on port 5432, False otherwise.
    """
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.settimeout(1)
        result = sock.connect_ex(("127.0.0.1", 5432))
        sock.close()
        return result == 0
    except OSError:
        return False


# Check once at module load time
_POSTGRES_AVAILABLE = _is_postgres_available()


def skip_if_no_postgres() -> None:
    """Skip test if PostgreSQL is not available.

    Called by fixtures that require database connection.
    """
    if not _POSTGRES_AVAILABLE:
        pytest.skip(
            "PostgreSQL not available on port 5432. "
            "Start database with: docker compose up -d"
        )


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine with a fresh schema.

    Skips test if PostgreSQL is not available (e.g., Docker not running).
    """
    skip_if_no_postgres()

    engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


def committing_get_db(db_engine):
    """Build a get_db override bound to the test engine.

    Commits on success and rolls back on error, like the real get_db, so
    that concurrent requests see each other's committed writes.
    """
    test_session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with test_session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    return override_get_db


# =============================================================================
# Tenant Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def test_org(db_session: AsyncSession):
    """Create the organization staff tests act for."""
    from app.models import Organization

    org = Organization(
        id=TEST_ORG_ID,
        name="Sparky Electrical",
        logo_url="https://cdn.example.com/sparky.png",
        primary_color="#0055ff",
        email="office@sparky.example.com",
        phone="02 9000 0000",
    )
    db_session.add(org)
    await db_session.commit()
    await db_session.refresh(org)
    yield org


@pytest_asyncio.fixture
async def test_customer(db_session: AsyncSession, test_org):
    """Create a customer of the test organization."""
    from app.models import Customer

    customer = Customer(
        id=TEST_CUSTOMER_ID,
        org_id=test_org.id,
        name="Jane Homeowner",
        email="jane@example.com",
    )
    db_session.add(customer)
    await db_session.commit()
    await db_session.refresh(customer)
    yield customer


@pytest_asyncio.fixture
async def test_quote(db_session: AsyncSession, test_customer):
    """Create a sent quote for the test customer."""
    from app.models import Quote

    quote = Quote(
        org_id=test_customer.org_id,
        customer_id=test_customer.id,
        quote_number="Q-0001",
        status="sent",
        subtotal=Decimal("1000.00"),
        tax=Decimal("100.00"),
        total=Decimal("1100.00"),
        line_items=[{"description": "Switchboard upgrade", "amount": "1000.00"}],
        customer_name=test_customer.name,
        customer_email=test_customer.email,
    )
    db_session.add(quote)
    await db_session.commit()
    await db_session.refresh(quote)
    yield quote


@pytest_asyncio.fixture
async def test_invoice(db_session: AsyncSession, test_customer):
    """Create a sent invoice for the test customer."""
    from app.models import Invoice

    invoice = Invoice(
        org_id=test_customer.org_id,
        customer_id=test_customer.id,
        invoice_number="INV-0001",
        status="sent",
        subtotal=Decimal("500.00"),
        tax=Decimal("50.00"),
        total=Decimal("550.00"),
    )
    db_session.add(invoice)
    await db_session.commit()
    await db_session.refresh(invoice)
    yield invoice


# =============================================================================
# Audit Writer Fixtures
# =============================================================================


@pytest.fixture
def audit_entries() -> list[AccessLogEntry]:
    """Entries written by the recording audit writer."""
    return []


@pytest_asyncio.fixture
async def recording_writer(
    audit_entries: list[AccessLogEntry],
) -> AsyncGenerator[AccessLogWriter, None]:
    """AccessLogWriter that appends entries to ``audit_entries``.

    Yields:
        Writer to install via dependency override. Stopped after the test.
    """

    async def sink(entry: AccessLogEntry) -> None:
        audit_entries.append(entry)

    writer = AccessLogWriter(sink, maxsize=100)
    yield writer
    await writer.stop()


# =============================================================================
# API Test Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def client(
    db_engine,
    test_org,  # noqa: ARG001 - ensures org exists
    recording_writer: AccessLogWriter,
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client authenticated as staff of TEST_ORG_ID.

    Sets up:
    - Test database connection via dependency override
    - JWT auth with test secret
    - Recording audit writer
    - httpx.AsyncClient with ASGI transport + auth cookie

    Yields:
        Configured AsyncClient for making API requests.
    """
    from app.core.database import get_db
    from app.main import app
    from app.services.portal_audit import get_access_log_writer

    app.dependency_overrides[get_db] = committing_get_db(db_engine)
    app.dependency_overrides[get_access_log_writer] = lambda: recording_writer

    # Enable JWT auth with test secret
    original_auth_enabled = settings.auth_enabled
    original_auth_secret = settings.auth_secret
    settings.auth_enabled = True
    settings.auth_secret = SecretStr(TEST_AUTH_SECRET)

    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        cookies={settings.auth_cookie_name: create_test_jwt()},
    ) as ac:
        yield ac

    # Cleanup
    settings.auth_enabled = original_auth_enabled
    settings.auth_secret = original_auth_secret
    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def unauthenticated_client(db_engine) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client without a staff session cookie.

    Auth is enabled but no JWT cookie is provided.

    Yields:
        AsyncClient with no auth cookie.
    """
    from app.core.database import get_db
    from app.main import app

    app.dependency_overrides[get_db] = committing_get_db(db_engine)

    original_auth_enabled = settings.auth_enabled
    original_auth_secret = settings.auth_secret
    settings.auth_enabled = True
    settings.auth_secret = SecretStr(TEST_AUTH_SECRET)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    settings.auth_enabled = original_auth_enabled
    settings.auth_secret = original_auth_secret
    app.dependency_overrides.clear()


# =============================================================================
# Autouse Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_portal_singletons() -> Iterator[None]:
    """Reset the portal limiter and audit writer singletons between tests.

    Yields:
        None (autouse fixture).
    """
    from app.core.rate_limiting import reset_portal_limiter
    from app.services.portal_audit import reset_access_log_writer

    reset_portal_limiter()
    reset_access_log_writer()
    yield
    reset_portal_limiter()
    reset_access_log_writer()


@pytest.fixture(autouse=True)
def disable_rate_limiting() -> Iterator[None]:
    """Disable slowapi rate limiting during tests.

    Staff rate limits are tested separately; disable for other tests
    to avoid flaky failures from rate limit triggers.

    Yields:
        None (autouse fixture).
    """
    from app.core.rate_limiting import limiter

    original_enabled = limiter.enabled
    limiter.enabled = False

    yield

    limiter.enabled = original_enabled
