"""Pytest fixtures for testing."""
import os
from collections.abc import AsyncGenerator, Generator
from dataclasses import dataclass
from urllib.parse import parse_qs, urlparse

import pytest
from httpx import ASGITransport, AsyncClient
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from testcontainers.postgres import PostgresContainer
from testcontainers.redis import RedisContainer

TEST_JWT_SECRET = "test-jwt-secret"

# api.main reads settings at import time; real values are set once containers start
os.environ.setdefault("DATABASE_URL", "postgresql+asyncpg://localhost:5432/zebra_test")
os.environ["JWT_SECRET"] = TEST_JWT_SECRET
os.environ["BCRYPT_ROUNDS"] = "4"

from core.config import Settings  # noqa: E402
from core.redis import RedisClient, set_redis_client  # noqa: E402
from models.base import Base  # noqa: E402
from services.email_service import EmailOutcome  # noqa: E402


@dataclass
class SentEmail:
    """A message captured by RecordingEmailSender."""

    to_address: str
    verification_link: str

    @property
    def token(self) -> str:
        """Verification token embedded in the link."""
        return parse_qs(urlparse(self.verification_link).query)["token"][0]


class RecordingEmailSender:
    """EmailSender that records messages instead of sending them."""

    def __init__(self) -> None:
        self.sent: list[SentEmail] = []
        self.error: Exception | None = None

    async def send(self, to_address: str, verification_link: str) -> EmailOutcome:
        if self.error is not None:
            raise self.error
        self.sent.append(SentEmail(to_address, verification_link))
        return EmailOutcome(mocked=True)

    @property
    def last(self) -> SentEmail:
        """Most recent message."""
        return self.sent[-1]


@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer]:
    """Start a PostgreSQL container for the test session."""
    with PostgresContainer("postgres:16", driver="asyncpg") as postgres:
        yield postgres


@pytest.fixture(scope="session")
def database_url(postgres_container: PostgresContainer) -> str:
    """
    Get the database URL from the container and set it in environment.

    This must be set before any app imports that trigger Settings validation.
    """
    url = postgres_container.get_connection_url()
    os.environ["DATABASE_URL"] = url
    return url


@pytest.fixture(scope="session")
def redis_container() -> Generator[RedisContainer]:
    """Start a Redis container for the test session."""
    with RedisContainer("redis:7") as redis:
        yield redis


@pytest.fixture(scope="session")
def redis_url(redis_container: RedisContainer) -> str:
    """Connection URL for the Redis container."""
    host = redis_container.get_container_host_ip()
    port = redis_container.get_exposed_port(6379)
    return f"redis://{host}:{port}"


@pytest.fixture
async def redis_client(redis_url: str) -> AsyncGenerator[RedisClient]:
    """
    Connected Redis client installed as the global client.

    The database is flushed before and after each test so rate limit
    counters and OAuth state never leak between tests.
    """
    admin = Redis.from_url(redis_url)
    await admin.flushdb()
    client = RedisClient(url=redis_url)
    await client.connect()
    set_redis_client(client)

    yield client

    set_redis_client(None)
    await client.close()
    await admin.flushdb()
    await admin.aclose()


@pytest.fixture
def settings() -> Settings:
    """Settings for service and API tests, independent of the environment."""
    return Settings(
        database_url="postgresql+asyncpg://localhost:5432/zebra_test",
        jwt_secret=TEST_JWT_SECRET,
        bcrypt_rounds=4,
        frontend_base_url="http://frontend.test",
        oauth_callback_url="http://api.test",
        google_client_id="google-client-id",
        google_client_secret="google-client-secret",
        github_client_id="github-client-id",
        github_client_secret="github-client-secret",
        trusted_proxies_str="",
        smtp_host="",
    )


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    """Email sender that captures verification links."""
    return RecordingEmailSender()


@pytest.fixture
async def async_engine(database_url: str) -> AsyncGenerator[AsyncEngine]:
    """Create an async engine for testing."""
    engine = create_async_engine(database_url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def db_connection(async_engine: AsyncEngine) -> AsyncGenerator[AsyncConnection]:
    """
    Create a connection with a transaction that will be rolled back after the test.

    This provides test isolation - each test runs in its own transaction
    that is rolled back, so tests don't affect each other.
    """
    async with async_engine.connect() as connection:
        transaction = await connection.begin()
        try:
            yield connection
        finally:
            await transaction.rollback()


@pytest.fixture
async def db_session(db_connection: AsyncConnection) -> AsyncGenerator[AsyncSession]:
    """
    Create an async session bound to the test transaction.

    Uses begin_nested() for savepoints, allowing the session's flush/commit
    to work within our outer test transaction.
    """
    session_factory = async_sessionmaker(
        bind=db_connection,
        class_=AsyncSession,
        expire_on_commit=False,
        join_transaction_mode="create_savepoint",
    )

    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(
    db_session: AsyncSession,
    settings: Settings,
    email_sender: RecordingEmailSender,
) -> AsyncGenerator[AsyncClient]:
    """Create a test client with database session, settings and email overrides."""
    # Clear the settings cache so it picks up DATABASE_URL from environment
    from core.config import get_settings

    get_settings.cache_clear()

    from api.main import app
    from db.session import get_async_session
    from services.email_service import get_email_sender

    async def override_get_async_session() -> AsyncGenerator[AsyncSession]:
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_async_session
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_email_sender] = lambda: email_sender

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as test_client:
        yield test_client

    app.dependency_overrides.clear()
