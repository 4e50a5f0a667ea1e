"""
Pytest configuration and fixtures for backend tests.

This module provides the core testing infrastructure including:
- Test database setup (created and migrated on first use)
- Owner and row-level-security session fixtures
- Test client for API integration tests

Unit tests that touch no fixture below never connect to PostgreSQL. Tests that
need the database are skipped when it cannot be reached. DATABASE_URL must
name a superuser: the migrations create roles and the RLS fixtures switch to
``app_user`` with SET ROLE.
"""

import asyncio
from collections.abc import AsyncGenerator
from pathlib import Path
from urllib.parse import urlparse

import asyncpg
import pytest
from alembic import command
from alembic.config import Config
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from minrisk.core.config import settings
from minrisk.core.rate_limit import limiter
from minrisk.db.session import get_admin_session, get_session
from minrisk.main import app

# Use a separate test database (replace only the database name at the end)
_base_url = settings.DATABASE_URL.rsplit("/", 1)[0]
TEST_DATABASE_URL = _base_url + "/minrisk_test"
TEST_DB_NAME = "minrisk_test"

BACKEND_DIR = Path(__file__).resolve().parent


async def _ensure_test_database() -> None:
    """Create the test database if it doesn't exist."""
    parsed = urlparse(settings.DATABASE_URL.replace("+asyncpg", ""))
    conn = await asyncpg.connect(
        user=parsed.username,
        password=parsed.password,
        host=parsed.hostname,
        port=parsed.port or 5432,
        database="postgres",
        timeout=5,
    )
    try:
        exists = await conn.fetchval(
            "SELECT 1 FROM pg_database WHERE datname = $1", TEST_DB_NAME
        )
        if not exists:
            await conn.execute(f'CREATE DATABASE "{TEST_DB_NAME}"')
    finally:
        await conn.close()


def _run_test_migrations() -> None:
    config = Config(str(BACKEND_DIR / "alembic.ini"))
    config.set_main_option("script_location", str(BACKEND_DIR / "alembic"))
    config.set_main_option("sqlalchemy.url", TEST_DATABASE_URL)
    config.attributes["configure_logger"] = False
    config.attributes["url_configured"] = True
    command.upgrade(config, "head")


@pytest.fixture(scope="session")
def _database():
    """Create and migrate the test database once, or skip when PostgreSQL is unreachable."""
    try:
        asyncio.run(_ensure_test_database())
    except (OSError, asyncio.TimeoutError, asyncpg.PostgresError) as exc:
        pytest.skip(f"PostgreSQL is not available: {exc}")
    _run_test_migrations()


def _set_app_user_role(dbapi_connection, connection_record) -> None:
    # Outside any transaction, so the role sticks for the connection's lifetime.
    dbapi_connection.run_async(lambda conn: conn.execute("SET ROLE app_user"))


@pytest.fixture(scope="function")
async def engine(_database):
    """Owner engine. Row-level security does not apply to it."""
    test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, future=True, pool_pre_ping=True)
    yield test_engine

    # Clean up - truncate all tables to reset state
    async with test_engine.begin() as conn:
        tables = ", ".join(table.name for table in SQLModel.metadata.sorted_tables)
        await conn.execute(text(f"TRUNCATE TABLE {tables} RESTART IDENTITY CASCADE"))
    await test_engine.dispose()


@pytest.fixture(scope="function")
async def rls_engine(engine):
    """Engine whose connections run as ``app_user``, exactly like production requests."""
    test_engine = create_async_engine(TEST_DATABASE_URL, echo=False, future=True)
    event.listen(test_engine.sync_engine, "connect", _set_app_user_role)
    yield test_engine
    await test_engine.dispose()


def _sessionmaker(bind) -> sessionmaker:
    return sessionmaker(
        bind=bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest.fixture(scope="function")
async def session(engine) -> AsyncGenerator[AsyncSession, None]:
    """
    Owner session for arranging test data across organizations.

    Factories in ``minrisk.testing`` write through this session.
    """
    async with _sessionmaker(engine)() as test_session:
        yield test_session
        test_session.expire_all()


@pytest.fixture(scope="function")
async def rls_session(rls_engine) -> AsyncGenerator[AsyncSession, None]:
    """
    Session filtered by the row-level policies.

    Bind an identity with ``minrisk.testing.act_as`` before using it.
    """
    async with _sessionmaker(rls_engine)() as test_session:
        yield test_session


@pytest.fixture
async def client(engine, rls_engine) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an async HTTP client for testing API endpoints.

    This fixture:
    - Hands every request a fresh session, RLS-filtered or admin as in production
    - Provides an AsyncClient configured with the FastAPI app
    - Disables rate limiting

    Usage:
        async def test_endpoint(client: AsyncClient):
            response = await client.get("/api/v1/version")
            assert response.status_code == 200
    """
    rls_sessions = _sessionmaker(rls_engine)
    admin_sessions = _sessionmaker(engine)

    async def override_get_session() -> AsyncGenerator[AsyncSession, None]:
        async with rls_sessions() as request_session:
            yield request_session

    async def override_get_admin_session() -> AsyncGenerator[AsyncSession, None]:
        async with admin_sessions() as request_session:
            yield request_session

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_admin_session] = override_get_admin_session

    # Disable rate limiting in tests
    limiter.enabled = False

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as test_client:
        yield test_client

    app.dependency_overrides.clear()
