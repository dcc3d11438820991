"""
Test fixtures and configuration for pytest.
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator

# Signing secrets must exist before main.py is imported (it builds the app)
os.environ.setdefault("JWT_SECRET", "test-portal-secret-0123456789abcdef0123456789")
os.environ.setdefault("DRIVERAPP_JWT_SECRET", "test-driver-access-secret-0123456789abcdef")
os.environ.setdefault("DRIVERAPP_JWT_REFRESH_SECRET", "test-driver-refresh-secret-0123456789abcdef")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_app.db")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import AuthConfig, Settings
from db.database import Base, get_db, get_session_factory
from models.driver import Driver
from models.user import User
from services.passwords import hash_secret
from services.tokens import TokenCodecs

# Test database URL (SQLite for testing)
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"

engine = create_async_engine(TEST_DATABASE_URL, echo=False)
TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)

PORTAL_SECRET = os.environ["JWT_SECRET"]
DRIVER_ACCESS_SECRET = os.environ["DRIVERAPP_JWT_SECRET"]
DRIVER_REFRESH_SECRET = os.environ["DRIVERAPP_JWT_REFRESH_SECRET"]

ADMIN_PASSWORD = "admin-password-123"
STAFF_PASSWORD = "staff-password-123"
DRIVER_PIN = "4821"


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        APP_MODE="dev",
        JWT_SECRET=PORTAL_SECRET,
        DRIVERAPP_JWT_SECRET=DRIVER_ACCESS_SECRET,
        DRIVERAPP_JWT_REFRESH_SECRET=DRIVER_REFRESH_SECRET,
        CORS_ALLOWED_ORIGINS="",
        PROTECTED_PATH_PREFIXES="",
    )


@pytest.fixture
def auth_config(test_settings: Settings) -> AuthConfig:
    return AuthConfig.from_settings(test_settings)


@pytest.fixture
def codecs(auth_config: AuthConfig) -> TokenCodecs:
    return TokenCodecs.from_config(auth_config)


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    # Import models to register them
    from models import auth_audit, driver, driver_trusted_device, user, user_session  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestingSessionLocal() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def session_factory() -> async_sessionmaker:
    return TestingSessionLocal


@pytest_asyncio.fixture
async def app(test_settings: Settings, db_session: AsyncSession):
    """Application wired to the test database."""
    from main import create_app

    application = create_app(test_settings)

    async def override_get_db():
        yield db_session

    application.dependency_overrides[get_db] = override_get_db
    application.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal

    yield application

    # Detached last-seen writes must finish before tables are dropped
    await application.state.background.drain()
    application.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with the overridden database dependency."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# ============== Test Data Fixtures ==============


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    user = User(
        email="admin@example.com",
        name="Admin",
        password_hash=hash_secret(ADMIN_PASSWORD),
        role="admin",
        roles=[],
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def staff_user(db_session: AsyncSession) -> User:
    user = User(
        email="staff@example.com",
        name="Staff",
        password_hash=hash_secret(STAFF_PASSWORD),
        role="staff",
        roles=[],
    )
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def driver(db_session: AsyncSession) -> Driver:
    driver = Driver(
        driver_code="DRV001",
        name="Test Driver",
        active=True,
        vehicle="Hearse 2",
        pin_hash=hash_secret(DRIVER_PIN),
        pin_failed_attempts=0,
    )
    db_session.add(driver)
    await db_session.commit()
    await db_session.refresh(driver)
    return driver


@pytest.fixture
def utc_now() -> datetime:
    return datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def eight_hours() -> timedelta:
    return timedelta(hours=8)
