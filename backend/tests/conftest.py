"""
Centralized Test Configuration.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import Pool, StaticPool

from backend.app.main import app
from backend.app.db.session import get_db, Base
from backend.app.core.jwt import create_access_token
from backend.app.domain.lifecycle.parcel_lifecycle import ParcelLifecycleService
from backend.app.models.enums import UserRole
from backend.app.models.user import User
from backend.app.schemas.parcel import ParcelCreate

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# Event handler to enable foreign keys for SQLite
@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints (and ON DELETE CASCADE) for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


@pytest.fixture(scope="session", autouse=True)
def apply_overrides():
    """Route every request-scoped session to the in-memory database."""

    async def override_get_db():
        async with TestingSessionLocal() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    yield
    app.dependency_overrides = {}


@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation and service-level tests
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


async def _create_user(session: AsyncSession, email: str, first: str, last: str, role: UserRole, **extra) -> User:
    user = User(email=email, first_name=first, last_name=last, role=role, **extra)
    session.add(user)
    return user


@pytest.fixture
async def users(db_session):
    """
    One user per role plus extras for cross-ownership checks.

    Keys: admin, sender, receiver, outsider, driver, other_driver, inactive_driver
    """
    created = {
        "admin": await _create_user(db_session, "admin@delivery.com", "Admin", "User", UserRole.ADMIN),
        "sender": await _create_user(db_session, "customer@example.com", "John", "Customer", UserRole.CUSTOMER),
        "receiver": await _create_user(db_session, "receiver@example.com", "Jane", "Receiver", UserRole.CUSTOMER),
        "outsider": await _create_user(db_session, "outsider@example.com", "Olly", "Outsider", UserRole.CUSTOMER),
        "driver": await _create_user(
            db_session, "driver@delivery.com", "Mike", "Driver", UserRole.DRIVER, phone="+1234567892"
        ),
        "other_driver": await _create_user(db_session, "driver2@delivery.com", "Dana", "Wheeler", UserRole.DRIVER),
        "inactive_driver": await _create_user(
            db_session, "driver3@delivery.com", "Ivan", "Idle", UserRole.DRIVER, is_active=False
        ),
    }
    await db_session.commit()
    return created


@pytest.fixture
def identity_for():
    """Build the verified identity payload the API dependency produces."""

    def _identity(user: User) -> dict:
        return {"sub": user.email, "user_id": user.id, "role": user.role}

    return _identity


@pytest.fixture
def headers_for():
    """Build bearer headers for a user."""

    def _headers(user: User) -> dict:
        token = create_access_token(
            data={"sub": user.email, "user_id": user.id, "role": user.role.value}
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers


def parcel_payload(receiver_id: int, **overrides) -> dict:
    payload = {
        "description": "Sample parcel for testing",
        "weight": 2.5,
        "dimensions": "30x20x10 cm",
        "value": 50,
        "priority": "STANDARD",
        "receiver_id": receiver_id,
        "pickup_address": "123 Main Street, New York, NY 10001",
        "delivery_address": "456 Oak Avenue, Brooklyn, NY 11201",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_parcel_payload():
    return parcel_payload


@pytest.fixture
async def pending_parcel(db_session, users, identity_for):
    """A PENDING parcel sent by ``sender`` to ``receiver``."""
    return await ParcelLifecycleService.create_parcel(
        db_session,
        identity_for(users["sender"]),
        ParcelCreate(**parcel_payload(users["receiver"].id)),
    )
