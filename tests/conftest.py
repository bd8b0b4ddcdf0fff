"""
Pytest fixtures for testing.

Provides:
- Async database session on in-memory SQLite
- A ``store`` fixture that runs core tests against both the memory
  and the SQLAlchemy implementation
- A frozen, advanceable clock for expiry tests
- Factories for permissions, roles, users and auth headers
"""

from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Iterable
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from assetdesk.api.dependencies.database import get_db
from assetdesk.core.security import create_access_token
from assetdesk.main import app
from assetdesk.models import Base, Permission, RiskLevel, Role, User
from assetdesk.rbac.service import RBACService
from assetdesk.rbac.stores import MemoryRBACStore, SQLAlchemyRBACStore
from assetdesk.rbac.types import PermissionKey


# Test database URL (SQLite in-memory for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 1, 15, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """
    Create database session with automatic rollback.

    Each test gets a fresh transaction that's rolled back after.
    """
    session_factory = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def client(db: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    Test client with database session override.
    """

    async def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()


# ============ Core Fixtures ============


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest_asyncio.fixture(params=["memory", "sql"])
async def store(request, db: AsyncSession):
    """Every core test runs against both store implementations."""
    if request.param == "memory":
        return MemoryRBACStore()
    return SQLAlchemyRBACStore(db)


@pytest_asyncio.fixture
async def rbac(store, clock: FrozenClock) -> RBACService:
    return RBACService(store, clock=clock)


class RBACFactory:
    """Shortcuts for building catalog entries, roles and holders."""

    def __init__(self, rbac: RBACService):
        self.rbac = rbac

    async def permission(
        self,
        key: str,
        category: str = "general",
        risk_level: RiskLevel = RiskLevel.NORMAL,
    ) -> Permission:
        parsed = PermissionKey.parse(key, default_scope="ALL")
        existing = await self.rbac.catalog.find_permission(parsed.resource, parsed.action, parsed.scope)
        if existing is not None:
            return existing
        return await self.rbac.catalog.create_permission(
            parsed.resource,
            parsed.action,
            parsed.scope,
            display_name=str(parsed),
            category=category,
            risk_level=risk_level,
        )

    async def role(
        self,
        name: str,
        level: int,
        permissions: Iterable[str] = (),
        **kwargs,
    ) -> Role:
        keys = list(permissions)
        for key in keys:
            await self.permission(key)
        return await self.rbac.roles.create_role(name, level=level, permissions=keys, **kwargs)

    async def holder(self, *roles: Role, **kwargs) -> UUID:
        """A fresh user id holding the given roles."""
        user_id = uuid4()
        for role in roles:
            await self.rbac.assignments.assign_role(user_id, role.id, **kwargs)
        return user_id


@pytest.fixture
def factory(rbac: RBACService) -> RBACFactory:
    return RBACFactory(rbac)


# ============ HTTP Fixtures ============


class UserFactory:
    """Factory for creating test users."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(self, username: str | None = None, is_active: bool = True) -> User:
        """Create a user in the database."""
        user = User(
            username=username or f"user-{uuid4().hex[:8]}",
            email=None,
            is_active=is_active,
        )
        self.db.add(user)
        await self.db.flush()
        await self.db.refresh(user)
        return user


@pytest_asyncio.fixture
async def user_factory(db: AsyncSession) -> UserFactory:
    """Fixture that provides UserFactory."""
    return UserFactory(db)


@pytest_asyncio.fixture
async def sql_rbac(db: AsyncSession) -> RBACService:
    """RBAC service over the same session the HTTP client uses."""
    return RBACService(SQLAlchemyRBACStore(db))


def get_auth_headers(user: User) -> dict[str, str]:
    """Helper to get auth headers for any user."""
    token = create_access_token(user.id, username=user.username)
    return {"Authorization": f"Bearer {token}"}
