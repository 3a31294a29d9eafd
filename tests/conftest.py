"""
Pytest Configuration and Fixtures
Shared fixtures and configuration for all tests
"""

import os
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Iterable, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from media_access.core.permissions import GroupRole
from media_access.db import models  # noqa: F401
from media_access.db.base import Base
from media_access.db.repository import AccessRepository
from media_access.models.access import ResourceRef, ResourceType
from media_access.models.access_code import AccessCode, AccessCodeScope

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# ============================================
# PYTEST CONFIGURATION
# ============================================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests (fast, isolated)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (medium speed)"
    )


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add default markers"""
    for item in items:
        # Add markers based on test file path
        if "/unit/" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


# ============================================
# CLOCK
# ============================================

class FrozenClock:
    """Deterministic clock for resolver and registry tests"""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


# ============================================
# DATABASE FIXTURES
# ============================================

@pytest_asyncio.fixture
async def engine():
    """
    In-memory SQLite engine
    StaticPool keeps every session on the same connection so the schema survives
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Test database session, one fresh database per test"""
    async with session_maker() as session:
        yield session


# ============================================
# TEST DATA FIXTURES
# ============================================

class Seeder:
    """Writes resources, memberships and codes straight through the repository"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.repository = AccessRepository(db)

    async def resource(
        self,
        resource_id: str,
        owner: Optional[str] = None,
        resource_type: ResourceType = ResourceType.VIDEO,
        is_public: bool = False,
        group_id: Optional[str] = None,
    ) -> ResourceRef:
        ref = await self.repository.save_resource(
            ResourceRef(
                resource_type=resource_type,
                resource_id=resource_id,
                owner_user_id=owner,
                is_public=is_public,
                group_id=group_id,
            )
        )
        await self.db.commit()
        return ref

    async def member(self, group_id: str, user_id: str, role: GroupRole) -> None:
        await self.repository.add_member(group_id, user_id, role)
        await self.db.commit()

    async def individual_code(
        self,
        code: str,
        resources: Iterable[ResourceRef],
        created_by: str = "alice",
        expires_at: Optional[datetime] = None,
    ) -> AccessCode:
        access_code = await self.repository.insert_access_code(
            code=code,
            created_by=created_by,
            scope=AccessCodeScope.individual(resources),
            expires_at=expires_at,
        )
        await self.db.commit()
        return access_code

    async def group_code(
        self,
        code: str,
        group_id: str,
        created_by: str = "alice",
        expires_at: Optional[datetime] = None,
    ) -> AccessCode:
        access_code = await self.repository.insert_access_code(
            code=code,
            created_by=created_by,
            scope=AccessCodeScope.group_wide(group_id),
            expires_at=expires_at,
        )
        await self.db.commit()
        return access_code

    async def revoke(self, access_code: AccessCode) -> None:
        await self.repository.deactivate_access_code(access_code.id)
        await self.db.commit()

    async def reload_code(self, code: str) -> Optional[AccessCode]:
        access_code = await self.repository.get_access_code(code)
        await self.db.commit()
        return access_code


@pytest_asyncio.fixture
async def seed(db_session) -> Seeder:
    return Seeder(db_session)
