"""Shared test fixtures — async DB, client, auth helpers, ledger factories.

Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL.
"""

from __future__ import annotations

import os

# Set test settings before any other import touches pydantic-settings
os.environ.setdefault("JWT_SECRET", "test-secret-for-ci-do-not-use-in-production")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_JSON", "false")

import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from hr_entitlement.balance.models import (
    InLieuGrant,
    LeaveConsumptionRecord,
    YearlyAllocation,
)
from hr_entitlement.common.constants import (
    IN_LIEU_SCHEMA_CANONICAL,
    IN_LIEU_SCHEMA_LEGACY,
    AllocationType,
    InLieuStatus,
    LeaveStatus,
    UserRole,
)
from hr_entitlement.config import settings
from hr_entitlement.core_hr.models import Employee
from hr_entitlement.database import Base, get_db
from hr_entitlement.main import create_app

# ── SQLite compat: compile PG-specific types ────────────────────────

from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.ext.compiler import compiles


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from hr_entitlement.common.rate_limit import limiter

    limiter.reset()
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with DB dependency overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Model factories ─────────────────────────────────────────────────

def _make_employee(
    *,
    email: Optional[str] = None,
    first_name: str = "Test",
    last_name: str = "User",
    years_of_service: Optional[int] = 3,
) -> dict:
    return dict(
        id=uuid.uuid4(),
        employee_code=f"EMP-{uuid.uuid4().hex[:6].upper()}",
        first_name=first_name,
        last_name=last_name,
        email=email or f"user.{uuid.uuid4().hex[:8]}@example.com",
        date_of_joining=date(2020, 1, 15),
        years_of_service=years_of_service,
        is_active=True,
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )


async def seed_employee(db: AsyncSession, **kwargs) -> Employee:
    emp = Employee(**_make_employee(**kwargs))
    db.add(emp)
    await db.flush()
    return emp


async def seed_allocation(
    db: AsyncSession,
    employee_id: uuid.UUID,
    *,
    year: int,
    allocated_days: Optional[Decimal] = Decimal("20"),
    created_at: Optional[datetime] = None,
) -> YearlyAllocation:
    allocation = YearlyAllocation(
        id=uuid.uuid4(),
        employee_id=employee_id,
        year=year,
        type=AllocationType.annual,
        allocated_days=allocated_days,
        created_at=created_at or datetime.now(timezone.utc),
    )
    db.add(allocation)
    await db.flush()
    return allocation


async def seed_grant(
    db: AsyncSession,
    employee_id: uuid.UUID,
    *,
    leave_days_added: Optional[Decimal] = None,
    days_added: Optional[Decimal] = None,
    status: InLieuStatus = InLieuStatus.approved,
) -> InLieuGrant:
    grant = InLieuGrant(
        id=uuid.uuid4(),
        employee_id=employee_id,
        start_date=date(2026, 3, 7),
        end_date=date(2026, 3, 8),
        leave_days_added=leave_days_added,
        days_added=days_added,
        schema_version=(
            IN_LIEU_SCHEMA_CANONICAL if leave_days_added is not None
            else IN_LIEU_SCHEMA_LEGACY
        ),
        status=status,
        created_at=datetime.now(timezone.utc),
        updated_at=datetime.now(timezone.utc),
    )
    db.add(grant)
    await db.flush()
    return grant


async def seed_leave(
    db: AsyncSession,
    employee_id: uuid.UUID,
    *,
    start_date: date,
    end_date: Optional[date] = None,
    days_taken: Optional[Decimal] = Decimal("1"),
    leave_type: Optional[str] = "Annual",
    status: LeaveStatus = LeaveStatus.approved,
) -> LeaveConsumptionRecord:
    record = LeaveConsumptionRecord(
        id=uuid.uuid4(),
        employee_id=employee_id,
        leave_type=leave_type,
        start_date=start_date,
        end_date=end_date or start_date,
        days_taken=days_taken,
        status=status,
        created_at=datetime.now(timezone.utc),
    )
    db.add(record)
    await db.flush()
    return record


# ── Auth helpers ────────────────────────────────────────────────────

def create_access_token(
    employee_id: uuid.UUID,
    role: UserRole = UserRole.employee,
    expired: bool = False,
) -> str:
    """Generate a JWT access token for testing."""
    if expired:
        exp = datetime.now(timezone.utc) - timedelta(hours=1)
    else:
        exp = datetime.now(timezone.utc) + timedelta(hours=1)
    payload = {
        "sub": str(employee_id),
        "role": role.value,
        "type": "access",
        "exp": exp,
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_headers_for(employee_id: uuid.UUID, role: UserRole = UserRole.employee) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(employee_id, role)}"}
