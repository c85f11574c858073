"""Pytest fixtures for workforce ledger tests."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import AsyncGenerator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from workforce_ledger.actor import Actor, Role
from workforce_ledger.database import get_engine, make_session_factory
from workforce_ledger.models import Base, Employee, LeaveType, Project
from workforce_ledger.services.leave_service import DEFAULT_LEAVE_TYPES

# Use in-memory SQLite for tests (with async support)
# For row locks and advisory locks, use a test Postgres database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

ADMIN_USER_ID = UUID("00000000-0000-0000-0000-0000000000a1")


def at(day: date, hour: int, minute: int = 0) -> datetime:
    """UTC instant on a given day."""
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


@dataclass
class Seed:
    """Reference rows every test starts with."""

    alice: Employee
    bob: Employee
    carol: Employee
    project: Project
    annual: LeaveType
    sick: LeaveType
    unpaid: LeaveType


@pytest.fixture
async def engine():
    """Create test database engine with a fresh schema per test."""
    engine = get_engine(TEST_DATABASE_URL)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest.fixture
async def seed(session_factory) -> Seed:
    """Employees, a project and the default leave types, committed."""
    alice = Employee(
        employee_id=uuid4(),
        name="Alice Tan",
        email="alice@example.com",
        payment_type="hourly",
        hourly_rate=Decimal("20.00"),
    )
    bob = Employee(
        employee_id=uuid4(),
        name="Bob Lim",
        email="bob@example.com",
        payment_type="monthly",
        monthly_rate=Decimal("4600.00"),
    )
    carol = Employee(
        employee_id=uuid4(),
        name="Carol Ng",
        email="carol@example.com",
        payment_type="daily",
        daily_rate=Decimal("150.00"),
    )
    project = Project(project_id=uuid4(), name="Apollo")
    types = {attrs["code"]: LeaveType(leave_type_id=uuid4(), **attrs) for attrs in DEFAULT_LEAVE_TYPES}

    async with session_factory() as session:
        session.add_all([alice, bob, carol, project, *types.values()])
        await session.commit()

    return Seed(
        alice=alice,
        bob=bob,
        carol=carol,
        project=project,
        annual=types["ANNUAL"],
        sick=types["SICK"],
        unpaid=types["UNPAID"],
    )


@pytest.fixture
async def session(session_factory, seed) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id=ADMIN_USER_ID, role=Role.ADMIN)


@pytest.fixture
def alice_actor(seed) -> Actor:
    return Actor(user_id=uuid4(), role=Role.STAFF, employee_id=seed.alice.employee_id)


@pytest.fixture
def bob_actor(seed) -> Actor:
    return Actor(user_id=uuid4(), role=Role.STAFF, employee_id=seed.bob.employee_id)
