"""Pytest fixtures for timebudget tests."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import AsyncGenerator
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from timebudget.database import create_engine_for_url
from timebudget.models import Base, Project, TimeEntry, User, UserRole

# In-memory SQLite; StaticPool keeps one connection so every session sees
# the same database.
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

AddEntry = Callable[..., Awaitable[TimeEntry]]


@pytest.fixture
async def engine():
    """Create a fresh test database per test."""
    engine = create_engine_for_url(TEST_DATABASE_URL)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def admin(session: AsyncSession) -> User:
    """An administrator."""
    user = User(
        user_id=uuid4(),
        email="admin@example.com",
        name="Ada Admin",
        role=UserRole.ADMIN.value,
        employee_rate=Decimal("50.00"),
    )
    session.add(user)
    await session.flush()
    return user


@pytest.fixture
async def employee(session: AsyncSession) -> User:
    """An employee at $20/h with no rate history yet."""
    user = User(
        user_id=uuid4(),
        email="alice@example.com",
        name="Alice Smith",
        role=UserRole.EMPLOYEE.value,
        employee_rate=Decimal("20.00"),
    )
    session.add(user)
    await session.flush()
    return user


@pytest.fixture
async def second_employee(session: AsyncSession) -> User:
    """An employee at $40/h with no rate history yet."""
    user = User(
        user_id=uuid4(),
        email="bob@example.com",
        name="Bob Jones",
        role=UserRole.EMPLOYEE.value,
        employee_rate=Decimal("40.00"),
    )
    session.add(user)
    await session.flush()
    return user


@pytest.fixture
async def project(session: AsyncSession) -> Project:
    """A project with a 10,000 budget split evenly across quarters."""
    project = Project(
        project_id=uuid4(),
        name="Apollo",
        total_budget=Decimal("10000.00"),
        q1_budget=Decimal("2500.00"),
        q2_budget=Decimal("2500.00"),
        q3_budget=Decimal("2500.00"),
        q4_budget=Decimal("2500.00"),
    )
    session.add(project)
    await session.flush()
    return project


@pytest.fixture
async def other_project(session: AsyncSession) -> Project:
    """A project with no budget."""
    project = Project(project_id=uuid4(), name="Borealis")
    session.add(project)
    await session.flush()
    return project


@pytest.fixture
def add_entry(session: AsyncSession) -> AddEntry:
    """Insert a time entry directly, bypassing the spending triggers."""

    async def _add(
        user: User,
        project: Project,
        work_date: date,
        minutes: int,
    ) -> TimeEntry:
        start = datetime.combine(work_date, time(9, 0), tzinfo=timezone.utc)
        entry = TimeEntry(
            time_entry_id=uuid4(),
            user_id=user.user_id,
            project_id=project.project_id,
            work_date=work_date,
            start_time=start,
        )
        entry.set_duration(minutes)
        session.add(entry)
        await session.flush()
        return entry

    return _add
