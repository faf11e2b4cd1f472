"""Integration test fixtures: the FastAPI app over an in-memory database."""

from collections.abc import AsyncGenerator
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from timebudget.api.app import create_app
from timebudget.api.dependencies import get_db_session
from timebudget.database import create_engine_for_url
from timebudget.models import Base, Project, User, UserRole

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine with the schema in place."""
    engine = create_engine_for_url(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def seed(session_factory) -> dict[str, Any]:
    """Commit an administrator, an employee at $20/h and a budgeted project."""
    admin = User(
        user_id=uuid4(),
        email="admin@example.com",
        name="Ada Admin",
        role=UserRole.ADMIN.value,
        employee_rate=Decimal("50.00"),
    )
    employee = User(
        user_id=uuid4(),
        email="alice@example.com",
        name="Alice Smith",
        role=UserRole.EMPLOYEE.value,
        employee_rate=Decimal("20.00"),
    )
    project = Project(
        project_id=uuid4(),
        name="Apollo",
        total_budget=Decimal("1000.00"),
        q1_budget=Decimal("250.00"),
        q2_budget=Decimal("250.00"),
        q3_budget=Decimal("250.00"),
        q4_budget=Decimal("250.00"),
    )
    async with session_factory() as session:
        session.add_all([admin, employee, project])
        await session.commit()

    return {
        "admin_id": admin.user_id,
        "employee_id": employee.user_id,
        "project_id": project.project_id,
    }


@pytest_asyncio.fixture(scope="function")
async def client(session_factory, seed) -> AsyncGenerator[AsyncClient, None]:
    """Get async HTTP client bound to the test database."""
    app = create_app()

    async def override_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_db_session

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


def as_user(user_id: UUID) -> dict[str, str]:
    """Request headers identifying the caller."""
    return {"X-User-ID": str(user_id)}


@pytest.fixture
def admin_headers(seed) -> dict[str, str]:
    return as_user(seed["admin_id"])


@pytest.fixture
def employee_headers(seed) -> dict[str, str]:
    return as_user(seed["employee_id"])
