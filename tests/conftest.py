"""
Veyro Payroll - Test Configuration

Pytest fixtures and configuration.
"""

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  (registers every table on Base.metadata)
from app.database import Base, get_async_session
from app.models.payroll import Employee
from app.models.practice import Practice
from app.services.tax_table_service import TaxTableService, load_tables_file
from main import app


# In-memory database shared by every connection of the test engine
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

test_engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Create test session factory
TestSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session
        await session.rollback()

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database session override."""

    async def override_get_session():
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ===========================================
# DATA FIXTURES
# ===========================================

@pytest.fixture
def tables_2024():
    """2024/2025 tables straight from the bundled file."""
    return load_tables_file()["2024/2025"]


@pytest_asyncio.fixture
async def tax_tables(db_session: AsyncSession):
    """Seed the bundled tax tables."""
    service = TaxTableService(db_session)
    return await service.seed_from_file()


@pytest_asyncio.fixture
async def test_practice(db_session: AsyncSession) -> Practice:
    """Create a test practice."""
    practice = Practice(
        id=uuid4(),
        name="Test Dental Practice",
        paye_reference_number="7000000000",
    )
    db_session.add(practice)
    await db_session.commit()
    await db_session.refresh(practice)
    return practice


async def create_employee(
    db_session: AsyncSession,
    practice: Practice,
    employee_number: str = "E001",
    **overrides,
) -> Employee:
    values = dict(
        id=uuid4(),
        practice_id=practice.id,
        employee_number=employee_number,
        full_name="Thandi Nkosi",
        date_of_birth=date(1990, 5, 20),
        tax_number="0123456789",
        monthly_salary=Decimal("30000.00"),
        bank_name="First National Bank",
        bank_account_number="62000000001",
        bank_branch_code="250655",
    )
    values.update(overrides)
    employee = Employee(**values)
    db_session.add(employee)
    await db_session.commit()
    await db_session.refresh(employee)
    return employee


@pytest.fixture
def make_employee(db_session: AsyncSession, test_practice: Practice, tax_tables):
    """Factory for further employees of the test practice."""

    async def _make(employee_number: str, **overrides) -> Employee:
        return await create_employee(db_session, test_practice, employee_number, **overrides)

    return _make


@pytest_asyncio.fixture
async def test_employee(db_session: AsyncSession, test_practice: Practice, tax_tables) -> Employee:
    """R30,000 a month, born 1990, no medical aid or retirement fund."""
    return await create_employee(db_session, test_practice)
