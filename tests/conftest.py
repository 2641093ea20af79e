"""Pytest fixtures for HRIS engine tests."""

from __future__ import annotations

import itertools
from datetime import date, datetime, time
from decimal import Decimal
from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from hris_engine.attendance.civil_time import FixedClock
from hris_engine.calculators.tables import ContributionTableSet, load_contribution_tables
from hris_engine.config import DEFAULT_TABLES_DIR, PayrollConstants
from hris_engine.models import (
    AttendanceFact,
    Base,
    CashAdvance,
    CashAdvanceStatus,
    Employee,
    EmploymentStatus,
    OvertimeStatus,
    PayBasis,
    PayrollPeriod,
    PeriodStatus,
    ShiftType,
    Site,
    SiteAssignment,
    VerificationStatus,
)

# In-memory SQLite, one fresh schema per test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

MANILA_OFFICE = (14.5995, 120.9842)


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create test database engine."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture(scope="session")
def contribution_tables() -> ContributionTableSet:
    """Tables shipped with the package."""
    return load_contribution_tables(DEFAULT_TABLES_DIR)


@pytest.fixture
def constants() -> PayrollConstants:
    return PayrollConstants()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2025, 1, 6, 8, 0))


@pytest.fixture
def make_employee(session: AsyncSession):
    """Factory for employees; daily-rated, 08:00-17:00, Monday to Friday."""
    counter = itertools.count(1)

    async def _make(**overrides) -> Employee:
        n = next(counter)
        values = {
            "employee_number": f"EMP{n:03d}",
            "first_name": "Juan",
            "last_name": f"Dela Cruz {n}",
            "status": EmploymentStatus.ACTIVE,
            "pay_basis": PayBasis.DAILY,
            "rate": Decimal("1000.00"),
            "shift_start": time(8, 0),
            "shift_end": time(17, 0),
            "work_days": "1,2,3,4,5",
            "hire_date": date(2023, 1, 1),
        }
        values.update(overrides)
        employee = Employee(**values)
        session.add(employee)
        await session.flush()
        return employee

    return _make


@pytest.fixture
async def employee(make_employee) -> Employee:
    return await make_employee()


@pytest.fixture
async def site(session: AsyncSession) -> Site:
    """Create a test site with a 100 m geofence."""
    site = Site(
        name="Makati Office",
        latitude=MANILA_OFFICE[0],
        longitude=MANILA_OFFICE[1],
        radius_meters=100.0,
        is_active=True,
    )
    session.add(site)
    await session.flush()
    return site


@pytest.fixture
def assign(session: AsyncSession):
    async def _assign(employee: Employee, site: Site, **overrides) -> SiteAssignment:
        values = {
            "employee_id": employee.employee_id,
            "site_id": site.site_id,
            "start_date": date(2024, 1, 1),
            "is_active": True,
        }
        values.update(overrides)
        assignment = SiteAssignment(**values)
        session.add(assignment)
        await session.flush()
        return assignment

    return _assign


@pytest.fixture
async def assigned_employee(employee: Employee, site: Site, assign) -> Employee:
    await assign(employee, site)
    return employee


@pytest.fixture
async def period(session: AsyncSession) -> PayrollPeriod:
    """First cutoff of January 2025 (11 weekdays)."""
    period = PayrollPeriod(
        start_date=date(2025, 1, 1),
        end_date=date(2025, 1, 15),
        pay_date=date(2025, 1, 20),
        status=PeriodStatus.OPEN,
    )
    session.add(period)
    await session.flush()
    return period


@pytest.fixture
def add_fact(session: AsyncSession):
    """Factory for closed, on-time, verified attendance facts."""

    async def _add(
        employee: Employee,
        day: date,
        time_in: time = time(8, 0),
        time_out: time | None = time(17, 0),
        **overrides,
    ) -> AttendanceFact:
        values = {
            "employee_id": employee.employee_id,
            "scheduled_shift_date": day,
            "time_in": datetime.combine(day, time_in),
            "time_out": datetime.combine(day, time_out) if time_out else None,
            "shift_type": ShiftType.DAY,
            "verification_status": VerificationStatus.VERIFIED,
            "latitude": MANILA_OFFICE[0],
            "longitude": MANILA_OFFICE[1],
            "distance_meters": 0.0,
            "late_minutes": 0,
            "late_deductible": False,
            "undertime_minutes": 0,
            "overtime_minutes": 0,
            "ot_status": OvertimeStatus.NONE,
            "lunch_deduction_minutes": 60 if time_out else 0,
            "total_worked_minutes": 480 if time_out else None,
            "is_overtime_session": False,
        }
        values.update(overrides)
        fact = AttendanceFact(**values)
        session.add(fact)
        await session.flush()
        return fact

    return _add


@pytest.fixture
def add_advance(session: AsyncSession):
    """Factory for Disbursed cash advances."""

    async def _add(
        employee: Employee,
        amount: Decimal,
        deduction_per_cutoff: Decimal,
        remaining_balance: Decimal | None = None,
        status: CashAdvanceStatus = CashAdvanceStatus.DISBURSED,
    ) -> CashAdvance:
        advance = CashAdvance(
            employee_id=employee.employee_id,
            amount=amount,
            deduction_per_cutoff=deduction_per_cutoff,
            remaining_balance=amount if remaining_balance is None else remaining_balance,
            status=status,
        )
        session.add(advance)
        await session.flush()
        return advance

    return _add
