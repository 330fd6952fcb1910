import os
from datetime import date
from typing import AsyncGenerator, List, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

# Ensure critical settings exist before the app/config modules import.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./dev.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key-change-me-please-0123456789")
os.environ.setdefault("BUSINESS_TIME_ZONE", "Australia/Brisbane")

from app.models import (
    BillingType,
    ClassTemplate,
    Enrolment,
    EnrolmentClassAssignment,
    EnrolmentPlan,
    EnrolmentStatus,
    Family,
    Role,
    Student,
    User,
)
from app.utils.security import create_access_token
from core.db import get_db
from core.db.base import Base
from main import app

# Use SQLite for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///./test.db"

engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)
TestSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


@pytest.fixture(autouse=True)
async def setup_db():
    """Create and drop all tables for each test."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide a database session for testing."""
    async with TestSessionLocal() as session:
        yield session


@pytest.fixture
def session_factory() -> async_sessionmaker:
    """Open extra sessions, e.g. to act as a second concurrent request."""
    return TestSessionLocal


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client for testing."""

    async def override_get_db():
        async with TestSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
async def family(db_session: AsyncSession) -> Family:
    """Create a test family."""
    family = Family(name="Nguyen Family", email="nguyen@example.com")
    db_session.add(family)
    await db_session.commit()
    return family


@pytest.fixture
async def other_family(db_session: AsyncSession) -> Family:
    family = Family(name="Other Family")
    db_session.add(family)
    await db_session.commit()
    return family


@pytest.fixture
async def student(db_session: AsyncSession, family: Family) -> Student:
    """Create a student in the test family."""
    student = Student(family_id=family.id, first_name="Mia", last_name="Nguyen")
    db_session.add(student)
    await db_session.commit()
    return student


@pytest.fixture
async def parent_user(db_session: AsyncSession, family: Family) -> User:
    """Create a parent user linked to the test family."""
    user = User(
        email="parent@example.com",
        first_name="Test",
        last_name="Parent",
        role=Role.PARENT,
        family_id=family.id,
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
async def admin_user(db_session: AsyncSession) -> User:
    """Create an admin test user."""
    user = User(
        email="admin@example.com",
        first_name="Admin",
        last_name="User",
        role=Role.ADMIN,
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest.fixture
def parent_headers(parent_user: User) -> dict:
    """Create authentication headers for the parent user."""
    access_token = create_access_token(parent_user.id, parent_user.role.value)
    return {"Authorization": f"Bearer {access_token}"}


@pytest.fixture
def admin_headers(admin_user: User) -> dict:
    """Create authentication headers for admin user."""
    access_token = create_access_token(admin_user.id, admin_user.role.value)
    return {"Authorization": f"Bearer {access_token}"}


async def _create_template(db_session: AsyncSession, name: str, day_of_week: int) -> ClassTemplate:
    template = ClassTemplate(
        name=name,
        day_of_week=day_of_week,
        start_date=date(2026, 1, 1),
        is_active=True,
    )
    db_session.add(template)
    await db_session.commit()
    return template


@pytest.fixture
async def monday_template(db_session: AsyncSession) -> ClassTemplate:
    return await _create_template(db_session, "Monday 4pm Squad", 0)


@pytest.fixture
async def tuesday_template(db_session: AsyncSession) -> ClassTemplate:
    return await _create_template(db_session, "Tuesday 4pm Squad", 1)


@pytest.fixture
async def wednesday_template(db_session: AsyncSession) -> ClassTemplate:
    return await _create_template(db_session, "Wednesday 4pm Squad", 2)


@pytest.fixture
async def weekly_plan(db_session: AsyncSession) -> EnrolmentPlan:
    """Four weeks, one class a week."""
    plan = EnrolmentPlan(
        name="Term weekly",
        billing_type=BillingType.PER_WEEK,
        price_cents=8000,
        duration_weeks=4,
        sessions_per_week=1,
    )
    db_session.add(plan)
    await db_session.commit()
    return plan


@pytest.fixture
async def twice_weekly_plan(db_session: AsyncSession) -> EnrolmentPlan:
    plan = EnrolmentPlan(
        name="Squad twice weekly",
        billing_type=BillingType.PER_WEEK,
        price_cents=15000,
        duration_weeks=4,
        sessions_per_week=2,
    )
    db_session.add(plan)
    await db_session.commit()
    return plan


@pytest.fixture
async def block_plan(db_session: AsyncSession) -> EnrolmentPlan:
    """Ten-class block at $200."""
    plan = EnrolmentPlan(
        name="10 class pass",
        billing_type=BillingType.PER_CLASS,
        price_cents=20000,
        block_class_count=10,
        sessions_per_week=1,
    )
    db_session.add(plan)
    await db_session.commit()
    return plan


@pytest.fixture
async def create_enrolment(db_session: AsyncSession, student: Student):
    """Factory fixture to create enrolments for the test student."""

    async def _create_enrolment(
        plan: EnrolmentPlan,
        templates: List[ClassTemplate],
        start_date: date = date(2026, 1, 5),
        paid_through_date: Optional[date] = None,
        end_date: Optional[date] = None,
        status: EnrolmentStatus = EnrolmentStatus.ACTIVE,
    ) -> Enrolment:
        enrolment = Enrolment(
            student_id=student.id,
            plan=plan,
            template=templates[0],
            status=status,
            start_date=start_date,
            end_date=end_date,
            paid_through_date=paid_through_date,
            class_assignments=[
                EnrolmentClassAssignment(template=template) for template in templates
            ] if len(templates) > 1 else [],
        )
        db_session.add(enrolment)
        await db_session.commit()
        return enrolment

    return _create_enrolment
