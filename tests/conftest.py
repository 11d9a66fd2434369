import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("PAYMENT_WEBHOOK_SECRET", "whsec-test")

from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from typing import AsyncGenerator, Callable, Dict

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from hoa_backend.auth.schemas import CurrentUser
from hoa_backend.auth.security import create_user_token
from hoa_backend.core.enums import CalculationMethod, UserRole
from hoa_backend.core.models import Building, BuildingManager, HOAFeePlan, Unit, User
from hoa_backend.db.session import Base, get_db
from hoa_backend.main import app


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Billing month used across the suite; charges for it fall due on 2026-03-10
PERIOD = "2026-03"
BEFORE_DUE = date(2026, 3, 1)
AFTER_DUE = date(2026, 3, 20)


@pytest.fixture()
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Fresh in-memory database per test; FastAPI's get_db is overridden to share the session."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:

        async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
            yield session

        app.dependency_overrides[get_db] = override_get_db
        yield session

    app.dependency_overrides.pop(get_db, None)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture()
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


async def _make_user(db: AsyncSession, role: UserRole, email: str, full_name: str) -> CurrentUser:
    user = User(email=email, full_name=full_name, role=role.value, status="ACTIVE")
    db.add(user)
    await db.commit()
    return CurrentUser(id=user.id, role=role, full_name=full_name)


@pytest.fixture()
async def admin(db_session: AsyncSession) -> CurrentUser:
    return await _make_user(db_session, UserRole.ADMIN, "admin@example.com", "Ada Admin")


@pytest.fixture()
async def manager(db_session: AsyncSession) -> CurrentUser:
    return await _make_user(db_session, UserRole.MANAGER, "manager@example.com", "Max Manager")


@pytest.fixture()
async def other_manager(db_session: AsyncSession) -> CurrentUser:
    return await _make_user(db_session, UserRole.MANAGER, "other@example.com", "Olive Other")


@pytest.fixture()
async def tenant(db_session: AsyncSession) -> CurrentUser:
    return await _make_user(db_session, UserRole.TENANT, "tenant@example.com", "Tara Tenant")


@pytest.fixture()
def auth_headers() -> Callable[[CurrentUser], Dict[str, str]]:
    def _headers(user: CurrentUser) -> Dict[str, str]:
        return {"Authorization": f"Bearer {create_user_token(user.id, user.role.value)}"}

    return _headers


@pytest.fixture()
async def hoa(db_session: AsyncSession, manager: CurrentUser, tenant: CurrentUser) -> SimpleNamespace:
    """
    One building managed by `manager` with three active units (80, 100, 120 sqm) and a
    450 FixedPerUnit plan. Unit 1 is lived in by `tenant`. Only ids are returned.
    """
    building = Building(name="Palm Court", city="Haifa")
    db_session.add(building)
    await db_session.flush()
    db_session.add(BuildingManager(building_id=building.id, user_id=manager.id))

    units = []
    for number, size in (("1", "80"), ("2", "100"), ("3", "120")):
        unit = Unit(
            building_id=building.id,
            unit_number=number,
            floor=int(number),
            size_sqm=Decimal(size),
            owner_name=f"Owner {number}",
            tenant_user_id=tenant.id if number == "1" else None,
            is_active=True,
        )
        db_session.add(unit)
        units.append(unit)

    plan = HOAFeePlan(
        building_id=building.id,
        name="Monthly HOA",
        calculation_method=CalculationMethod.FIXED_PER_UNIT.value,
        fixed_amount_per_unit=Decimal("450.00"),
        effective_from=date(2026, 1, 1),
        is_active=True,
        created_by=manager.id,
    )
    db_session.add(plan)
    await db_session.commit()

    return SimpleNamespace(
        building_id=building.id,
        unit_ids=[u.id for u in units],
        plan_id=plan.id,
    )
