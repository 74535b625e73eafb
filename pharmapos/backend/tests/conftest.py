"""
Pytest configuration and fixtures
Shared test setup for all test modules
"""
import os

# Point the app at an in-memory database before any app module is imported
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from datetime import datetime, timedelta
from decimal import Decimal
from typing import AsyncGenerator
from uuid import uuid4
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.base import Base
from app.db.models import (
    Branch,
    InventoryItem,
    Sale,
    Subscription,
    SubscriptionPlan,
    Tenant,
    User,
)

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def engine():
    """Fresh in-memory database per test"""
    test_engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def now() -> datetime:
    return datetime(2025, 1, 15, 12, 0, 0)


@pytest.fixture
async def tenant(db_session: AsyncSession) -> Tenant:
    """Create test tenant"""
    tenant = Tenant(id="pharmacy-001", name="Test Pharmacy")
    db_session.add(tenant)
    await db_session.commit()
    await db_session.refresh(tenant)
    return tenant


@pytest.fixture
async def admins(db_session: AsyncSession, tenant: Tenant, now: datetime):
    """One admin and one tenant_admin, both created well before `now`"""
    users = [
        User(
            email="owner@pharmacy.test",
            full_name="Owner",
            tenant_id=tenant.id,
            role="admin",
            is_active=True,
            created_at=now - timedelta(days=60),
        ),
        User(
            email="manager@pharmacy.test",
            full_name="Manager",
            tenant_id=tenant.id,
            role="tenant_admin",
            is_active=True,
            created_at=now - timedelta(days=60),
        ),
    ]
    db_session.add_all(users)
    await db_session.commit()
    return users


@pytest.fixture
async def plan(db_session: AsyncSession) -> SubscriptionPlan:
    """Small plan so ceilings are easy to reach"""
    plan = SubscriptionPlan(
        name="starter",
        price=Decimal("1000.00"),
        max_users=10,
        max_products=3,
        max_transactions_per_month=5,
        max_branches=1,
        max_storage_gb=5,
        features=["Inventory Management", "Point of Sale"],
        is_active=True,
    )
    db_session.add(plan)
    await db_session.commit()
    await db_session.refresh(plan)
    return plan


@pytest.fixture
async def subscription(db_session: AsyncSession, tenant: Tenant, plan: SubscriptionPlan, now: datetime) -> Subscription:
    subscription = Subscription(
        tenant_id=tenant.id,
        plan=plan,
        start_date=now - timedelta(days=10),
        end_date=now + timedelta(days=20),
        amount=Decimal("1000.00"),
        status="active",
        is_active=True,
    )
    db_session.add(subscription)
    await db_session.commit()
    return subscription


@pytest.fixture
def make_users(db_session: AsyncSession, tenant: Tenant):
    async def _make(count: int, role: str = "cashier", created_at: datetime = None, is_active: bool = True):
        users = []
        for _ in range(count):
            user = User(
                email=f"{uuid4().hex}@pharmacy.test",
                full_name="Staff Member",
                tenant_id=tenant.id,
                role=role,
                is_active=is_active,
            )
            if created_at is not None:
                user.created_at = created_at
            users.append(user)
        db_session.add_all(users)
        await db_session.commit()
        return users
    return _make


@pytest.fixture
def make_products(db_session: AsyncSession, tenant: Tenant):
    async def _make(count: int, created_at: datetime = None, is_active: bool = True):
        items = []
        for i in range(count):
            item = InventoryItem(
                tenant_id=tenant.id,
                name=f"Paracetamol 500mg #{i}",
                unit_price=Decimal("2.50"),
                quantity=100,
                is_active=is_active,
            )
            if created_at is not None:
                item.created_at = created_at
            items.append(item)
        db_session.add_all(items)
        await db_session.commit()
        return items
    return _make


@pytest.fixture
def make_sales(db_session: AsyncSession, tenant: Tenant):
    async def _make(count: int, created_at: datetime = None, status: str = "completed", total: Decimal = Decimal("10.00")):
        sales = []
        for _ in range(count):
            sale = Sale(tenant_id=tenant.id, total=total, status=status)
            if created_at is not None:
                sale.created_at = created_at
            sales.append(sale)
        db_session.add_all(sales)
        await db_session.commit()
        return sales
    return _make


@pytest.fixture
def make_branches(db_session: AsyncSession, tenant: Tenant):
    async def _make(count: int, is_active: bool = True):
        branches = [
            Branch(tenant_id=tenant.id, name=f"Branch {i}", is_active=is_active)
            for i in range(count)
        ]
        db_session.add_all(branches)
        await db_session.commit()
        return branches
    return _make


@pytest.fixture
async def client(db_session: AsyncSession, session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the test database; lifespan is not run"""
    from app.main import app
    from app.db.database import get_db
    from app.api.dependencies import get_session_factory

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()
