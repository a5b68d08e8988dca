"""
Test Suite Configuration
"""
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Optional, Sequence, Union

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from restaurant_crm.config import MessagingSettings, Settings, TaggingSettings
from restaurant_crm.database.connection import get_db_dependency
from restaurant_crm.database.models import Base
from restaurant_crm.tagging.models import Customer, LineItem, Order, OrderSource
from restaurant_crm.transformation.enrichers import CustomerStatsEnricher

# A Monday
AS_OF = datetime(2025, 3, 3, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(app_env="testing", debug=True)


@pytest.fixture
def policy() -> TaggingSettings:
    return TaggingSettings()


@pytest.fixture
def messaging() -> MessagingSettings:
    return MessagingSettings(restaurant_name="Spice Route", sign_off="The Spice Route Team")


@pytest.fixture
def as_of() -> datetime:
    return AS_OF


@pytest.fixture
def make_order(as_of):
    """Build an order placed a number of days before as_of"""
    def build(
        order_id: str,
        days_ago: float,
        amount: float = 500.0,
        category: str = "mains",
        item_name: str = "Butter Chicken",
        is_combo: bool = False,
        guests: int = 2,
        hour: int = 12,
        source: OrderSource = OrderSource.DINE_IN,
    ) -> Order:
        timestamp = (as_of - timedelta(days=days_ago)).replace(hour=hour)
        return Order(
            order_id=order_id,
            timestamp=timestamp,
            items=(LineItem(name=item_name, category=category, price=amount, is_combo=is_combo),),
            total_amount=amount,
            guest_count_estimate=guests,
            source=source,
        )

    return build


@pytest.fixture
def make_customer(make_order):
    """
    Build a customer whose stats are derived from its orders.

    combo may be a single flag or one flag per visit, oldest first.
    """
    enricher = CustomerStatsEnricher()

    def build(
        customer_id: str = "cust-1",
        days_ago: Sequence[float] = (30, 20, 10),
        amount: float = 500.0,
        combo: Union[bool, Sequence[bool]] = False,
        category: str = "mains",
        guests: int = 2,
        hour: int = 12,
        name: str = "Asha Rao",
        restaurant_id: Optional[str] = "r-1",
    ) -> Customer:
        visits = sorted(days_ago, reverse=True)
        flags = [combo] * len(visits) if isinstance(combo, bool) else list(combo)
        orders = [
            make_order(
                f"{customer_id}-{n}",
                days,
                amount=amount,
                category=category,
                is_combo=flags[n],
                guests=guests,
                hour=hour,
            )
            for n, days in enumerate(visits)
        ]
        customer = Customer(
            customer_id=customer_id,
            name=name,
            phone="+91 98450 00000",
            email=f"{customer_id}@example.com",
            restaurant_id=restaurant_id,
            orders=orders,
        )
        return enricher.refresh(customer)

    return build


@pytest.fixture
async def test_engine():
    """In-memory SQLite engine with the full schema"""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=test_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def test_db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def api_client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with database sessions from the test engine"""
    from restaurant_crm.main import app

    async def override_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_dependency] = override_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()
