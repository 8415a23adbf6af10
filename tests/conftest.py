"""Shared test fixtures."""

from decimal import Decimal

import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from settlement.engine.eligibility import OrderFeedItem
from settlement.engine.settlement import SettlementService
from settlement.models import Base


def feed(producer_id: str, *lines) -> list[OrderFeedItem]:
    """Build an order feed from (order_id, amount) pairs."""
    return [
        OrderFeedItem(order_id=order_id, producer_id=producer_id, amount=Decimal(str(amount)))
        for order_id, amount in lines
    ]


async def verified_account(service: SettlementService, producer_id: str, **overrides):
    data = {
        "bank_name": "Commercial Bank of Ethiopia",
        "account_name": "Abebe Kebede",
        "account_number": "1000123456789",
        "is_primary": True,
    }
    data.update(overrides)
    account = (await service.register_bank_account(producer_id, **data)).unwrap()
    return (await service.verify_bank_account(account.id, actor="admin-1")).unwrap()


async def scheduled_payout(service: SettlementService, producer_id: str, *lines):
    payout = (await service.create_payout(producer_id, feed(producer_id, *lines))).unwrap()
    return (await service.schedule(payout.id)).unwrap()


@pytest_asyncio.fixture
async def db_session():
    """Create a fresh in-memory database for each test."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture
async def service(db_session: AsyncSession):
    return SettlementService(db_session, commission_rate=0.10, currency="ETB")


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """
    Session factory over a file-backed database, for tests that need
    several independent connections to the same data.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'settlement.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()
