"""
Pytest configuration for the offer engine.

Settings are read from APP_* environment variables when offer_engine is first
imported, so the test values are set here before any project import.
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
import uuid

os.environ.setdefault("APP_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("APP_JWT_SECRET", "test-jwt-secret-0123456789abcdef0123")
os.environ.setdefault("APP_CRON_SECRET", "test-cron-secret-0123")
os.environ.setdefault("APP_SWEEPER_ENABLED", "false")
os.environ.setdefault("APP_LOG_TO_FILE", "false")

project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from offer_engine.db.base import Base
from offer_engine.db.models import Listing, ListingStatus
from offer_engine.offers.events import CollectingEventPublisher
from offer_engine.offers.service import NegotiationService

START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic UTC clock. Each reading moves time forward one second."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def publisher() -> CollectingEventPublisher:
    return CollectingEventPublisher()


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    """A fresh file-backed SQLite database per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'offers.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_service(db, publisher, clock):
    def _make(session=None, **kwargs):
        kwargs.setdefault("publisher", publisher)
        kwargs.setdefault("clock", clock)
        return NegotiationService(session or db, **kwargs)

    return _make


@pytest.fixture
def service(make_service) -> NegotiationService:
    return make_service()


@pytest.fixture
def seller_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def buyer_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def stranger_id() -> uuid.UUID:
    return uuid.uuid4()


async def add_listing(session_factory, owner_id, status=ListingStatus.ACTIVE.value, price="250000"):
    async with session_factory() as session:
        listing = Listing(
            owner_id=owner_id,
            title="2-bed flat with garden",
            price=Decimal(price),
            status=status,
        )
        session.add(listing)
        await session.commit()
        return listing.id


@pytest_asyncio.fixture
async def listing_id(session_factory, seller_id) -> uuid.UUID:
    return await add_listing(session_factory, seller_id)
