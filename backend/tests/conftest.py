"""Shared test fixtures for folio."""

import os

# Must be set before folio.core.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")

import time
from datetime import datetime
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import folio.models  # noqa: F401
from folio.core.database import Base
from folio.core.locks import UserLockRegistry
from folio.models.base import utcnow
from folio.services.ledger_service import LedgerService
from folio.services.market_data import MarketDataProvider, PriceQuote

NOW = datetime(2026, 3, 2, 15, 30)


class StaticQuoteProvider(MarketDataProvider):
    """Serves canned quotes; can be told to fail or hang for a symbol."""

    name = "static"

    def __init__(self, prices=None, as_of=NOW, previous_close=None, delay=None, failing=()):
        self.prices = {s: Decimal(str(p)) for s, p in (prices or {}).items()}
        self.as_of = as_of
        self.previous_close = {s: Decimal(str(p)) for s, p in (previous_close or {}).items()}
        self.delay = delay or {}
        self.failing = set(failing)
        self.calls = []

    def fetch_quote(self, symbol):
        self.calls.append(symbol)
        if symbol in self.delay:
            time.sleep(self.delay[symbol])
        if symbol in self.failing:
            raise RuntimeError(f"provider down for {symbol}")
        price = self.prices.get(symbol)
        if price is None:
            return None
        as_of = self.as_of[symbol] if isinstance(self.as_of, dict) else self.as_of
        if as_of is None:
            as_of = utcnow()
        return PriceQuote(
            symbol=symbol,
            price=price,
            as_of=as_of,
            previous_close=self.previous_close.get(symbol),
        )


@pytest_asyncio.fixture
async def db_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(bind=db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
def locks():
    return UserLockRegistry()


@pytest.fixture
def ledger(session, locks):
    return LedgerService(session=session, locks=locks)


@pytest.fixture
def quotes():
    """Default provider pricing the symbols used across tests."""
    return StaticQuoteProvider(
        prices={"AAPL": "182.63", "MSFT": "310.00", "BTC": "50000", "ETH": "3000"},
        previous_close={"AAPL": "180.00", "ETH": "3100"},
    )
