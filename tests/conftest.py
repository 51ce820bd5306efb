import asyncio
import fnmatch
import inspect
from datetime import date
from typing import Dict, List, Optional

import pandas as pd
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import assets_tracker.models  # noqa: F401  registers tables on Base.metadata
from assets_tracker.core.db import Base
from assets_tracker.managers.cache_manager import CacheManager
from assets_tracker.repositories.factory import RepositoryFactory
from assets_tracker.schemas.market import PricePoint, Quote
from assets_tracker.schemas.transactions import TransactionsOut


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers used in the suite."""

    config.addinivalue_line("markers", "asyncio: mark test as running in an asyncio event loop")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Execute async test functions without requiring pytest-asyncio."""

    test_function = pyfuncitem.obj
    if inspect.iscoroutinefunction(test_function):
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            argnames = pyfuncitem._fixtureinfo.argnames
            kwargs = {name: pyfuncitem.funcargs[name] for name in argnames}
            loop.run_until_complete(test_function(**kwargs))
        finally:
            asyncio.set_event_loop(None)
            loop.close()
        return True
    return None


class InMemoryRedis:
    """The slice of redis.Redis (decode_responses=True) the cache layer uses."""

    def __init__(self):
        self.store: Dict[str, str] = {}
        self.ttls: Dict[str, Optional[int]] = {}

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value, ex=None):
        self.store[key] = value
        self.ttls[key] = ex
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
        return removed

    def incr(self, key):
        value = int(self.store.get(key, 0)) + 1
        self.store[key] = str(value)
        return value

    def scan_iter(self, pattern):
        return [k for k in list(self.store) if fnmatch.fnmatchcase(k, pattern)]


class InMemoryMarketData:
    """Quote/history source serving canned data and recording history requests."""

    def __init__(
            self,
            quotes: Optional[Dict[str, Quote]] = None,
            history: Optional[Dict[str, Dict[str, float]]] = None,
    ):
        self.quotes = quotes or {}
        self.history = history or {}
        self.history_calls: List[tuple] = []
        self.quote_calls: List[str] = []

    async def get_quote(self, ticker: str) -> Optional[Quote]:
        self.quote_calls.append(ticker)
        return self.quotes.get(ticker)

    async def get_multiple_quotes(self, tickers: List[str]) -> Dict[str, Quote]:
        result = {}
        for ticker in tickers:
            quote = await self.get_quote(ticker)
            if quote is not None:
                result[ticker] = quote
        return result

    async def get_historical_prices(self, ticker: str, start: date, end: date) -> List[PricePoint]:
        self.history_calls.append((ticker, start, end))
        return [
            PricePoint(date=day, price=price)
            for day, price in sorted(self.history.get(ticker, {}).items())
            if start.isoformat() <= day <= end.isoformat()
        ]

    async def get_multiple_historical_prices(self, tickers: List[str], start: date, end: date):
        result = {}
        for ticker in tickers:
            points = await self.get_historical_prices(ticker, start, end)
            if points:
                result[ticker] = points
        return result


def quote(ticker: str, price: float, currency: str = "USD", change_percent: float = 0.0) -> Quote:
    return Quote(ticker=ticker, name=ticker, price=price, currency=currency, change_percent=change_percent)


@pytest.fixture
def redis_store():
    return InMemoryRedis()


@pytest.fixture
def cache(redis_store):
    return CacheManager(prefix="portfolio", client=redis_store)


@pytest.fixture
def market():
    return InMemoryMarketData()


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def factory(db_session):
    return RepositoryFactory(db_session)


@pytest.fixture
def make_tx():
    counter = {"n": 0}

    def _make(
            ticker: str,
            type: str,
            quantity: float,
            price: float,
            rate: float,
            day: date,
            currency: str = "USD",
            user_id: str = "user-1",
    ) -> TransactionsOut:
        counter["n"] += 1
        return TransactionsOut(
            id=f"tx-{counter['n']:04d}",
            user_id=user_id,
            ticker=ticker,
            asset_type="STOCK",
            type=type,
            quantity=quantity,
            price=price,
            currency=currency,
            exchange_rate=rate,
            transaction_date=day,
        )

    return _make


@pytest.fixture
def price_frame():
    def _frame(rows: Dict[str, float]) -> pd.DataFrame:
        return pd.DataFrame({"date": list(rows), "close": list(rows.values())})

    return _frame


@pytest.fixture
def make_quote():
    return quote
