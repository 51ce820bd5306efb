"""
"What if every BUY had bought the index instead" comparison line.

Each BUY's reporting-currency amount buys phantom units of the benchmark at
that day's (forward-filled) index close; units are held forever, SELLs are
ignored on purpose.
"""
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import ValidationError

from assets_tracker.core.config import settings
from assets_tracker.core.exceptions import require_user
from assets_tracker.core.logger import logger
from assets_tracker.managers.cache_manager import CacheManager
from assets_tracker.models.schemas import TransactionType
from assets_tracker.schemas.portfolio import BenchmarkCacheEntry, BenchmarkPoint
from assets_tracker.schemas.transactions import TransactionsOut
from assets_tracker.services.history_service import (
    BENCHMARK_KEY,
    HistoryFetcher,
    current_revision,
    sort_for_replay,
)
from assets_tracker.services.replay import ForwardFill, day_key, group_events_by_day, replay_days


def buy_transactions(transactions: Iterable[Any]) -> List[TransactionsOut]:
    return [t for t in sort_for_replay(transactions) if t.type == TransactionType.BUY.value]


def build_benchmark_series(
        transactions: Iterable[Any],
        benchmark_prices: Mapping[str, float],
        start: Optional[date] = None,
        end: Optional[date] = None,
) -> List[BenchmarkPoint]:
    buys = buy_transactions(transactions)
    if not buys:
        return []

    start = start or buys[0].transaction_date
    end = end or date.today()

    prices = ForwardFill({BENCHMARK_KEY: benchmark_prices})
    # a BUY on a non-trading day mirrors at the previous close
    prices.seed(day_key(start))
    phantom = {"units": 0.0}

    def buy_units(tx: TransactionsOut, day: str) -> None:
        price = prices.price(BENCHMARK_KEY, day)
        if not price or price <= 0:
            logger.warning(f"No benchmark price on or before {day}, BUY of {tx.ticker} not mirrored")
            return
        amount = tx.quantity * tx.price * tx.exchange_rate
        phantom["units"] += amount / price

    def measure(day: str) -> Optional[BenchmarkPoint]:
        price = prices.price(BENCHMARK_KEY, day)
        if phantom["units"] <= 0 or not price:
            return None
        return BenchmarkPoint(date=day, benchmark_value=phantom["units"] * price)

    return replay_days(
        start,
        end,
        group_events_by_day(buys, lambda t: t.transaction_date),
        buy_units,
        measure,
    )


class BenchmarkService:
    def __init__(
            self,
            fetch_history: HistoryFetcher,
            cache: CacheManager,
            ticker: Optional[str] = None,
    ):
        self.fetch_history = fetch_history
        self.cache = cache
        self.ticker = ticker or settings.BENCHMARK_TICKER

    def _read_entry(self, user_id: str) -> Optional[BenchmarkCacheEntry]:
        cached = self.cache.get(BENCHMARK_KEY, self.ticker, user_id=user_id)
        if not cached:
            return None
        try:
            return BenchmarkCacheEntry.model_validate(cached)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable benchmark cache for user {user_id}: {e}")
            return None

    async def load(
            self,
            user_id: str,
            transactions: Iterable[Any],
            force_refresh: bool = False,
            today: Optional[date] = None,
    ) -> List[BenchmarkPoint]:
        user_id = require_user(user_id)
        buys = buy_transactions(transactions)
        if not buys:
            return []

        today = today or date.today()
        earliest = buys[0].transaction_date
        revision = current_revision(self.cache, user_id)

        prices: Dict[str, float] = {}
        fetch_start = earliest - timedelta(days=settings.BENCHMARK_LOOKBACK_DAYS)

        entry = None if force_refresh else self._read_entry(user_id)
        if entry is not None:
            prices = dict(entry.prices)
            if entry.last_updated == today:
                return build_benchmark_series(buys, prices, earliest, today)
            fetch_start = entry.last_updated + timedelta(days=1)

        if fetch_start <= today:
            fetched = await self.fetch_history([self.ticker], fetch_start, today)
            for point in fetched.get(self.ticker, []):
                prices[point.date] = point.price

        if current_revision(self.cache, user_id) == revision:
            self.cache.set(
                BenchmarkCacheEntry(last_updated=today, prices=prices).model_dump(mode="json"),
                BENCHMARK_KEY,
                self.ticker,
                user_id=user_id,
                ttl=settings.HISTORY_CACHE_TTL,
            )
        else:
            logger.info(f"Transactions of user {user_id} changed during benchmark load, prices not cached")

        return build_benchmark_series(buys, prices, earliest, today)
