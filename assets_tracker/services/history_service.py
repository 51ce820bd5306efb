"""
Daily portfolio value series rebuilt from the transaction ledger.

The replay walks every calendar day from the first transaction to today:
transactions booked on a day update the per-ticker running state, then every
held ticker is valued at its forward-filled close. Only the price fetch is
incremental; the replay itself always runs over the whole ledger because the
weighted FX rate update is order dependent.
"""
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional

from pydantic import ValidationError

from assets_tracker.core.config import settings
from assets_tracker.core.exceptions import require_user
from assets_tracker.core.logger import logger
from assets_tracker.managers.cache_manager import CacheManager
from assets_tracker.models.schemas import TransactionType
from assets_tracker.schemas.market import PricePoint
from assets_tracker.schemas.portfolio import DailySeriesPoint, HistoryCacheEntry
from assets_tracker.schemas.transactions import TransactionsOut
from assets_tracker.services.holdings_service import normalize_transactions
from assets_tracker.services.replay import ForwardFill, group_events_by_day, replay_days

HISTORY_KEY = "history"
BENCHMARK_KEY = "benchmark"
REVISION_KEY = "revision"

# Quantities carry 8 decimals; anything below this is float residue of a full sale.
QUANTITY_EPSILON = 1e-9

HistoryFetcher = Callable[[List[str], date, date], Awaitable[Dict[str, List[PricePoint]]]]


@dataclass
class TickerState:
    quantity: float = 0.0
    cost_basis: float = 0.0
    avg_rate: float = 0.0


def sort_for_replay(transactions: Iterable[Any]) -> List[TransactionsOut]:
    """Chronological order; same-day BUYs before SELLs, then by id for a stable result."""
    return sorted(
        normalize_transactions(transactions),
        key=lambda t: (t.transaction_date, 0 if t.type == TransactionType.BUY.value else 1, t.id),
    )


def apply_transaction(states: Dict[str, TickerState], tx: TransactionsOut) -> None:
    state = states.get(tx.ticker)

    if tx.type == TransactionType.BUY.value:
        if state is None:
            state = states[tx.ticker] = TickerState(avg_rate=tx.exchange_rate)
        tx_cost = tx.quantity * tx.price * tx.exchange_rate
        state.quantity += tx.quantity
        state.cost_basis += tx_cost
        # weighted by the pre-transaction cost basis
        state.avg_rate = (
            (state.avg_rate * (state.cost_basis - tx_cost) + tx.exchange_rate * tx_cost) / state.cost_basis
            if state.cost_basis > 0
            else tx.exchange_rate
        )
        return

    if state is None or state.quantity <= 0:
        logger.warning(f"SELL of {tx.quantity} {tx.ticker} on {tx.transaction_date} without a position, skipped")
        return

    sell_ratio = tx.quantity / state.quantity
    if sell_ratio > 1:
        logger.warning(
            f"SELL of {tx.quantity} {tx.ticker} on {tx.transaction_date} exceeds held {state.quantity}, clamped"
        )
        sell_ratio = 1.0

    state.cost_basis -= state.cost_basis * sell_ratio
    state.quantity -= tx.quantity
    if state.quantity < QUANTITY_EPSILON:
        state.quantity = 0.0
        state.cost_basis = 0.0


def build_portfolio_series(
        transactions: Iterable[Any],
        price_history: Mapping[str, Mapping[str, float]],
        start: Optional[date] = None,
        end: Optional[date] = None,
) -> List[DailySeriesPoint]:
    """
    One point per day with an open cost basis, from start (default: first
    transaction) through end (default: today). Missing closes are forward
    filled; a ticker with no close seen yet is valued at its cost basis.
    """
    records = sort_for_replay(transactions)
    if not records:
        return []

    start = start or records[0].transaction_date
    end = end or date.today()

    states: Dict[str, TickerState] = {}
    prices = ForwardFill(price_history)

    def measure(day: str) -> Optional[DailySeriesPoint]:
        total_cost_basis = 0.0
        total_market_value = 0.0

        for ticker, state in states.items():
            if state.quantity <= 0:
                continue

            total_cost_basis += state.cost_basis

            price = prices.price(ticker, day)
            if price is not None:
                total_market_value += price * state.quantity * state.avg_rate
            else:
                total_market_value += state.cost_basis

        if total_cost_basis <= 0:
            return None

        profit = total_market_value - total_cost_basis
        return DailySeriesPoint(
            date=day,
            total_cost_basis=total_cost_basis,
            total_market_value=total_market_value,
            profit=profit,
            profit_percent=profit / total_cost_basis * 100,
        )

    return replay_days(
        start,
        end,
        group_events_by_day(records, lambda t: t.transaction_date),
        lambda tx, day: apply_transaction(states, tx),
        measure,
    )


def price_points_to_record(fetched: Mapping[str, List[PricePoint]]) -> Dict[str, Dict[str, float]]:
    return {
        ticker: {point.date: point.price for point in points}
        for ticker, points in fetched.items()
    }


def merge_price_history(
        existing: Mapping[str, Mapping[str, float]],
        new_data: Mapping[str, Mapping[str, float]],
) -> Dict[str, Dict[str, float]]:
    merged = {ticker: dict(prices) for ticker, prices in existing.items()}
    for ticker, prices in new_data.items():
        merged.setdefault(ticker, {}).update(prices)
    return merged


def unique_tickers(transactions: Iterable[TransactionsOut]) -> List[str]:
    return list(dict.fromkeys(t.ticker for t in transactions))


def current_revision(cache: CacheManager, user_id: str):
    return cache.get(REVISION_KEY, user_id=user_id)


def invalidate_portfolio_caches(cache: CacheManager, user_id: str) -> None:
    """
    Drops every derived series of the owner. Called on any change to the
    transaction set; the revision bump makes in-flight loads skip caching.
    """
    cache.delete(HISTORY_KEY, user_id=user_id)
    cache.delete(BENCHMARK_KEY, settings.BENCHMARK_TICKER, user_id=user_id)
    cache.incr(REVISION_KEY, user_id=user_id)


class PortfolioHistoryService:
    def __init__(self, fetch_history: HistoryFetcher, cache: CacheManager):
        self.fetch_history = fetch_history
        self.cache = cache

    def _read_entry(self, user_id: str) -> Optional[HistoryCacheEntry]:
        cached = self.cache.get(HISTORY_KEY, user_id=user_id)
        if not cached:
            return None
        try:
            return HistoryCacheEntry.model_validate(cached)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable history cache for user {user_id}: {e}")
            return None

    async def load(
            self,
            user_id: str,
            transactions: Iterable[Any],
            force_refresh: bool = False,
            today: Optional[date] = None,
    ) -> List[DailySeriesPoint]:
        user_id = require_user(user_id)
        records = sort_for_replay(transactions)
        if not records:
            return []

        today = today or date.today()
        earliest = records[0].transaction_date
        revision = current_revision(self.cache, user_id)

        price_history: Dict[str, Dict[str, float]] = {}
        fetch_start = earliest

        entry = None if force_refresh else self._read_entry(user_id)
        if entry is not None:
            if entry.last_updated == today:
                logger.debug(f"Using cached portfolio history for user {user_id} (up to date)")
                return entry.data

            price_history = entry.price_history
            fetch_start = entry.last_updated + timedelta(days=1)
            logger.info(f"Incremental history update for user {user_id}: {fetch_start} -> {today}")
        else:
            logger.info(f"Full history fetch for user {user_id}: {earliest} -> {today}")

        if fetch_start <= today:
            fetched = await self.fetch_history(unique_tickers(records), fetch_start, today)
            price_history = merge_price_history(price_history, price_points_to_record(fetched))

        series = build_portfolio_series(records, price_history, earliest, today)

        if current_revision(self.cache, user_id) != revision:
            logger.info(f"Transactions of user {user_id} changed during history load, result not cached")
            return series

        self.cache.set(
            HistoryCacheEntry(last_updated=today, data=series, price_history=price_history).model_dump(mode="json"),
            HISTORY_KEY,
            user_id=user_id,
            ttl=settings.HISTORY_CACHE_TTL,
        )
        return series
