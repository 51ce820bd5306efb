import asyncio
from datetime import date
from typing import Dict, Iterable, List, Optional

from assets_tracker.core.config import settings
from assets_tracker.core.exceptions import require_user
from assets_tracker.core.logger import logger
from assets_tracker.managers.cache_manager import CacheManager
from assets_tracker.repositories.base import RepositoryError
from assets_tracker.repositories.factory import RepositoryFactory
from assets_tracker.schemas.holdings import Holding
from assets_tracker.schemas.market import Quote
from assets_tracker.schemas.portfolio import BenchmarkPoint, DailySeriesPoint, PortfolioSummary
from assets_tracker.services.benchmark_service import BenchmarkService
from assets_tracker.services.fx_rates_service import FXRateService
from assets_tracker.services.history_service import PortfolioHistoryService
from assets_tracker.services.holdings_service import calculate_holdings, update_holding_with_live_data
from assets_tracker.services.price_anomaly import SUB_UNIT_CURRENCIES, SUB_UNIT_DIVISOR

QUOTES_KEY = "quotes"


def calculate_portfolio_summary(
        holdings: Iterable[Holding],
        realized_profit: float = 0.0,
        currency: Optional[str] = None,
) -> PortfolioSummary:
    """
    Totals over live-merged holdings. A holding without live data counts at
    its cost basis with zero day change.
    """
    total_value = 0.0
    total_invested = 0.0
    previous_value = 0.0
    asset_count = 0

    for holding in holdings:
        asset_count += 1
        total_invested += holding.total_invested

        if holding.current_value is None:
            total_value += holding.total_invested
            previous_value += holding.total_invested
            continue

        value = holding.current_value
        total_value += value
        pct = holding.day_change_percent or 0.0
        # a -100% day leaves nothing to invert from
        previous_value += value / (1 + pct / 100) if pct != -100 else 0.0

    unrealized_return = total_value - total_invested
    total_return = unrealized_return + realized_profit
    day_change = total_value - previous_value

    return PortfolioSummary(
        currency=currency or settings.REPORTING_CURRENCY,
        total_value=total_value,
        total_invested=total_invested,
        unrealized_return=unrealized_return,
        realized_profit=realized_profit,
        total_return=total_return,
        total_return_percent=total_return / total_invested * 100 if total_invested > 0 else 0.0,
        day_change=day_change,
        day_change_percent=day_change / previous_value * 100 if previous_value > 0 else 0.0,
        asset_count=asset_count,
    )


def price_in_currency(quote: Quote, currency: str) -> float:
    """Quote price expressed in the unit the holding was bought in (GBp vs GBP)."""
    if quote.currency == currency:
        return quote.price
    if SUB_UNIT_CURRENCIES.get(quote.currency) == currency:
        return quote.price / SUB_UNIT_DIVISOR
    if SUB_UNIT_CURRENCIES.get(currency) == quote.currency:
        return quote.price * SUB_UNIT_DIVISOR
    return quote.price


def merge_live_data(
        holdings: Iterable[Holding],
        quotes: Dict[str, Quote],
        rates: Dict[str, float],
) -> List[Holding]:
    merged = []
    for holding in holdings:
        quote = quotes.get(holding.ticker)
        if quote is None:
            merged.append(holding)
            continue
        merged.append(
            update_holding_with_live_data(
                holding,
                price_in_currency(quote, holding.original_currency),
                rates.get(holding.original_currency, 1.0),
                quote.change_percent,
            )
        )
    return merged


def save_daily_snapshot(factory: RepositoryFactory, user_id: str, summary: PortfolioSummary,
                        today: Optional[date] = None) -> bool:
    """Upserts today's snapshot; an empty portfolio is not recorded."""
    if summary.total_value <= 0:
        return False
    today = today or date.today()
    factory.get_snapshot_repository().upsert(
        user_id=user_id,
        snapshot_date=today,
        total_value=summary.total_value,
        total_invested=summary.total_invested,
        total_profit=summary.total_return,
    )
    logger.info(f"Saved portfolio snapshot for user {user_id} on {today}: {summary.total_value:.2f}")
    return True


class PortfolioService:
    """Read side of the portfolio: holdings, summary, history and benchmark for one owner."""

    def __init__(
            self,
            factory: RepositoryFactory,
            market,
            cache: CacheManager,
            fx: Optional[FXRateService] = None,
    ):
        self.factory = factory
        self.market = market
        self.cache = cache
        self.fx = fx or FXRateService(market)

    def _transactions(self, user_id: str):
        return self.factory.get_transaction_repository().list_for_user(user_id)

    async def get_quotes(self, tickers: List[str]) -> Dict[str, Quote]:
        """Live quotes, read through the short-lived quotes cache."""
        quotes: Dict[str, Quote] = {}
        missing = []
        for ticker in tickers:
            cached = self.cache.get(QUOTES_KEY, ticker)
            if cached:
                quotes[ticker] = Quote.model_validate(cached)
            else:
                missing.append(ticker)

        fetched = await self.market.get_multiple_quotes(missing)
        for ticker, quote in fetched.items():
            self.cache.set(quote.model_dump(), QUOTES_KEY, ticker, ttl=settings.QUOTES_CACHE_TTL)
        quotes.update(fetched)
        return quotes

    async def get_live_holdings(self, user_id: str) -> List[Holding]:
        user_id = require_user(user_id)
        holdings = calculate_holdings(self._transactions(user_id))
        if not holdings:
            return []

        quotes, rates = await asyncio.gather(
            self.get_quotes([h.ticker for h in holdings]),
            self.fx.get_multiple_exchange_rates(h.original_currency for h in holdings),
        )
        return merge_live_data(holdings, quotes, rates)

    def get_realized_profit(self, user_id: str) -> float:
        closed = self.factory.get_closed_position_repository().list_for_user(user_id)
        return sum(float(c.realized_profit) for c in closed)

    async def get_summary(self, user_id: str, save_snapshot: bool = True) -> PortfolioSummary:
        user_id = require_user(user_id)
        holdings = await self.get_live_holdings(user_id)
        summary = calculate_portfolio_summary(holdings, self.get_realized_profit(user_id))
        if save_snapshot:
            try:
                save_daily_snapshot(self.factory, user_id, summary)
            except RepositoryError as e:
                logger.warning(f"Daily snapshot for user {user_id} not saved: {e}")
        return summary

    async def get_history(self, user_id: str, force_refresh: bool = False) -> List[DailySeriesPoint]:
        user_id = require_user(user_id)
        service = PortfolioHistoryService(self.market.get_multiple_historical_prices, self.cache)
        return await service.load(user_id, self._transactions(user_id), force_refresh=force_refresh)

    async def get_benchmark(self, user_id: str, force_refresh: bool = False) -> List[BenchmarkPoint]:
        user_id = require_user(user_id)
        service = BenchmarkService(self.market.get_multiple_historical_prices, self.cache)
        return await service.load(user_id, self._transactions(user_id), force_refresh=force_refresh)

    def clear_quotes(self) -> int:
        return self.cache.clear(f"{self.cache.prefix}:{QUOTES_KEY}:*")
