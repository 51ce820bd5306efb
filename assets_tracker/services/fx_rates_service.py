import asyncio
from datetime import date, timedelta
from typing import Dict, Iterable, Optional

from assets_tracker.core.config import settings
from assets_tracker.core.logger import logger
from assets_tracker.services.price_anomaly import resolve_currency

DEFAULT_RATE = 1.0


class FXRateService:
    """Rates that convert one unit of a currency into the reporting currency."""

    def __init__(self, market, target_currency: Optional[str] = None, lookback_days: Optional[int] = None):
        """
        :param market: MarketDataService (or anything with get_quote / get_historical_prices)
        :param target_currency: reporting currency, PLN by default
        :param lookback_days: tolerance around the requested day for historical rates
        """
        self.market = market
        self.target_currency = (target_currency or settings.REPORTING_CURRENCY).upper()
        self.lookback_days = settings.FX_LOOKBACK_DAYS if lookback_days is None else lookback_days

    def pair(self, currency: str) -> str:
        return f"{currency}{self.target_currency}=X"

    async def get_exchange_rate(self, currency: str) -> float:
        """
        Current rate; 1.0 for the reporting currency itself and whenever the
        quote is unavailable. Sub-unit currencies (GBp, ZAC...) are divided down.
        """
        major, divisor = resolve_currency(currency)
        if major == self.target_currency:
            return DEFAULT_RATE / divisor

        quote = await self.market.get_quote(self.pair(major))
        if quote is None or not quote.price:
            logger.warning(f"No FX quote for {major}/{self.target_currency}, using {DEFAULT_RATE}")
            return DEFAULT_RATE
        return quote.price / divisor

    async def get_historical_exchange_rate(self, currency: str, on: date) -> float:
        """
        Rate on a given day. Days without a quote (weekends, holidays) take the
        observation closest to `on` within [on - lookback, on + 1]; with nothing
        in the window the current rate is used.
        """
        major, divisor = resolve_currency(currency)
        if major == self.target_currency:
            return DEFAULT_RATE / divisor

        points = await self.market.get_historical_prices(
            self.pair(major),
            on - timedelta(days=self.lookback_days),
            on + timedelta(days=1),
        )
        if not points:
            logger.info(f"No historical FX for {major} around {on}, falling back to current rate")
            return await self.get_exchange_rate(currency)

        closest = min(points, key=lambda p: abs((date.fromisoformat(p.date) - on).days))
        return closest.price / divisor

    async def get_multiple_exchange_rates(self, currencies: Iterable[str]) -> Dict[str, float]:
        unique = list(dict.fromkeys(currencies))
        results = await asyncio.gather(
            *(self.get_exchange_rate(c) for c in unique),
            return_exceptions=True,
        )
        rates: Dict[str, float] = {}
        for currency, result in zip(unique, results):
            if isinstance(result, Exception):
                logger.error(f"FX rate task for {currency} failed: {result}")
                rates[currency] = DEFAULT_RATE
            else:
                rates[currency] = result
        return rates
