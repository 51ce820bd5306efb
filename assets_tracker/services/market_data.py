"""
Async quote / history / search source on top of the blocking yfinance client.

Every call runs in a worker thread. Failures never escape: a missing quote is
None, a failed history is an empty list, and batch calls settle each ticker
independently.
"""
import asyncio
import re
from datetime import date
from typing import Callable, Dict, List, Optional

from assets_tracker.clients import yfinance_client
from assets_tracker.core.logger import logger
from assets_tracker.schemas.market import AssetSearchResult, PricePoint, Quote

ISIN_PATTERN = re.compile(r"^[A-Z]{2}[A-Z0-9]{10}$", re.IGNORECASE)

QUOTE_TYPES = {
    "EQUITY": "STOCK",
    "ETF": "ETF",
    "MUTUALFUND": "ETF",
    "CRYPTOCURRENCY": "CRYPTO",
    "FUTURE": "COMMODITY",
}


def map_quote_type(quote_type: str) -> str:
    return QUOTE_TYPES.get((quote_type or "").upper(), "STOCK")


def manual_entry(query: str, note: str = "Enter manually") -> AssetSearchResult:
    ticker = query.strip().upper()
    return AssetSearchResult(ticker=ticker, name=f"{ticker} - {note}", exchange="Manual", asset_type="STOCK")


class MarketDataService:
    def __init__(
            self,
            fetch_quote_fn: Callable = yfinance_client.fetch_quote,
            fetch_history_fn: Callable = yfinance_client.fetch_price_history,
            search_fn: Callable = yfinance_client.search_quotes,
    ):
        """
        :param fetch_quote_fn: blocking ticker -> dict | None
        :param fetch_history_fn: blocking (ticker, start, end) -> DataFrame[date, close]
        :param search_fn: blocking query -> list of raw hits
        """
        self.fetch_quote = fetch_quote_fn
        self.fetch_history = fetch_history_fn
        self.search = search_fn

    async def get_quote(self, ticker: str) -> Optional[Quote]:
        try:
            raw = await asyncio.to_thread(self.fetch_quote, ticker)
        except Exception as e:
            logger.error(f"Error fetching quote for {ticker}: {e}")
            return None
        return Quote.model_validate(raw) if raw else None

    async def get_multiple_quotes(self, tickers: List[str]) -> Dict[str, Quote]:
        if not tickers:
            return {}
        results = await asyncio.gather(*(self.get_quote(t) for t in tickers), return_exceptions=True)
        quotes: Dict[str, Quote] = {}
        for ticker, result in zip(tickers, results):
            if isinstance(result, Quote):
                quotes[ticker] = result
            elif isinstance(result, Exception):
                logger.error(f"Quote task for {ticker} failed: {result}")
        return quotes

    async def get_historical_prices(self, ticker: str, start: date, end: date) -> List[PricePoint]:
        try:
            df = await asyncio.to_thread(self.fetch_history, ticker, start, end)
        except Exception as e:
            logger.error(f"Error fetching historical data for {ticker}: {e}")
            return []
        if df is None or df.empty:
            return []
        return [PricePoint(date=str(r.date), price=float(r.close)) for r in df.itertuples(index=False)]

    async def get_multiple_historical_prices(
            self,
            tickers: List[str],
            start: date,
            end: date,
    ) -> Dict[str, List[PricePoint]]:
        """ticker -> sparse closes; tickers without data are left out."""
        if not tickers:
            return {}
        results = await asyncio.gather(
            *(self.get_historical_prices(t, start, end) for t in tickers),
            return_exceptions=True,
        )
        history: Dict[str, List[PricePoint]] = {}
        for ticker, result in zip(tickers, results):
            if isinstance(result, Exception):
                logger.error(f"History task for {ticker} failed: {result}")
            elif result:
                history[ticker] = result
        return history

    async def search_assets(self, query: str) -> List[AssetSearchResult]:
        """Keyword or ISIN search; always ends with a manual-entry option."""
        query = query.strip()
        if len(query) < 2:
            return []

        is_isin = bool(ISIN_PATTERN.match(query))
        try:
            hits = await asyncio.to_thread(self.search, query.upper() if is_isin else query)
        except Exception as e:
            logger.error(f"Asset search failed for '{query}': {e}")
            return [manual_entry(query, "Enter manually (search unavailable)")]

        results = [
            AssetSearchResult(
                ticker=hit["symbol"],
                name=hit.get("shortname") or hit.get("longname") or hit["symbol"],
                exchange=hit.get("exchDisp") or hit.get("exchange") or "",
                asset_type=map_quote_type(hit.get("quoteType", "EQUITY")),
                isin=query.upper() if is_isin else None,
            )
            for hit in hits
            if hit.get("symbol")
        ]
        if not is_isin:
            results.append(manual_entry(query))
        return results
