from datetime import date, timedelta
from typing import List, Optional
import pandas as pd
import yfinance as yf

from assets_tracker.core.logger import logger


def fetch_quote(ticker: str) -> Optional[dict]:
    """Latest price, currency and day change for a ticker via Yahoo Finance."""
    t = yf.Ticker(ticker)
    fast_info = t.fast_info

    price = fast_info.last_price
    if price is None or pd.isna(price):
        return None

    previous_close = fast_info.previous_close or 0.0
    change = price - previous_close if previous_close else 0.0
    change_percent = change / previous_close * 100 if previous_close else 0.0

    return {
        "ticker": ticker.upper(),
        "name": ticker.upper(),
        "price": float(price),
        "currency": fast_info.currency or "USD",
        "change": float(change),
        "change_percent": float(change_percent),
        "previous_close": float(previous_close),
        "exchange": fast_info.exchange or "",
    }


def fetch_price_history(ticker: str, start: date, end: date, interval: str = "1d") -> pd.DataFrame:
    """
    Daily closes for [start, end] as a DataFrame with columns date, close.
    Days without trading are simply absent.
    """
    data = yf.Ticker(ticker).history(
        start=start.isoformat(),
        end=(end + timedelta(days=1)).isoformat(),
        interval=interval,
        auto_adjust=False,
    )
    if data.empty:
        return pd.DataFrame(columns=["date", "close"])

    data = data.reset_index()
    df = pd.DataFrame({
        "date": pd.to_datetime(data["Date"]).dt.strftime("%Y-%m-%d"),
        "close": data["Close"].astype(float),
    }).dropna()
    logger.info(f"Fetched {len(df)} rows of price data for {ticker}")
    return df


def search_quotes(query: str, max_results: int = 10) -> List[dict]:
    """Raw Yahoo Finance search hits for a keyword or ISIN."""
    return yf.Search(query, max_results=max_results, news_count=0).quotes or []
