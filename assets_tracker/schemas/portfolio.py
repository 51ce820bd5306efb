from datetime import date
from typing import Dict, List

from pydantic import BaseModel, ConfigDict


class PortfolioSummary(BaseModel):
    currency: str
    total_value: float
    total_invested: float
    unrealized_return: float
    realized_profit: float
    total_return: float
    total_return_percent: float
    day_change: float
    day_change_percent: float
    asset_count: int


class DailySeriesPoint(BaseModel):
    date: date
    total_cost_basis: float
    total_market_value: float
    profit: float
    profit_percent: float


class BenchmarkPoint(BaseModel):
    date: date
    benchmark_value: float


class PortfolioHistoryResponse(BaseModel):
    currency: str
    history: List[DailySeriesPoint]


class BenchmarkResponse(BaseModel):
    ticker: str
    currency: str
    history: List[BenchmarkPoint]


class PortfolioSnapshotOut(BaseModel):
    snapshot_date: date
    total_value: float
    total_invested: float
    total_profit: float
    total_profit_pct: float | None = None

    model_config = ConfigDict(from_attributes=True)


class HistoryCacheEntry(BaseModel):
    """Cached daily series plus every price fetched so far (ticker -> day -> close)."""
    last_updated: date
    data: List[DailySeriesPoint]
    price_history: Dict[str, Dict[str, float]]


class BenchmarkCacheEntry(BaseModel):
    last_updated: date
    prices: Dict[str, float]


class RefreshStatus(BaseModel):
    refreshed: bool
    cooldown_remaining: int
