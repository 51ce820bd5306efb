from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from assets_tracker.schemas.transactions import TransactionsOut


class Holding(BaseModel):
    ticker: str
    asset_name: str
    asset_type: str
    total_quantity: float
    avg_buy_price: float
    original_currency: str
    avg_exchange_rate: float
    total_invested: float
    transactions: List[TransactionsOut] = []

    current_price: Optional[float] = None
    current_exchange_rate: Optional[float] = None
    current_value: Optional[float] = None
    day_change_percent: Optional[float] = None
    unrealized_return: Optional[float] = None
    unrealized_return_percent: Optional[float] = None
    last_updated: Optional[datetime] = None


class ClosedPositionOut(BaseModel):
    id: str
    ticker: str
    isin: str | None = None
    asset_type: str
    asset_name: str | None = None
    quantity_sold: float
    avg_buy_price: float
    avg_buy_rate: float
    sell_price: float
    sell_rate: float
    realized_profit: float
    broker: str | None = None
    closed_date: date
    sell_transaction_id: str | None = None

    model_config = ConfigDict(from_attributes=True)
