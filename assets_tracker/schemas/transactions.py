from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from assets_tracker.models.schemas import AssetType, TransactionType


def normalize_currency(value: str) -> str:
    """Uppercases ISO codes; "GBp" (pence) is case sensitive and kept as is."""
    value = value.strip()
    return value if value == "GBp" else value.upper()


class TransactionIn(BaseModel):
    ticker: str
    isin: Optional[str] = None
    asset_name: Optional[str] = None
    asset_type: AssetType = AssetType.STOCK
    type: TransactionType
    quantity: float = Field(gt=0)
    price: float = Field(gt=0)
    currency: str = "USD"
    exchange_rate: float = Field(gt=0)
    fees: float = Field(default=0.0, ge=0)
    broker: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=500)
    price_multiplier: float = Field(default=1.0, gt=0)
    transaction_date: date

    @field_validator("ticker")
    @classmethod
    def _strip_upper(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("currency")
    @classmethod
    def _currency(cls, value: str) -> str:
        return normalize_currency(value)


class TransactionUpdate(BaseModel):
    ticker: Optional[str] = None
    isin: Optional[str] = None
    asset_name: Optional[str] = None
    asset_type: Optional[AssetType] = None
    type: Optional[TransactionType] = None
    quantity: Optional[float] = Field(default=None, gt=0)
    price: Optional[float] = Field(default=None, gt=0)
    currency: Optional[str] = None
    exchange_rate: Optional[float] = Field(default=None, gt=0)
    fees: Optional[float] = Field(default=None, ge=0)
    broker: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=500)
    price_multiplier: Optional[float] = Field(default=None, gt=0)
    transaction_date: Optional[date] = None

    @field_validator(
        "ticker", "asset_type", "type", "quantity", "price", "currency", "exchange_rate",
        "fees", "price_multiplier", "transaction_date",
    )
    @classmethod
    def _not_null(cls, value):
        if value is None:
            raise ValueError("field can not be set to null")
        return value

    @field_validator("ticker")
    @classmethod
    def _strip_upper(cls, value: Optional[str]) -> Optional[str]:
        return value.strip().upper() if value is not None else value

    @field_validator("currency")
    @classmethod
    def _currency(cls, value: Optional[str]) -> Optional[str]:
        return normalize_currency(value) if value is not None else value


class TransactionsOut(BaseModel):
    id: str
    user_id: str
    ticker: str
    isin: str | None = None
    asset_name: str | None = None
    asset_type: str
    type: str
    quantity: float
    price: float
    currency: str
    exchange_rate: float
    fees: float = 0.0
    broker: str | None = None
    notes: str | None = None
    price_multiplier: float = 1.0
    transaction_date: date
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class PriceAnomaly(BaseModel):
    detected: bool
    suggested_multiplier: float
    label: str
    severity: str
    ratio: float
    adjusted_price: float | None = None
