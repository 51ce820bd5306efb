from pydantic import BaseModel


class Quote(BaseModel):
    ticker: str
    name: str
    price: float
    currency: str
    change: float = 0.0
    change_percent: float = 0.0
    previous_close: float = 0.0
    exchange: str = ""


class PricePoint(BaseModel):
    date: str
    price: float


class AssetSearchResult(BaseModel):
    ticker: str
    name: str
    exchange: str
    asset_type: str
    currency: str | None = None
    isin: str | None = None
