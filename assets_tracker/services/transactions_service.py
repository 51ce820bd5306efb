"""
Write side of the ledger.

Every mutation keeps the SELL -> closed position link consistent and drops the
owner's derived history/benchmark caches.
"""
from datetime import date
from enum import Enum
from io import StringIO
from typing import Any, Dict, List, Optional

import dateparser
import pandas as pd

from assets_tracker.core.exceptions import TransactionNotFoundError, require_user
from assets_tracker.core.logger import logger
from assets_tracker.managers.cache_manager import CacheManager
from assets_tracker.models.schemas import TransactionType
from assets_tracker.repositories.base import RepositoryError
from assets_tracker.repositories.factory import RepositoryFactory
from assets_tracker.schemas.holdings import ClosedPositionOut
from assets_tracker.schemas.transactions import (
    PriceAnomaly,
    TransactionIn,
    TransactionsOut,
    TransactionUpdate,
)
from assets_tracker.services.history_service import invalidate_portfolio_caches, sort_for_replay
from assets_tracker.services.holdings_service import build_closed_position
from assets_tracker.services.price_anomaly import apply_multiplier, detect_price_multiplier

CSV_REQUIRED_COLUMNS = {"date", "type", "ticker", "quantity", "price", "currency"}
# edits to other fields leave a SELL's realized profit as booked
PNL_FIELDS = {"ticker", "type", "quantity", "price", "exchange_rate", "transaction_date"}


class CSVImportError(ValueError):
    """Raised when an uploaded CSV can not be turned into transactions"""
    pass


def _plain_values(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v.value if isinstance(v, Enum) else v for k, v in data.items()}


def parse_date(value: Any) -> Optional[date]:
    parsed = dateparser.parse(str(value), settings={"DATE_ORDER": "YMD"})
    return parsed.date() if parsed else None


def parse_transactions_csv(content: bytes) -> List[Dict[str, Any]]:
    """
    Rows of a transactions CSV (date, type, ticker, quantity, price, currency
    plus optional exchange_rate, asset_type, asset_name, isin, fees, broker,
    notes). exchange_rate is None when the column is missing or empty.
    """
    df = pd.read_csv(StringIO(content.decode("utf-8-sig")))
    df.columns = [str(c).strip().lower() for c in df.columns]

    missing = CSV_REQUIRED_COLUMNS - set(df.columns)
    if missing:
        raise CSVImportError(f"CSV must contain columns: {sorted(CSV_REQUIRED_COLUMNS)}")

    df["date"] = df["date"].apply(parse_date)
    if df["date"].isna().any():
        raise CSVImportError(f"Incorrect date format in rows: {df[df['date'].isna()].index.tolist()}")

    df = df.astype(object).where(pd.notna(df), None)
    rows = []
    for r in df.to_dict(orient="records"):
        rate = r.get("exchange_rate")
        rows.append({
            "transaction_date": r["date"],
            "type": str(r["type"]).strip().upper(),
            "ticker": str(r["ticker"]).strip().upper(),
            "quantity": float(r["quantity"]),
            "price": float(r["price"]),
            "currency": str(r["currency"]).strip(),
            "exchange_rate": float(rate) if rate is not None else None,
            "asset_type": str(r.get("asset_type") or "STOCK").upper(),
            "asset_name": r.get("asset_name"),
            "isin": r.get("isin"),
            "fees": float(r.get("fees") or 0.0),
            "broker": r.get("broker"),
            "notes": r.get("notes"),
        })
    return rows


class TransactionsService:
    def __init__(self, factory: RepositoryFactory, cache: CacheManager, fx=None):
        """
        :param factory: RepositoryFactory bound to the request session
        :param cache: portfolio cache holding the derived series
        :param fx: FXRateService, only needed for CSV rows without exchange_rate
        """
        self.factory = factory
        self.cache = cache
        self.fx = fx
        self.repo = factory.get_transaction_repository()
        self.closed_repo = factory.get_closed_position_repository()

    def _invalidate(self, user_id: str) -> None:
        invalidate_portfolio_caches(self.cache, user_id)

    def list(self, user_id: str, **filters) -> List[TransactionsOut]:
        user_id = require_user(user_id)
        return [TransactionsOut.model_validate(t) for t in self.repo.list_for_user(user_id, **filters)]

    def add(self, user_id: str, data: TransactionIn) -> TransactionsOut:
        """
        Records a transaction. A SELL also books a closed position priced
        against the holding formed by the owner's already stored transactions;
        a failure there is logged and does not undo the SELL.
        """
        user_id = require_user(user_id)

        closed = None
        if data.type == TransactionType.SELL:
            existing = self.repo.list_for_user(user_id, ticker=data.ticker)
            closed = build_closed_position(existing, data)

        tx = self.repo.create({**_plain_values(data.model_dump()), "user_id": user_id})

        if closed:
            try:
                self.closed_repo.create({**closed, "user_id": user_id, "sell_transaction_id": tx.id})
            except RepositoryError as e:
                logger.error(f"Closed position for SELL {tx.id} not recorded: {e}")

        self._invalidate(user_id)
        return TransactionsOut.model_validate(tx)

    def update(self, user_id: str, transaction_id: str, patch: TransactionUpdate) -> TransactionsOut:
        user_id = require_user(user_id)
        tx = self.repo.get_for_user(transaction_id, user_id)
        if tx is None:
            raise TransactionNotFoundError(f"Transaction {transaction_id} not found")

        changes = _plain_values(patch.model_dump(exclude_unset=True))
        relink = bool(PNL_FIELDS & changes.keys())

        updated = TransactionsOut.model_validate(tx).model_copy(update=changes)
        closed = None
        if relink and updated.type == TransactionType.SELL.value:
            ordered = sort_for_replay([
                *(t for t in self.repo.list_for_user(user_id, ticker=updated.ticker) if t.id != transaction_id),
                updated,
            ])
            position = next(i for i, t in enumerate(ordered) if t.id == transaction_id)
            closed = build_closed_position(ordered[:position], updated)

        tx = self.repo.update_for_user(tx, changes, closed_position=closed, relink=relink)
        self._invalidate(user_id)
        return TransactionsOut.model_validate(tx)

    def delete(self, user_id: str, transaction_id: str) -> None:
        user_id = require_user(user_id)
        if not self.repo.delete_for_user(transaction_id, user_id):
            raise TransactionNotFoundError(f"Transaction {transaction_id} not found")
        self._invalidate(user_id)

    def delete_all_for_ticker(self, user_id: str, ticker: str) -> int:
        user_id = require_user(user_id)
        deleted = self.repo.delete_all_for_ticker(user_id, ticker.strip().upper())
        self._invalidate(user_id)
        return deleted

    def delete_all(self, user_id: str) -> int:
        user_id = require_user(user_id)
        deleted = self.repo.delete_all_for_user(user_id)
        self._invalidate(user_id)
        return deleted

    def list_closed_positions(self, user_id: str, ticker: Optional[str] = None) -> List[ClosedPositionOut]:
        user_id = require_user(user_id)
        return [ClosedPositionOut.model_validate(c) for c in self.closed_repo.list_for_user(user_id, ticker)]

    def delete_closed_positions(self, user_id: str) -> int:
        user_id = require_user(user_id)
        return self.closed_repo.delete_all_for_user(user_id)

    async def import_csv(self, user_id: str, content: bytes) -> int:
        """
        Bulk import. Missing exchange rates are looked up for the transaction
        day; imported SELLs get closed positions in chronological order.
        """
        user_id = require_user(user_id)
        rows = parse_transactions_csv(content)
        if not rows:
            return 0

        for row in rows:
            if row["exchange_rate"] is None:
                if self.fx is None:
                    raise CSVImportError(f"Missing exchange_rate for {row['ticker']} on {row['transaction_date']}")
                row["exchange_rate"] = await self.fx.get_historical_exchange_rate(
                    row["currency"], row["transaction_date"]
                )

        validated = [_plain_values(TransactionIn.model_validate(row).model_dump()) for row in rows]
        inserted = self.repo.import_bulk(user_id, validated)
        logger.info(f"Imported {inserted} transactions for user {user_id}")

        self._book_imported_sells(user_id)
        self._invalidate(user_id)
        return inserted

    def _book_imported_sells(self, user_id: str) -> None:
        transactions = self.repo.list_for_user(user_id)
        booked = {c.sell_transaction_id for c in self.closed_repo.list_for_user(user_id)}

        ordered = sort_for_replay(transactions)
        closed_rows = []
        for i, tx in enumerate(ordered):
            if tx.type != TransactionType.SELL.value or tx.id in booked:
                continue
            prior = [t for t in ordered[:i] if t.ticker == tx.ticker]
            closed = build_closed_position(prior, tx)
            if closed:
                closed_rows.append({**closed, "user_id": user_id, "sell_transaction_id": tx.id})

        if closed_rows:
            self.closed_repo.create_bulk(closed_rows)


async def check_price(market, ticker: str, price: float) -> PriceAnomaly:
    """Compares a hand-entered price with the live quote of the ticker."""
    quote = await market.get_quote(ticker.strip().upper())
    if quote is None:
        return detect_price_multiplier(price, 0)

    anomaly = detect_price_multiplier(price, quote.price, quote.currency)
    if anomaly.detected:
        anomaly.adjusted_price = apply_multiplier(price, anomaly.suggested_multiplier)
    return anomaly
