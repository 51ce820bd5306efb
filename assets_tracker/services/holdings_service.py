"""
Current positions derived from the transaction ledger.

Holdings are never stored: every call regroups the full transaction list, so
editing or deleting a transaction can not leave a stale aggregate behind.
Cost basis uses the weighted-average model:

    avg_buy_price     = sum(price * qty) / sum(qty)          over BUYs
    avg_exchange_rate = sum(rate * qty)  / sum(qty)          over BUYs
    total_invested    = sum(price * qty * rate) * current / bought
"""
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from assets_tracker.core.logger import logger
from assets_tracker.models.schemas import TransactionType
from assets_tracker.schemas.holdings import Holding
from assets_tracker.schemas.transactions import TransactionsOut

TRANSACTION_COLUMNS = [
    "id", "ticker", "type", "quantity", "price", "currency",
    "exchange_rate", "transaction_date",
]


def normalize_transactions(transactions: Iterable[Any]) -> List[TransactionsOut]:
    """Accepts ORM rows, dicts or TransactionsOut and returns TransactionsOut."""
    return [
        t if isinstance(t, TransactionsOut) else TransactionsOut.model_validate(t)
        for t in transactions
    ]


def transactions_to_frame(transactions: Iterable[Any]) -> pd.DataFrame:
    records = normalize_transactions(transactions)
    if not records:
        return pd.DataFrame(columns=TRANSACTION_COLUMNS)
    df = pd.DataFrame([r.model_dump(include=set(TRANSACTION_COLUMNS)) for r in records])
    df[["quantity", "price", "exchange_rate"]] = df[["quantity", "price", "exchange_rate"]].astype(float)
    return df[TRANSACTION_COLUMNS]


def _aggregate_by_ticker(df: pd.DataFrame) -> pd.DataFrame:
    is_buy = df["type"] == TransactionType.BUY.value
    tx = df.assign(
        bought=df["quantity"].where(is_buy, 0.0),
        sold=df["quantity"].where(~is_buy, 0.0),
        cost_original=(df["quantity"] * df["price"]).where(is_buy, 0.0),
        cost_reporting=(df["quantity"] * df["price"] * df["exchange_rate"]).where(is_buy, 0.0),
        rate_weight=(df["exchange_rate"] * df["quantity"]).where(is_buy, 0.0),
    )
    return (
        tx.groupby("ticker", sort=False)
        .agg(
            total_bought=("bought", "sum"),
            total_sold=("sold", "sum"),
            cost_original=("cost_original", "sum"),
            cost_reporting=("cost_reporting", "sum"),
            rate_weight=("rate_weight", "sum"),
        )
    )


def calculate_holdings(transactions: Iterable[Any]) -> List[Holding]:
    """
    Collapses an owner's transactions (any order) into one Holding per ticker
    with a positive net quantity. Fully sold tickers are omitted.
    """
    records = normalize_transactions(transactions)
    if not records:
        return []

    by_ticker: Dict[str, List[TransactionsOut]] = defaultdict(list)
    for record in records:
        by_ticker[record.ticker].append(record)

    agg = _aggregate_by_ticker(transactions_to_frame(records))

    holdings: List[Holding] = []
    for ticker, row in agg.iterrows():
        total_bought = float(row["total_bought"])
        current_quantity = total_bought - float(row["total_sold"])

        if total_bought <= 0:
            logger.warning(f"Ticker {ticker} has no BUY transactions, holding omitted")
            continue
        if current_quantity <= 0:
            logger.debug(f"Ticker {ticker} is fully closed")
            continue

        first = by_ticker[ticker][0]
        holdings.append(
            Holding(
                ticker=ticker,
                asset_name=first.asset_name or ticker,
                asset_type=first.asset_type,
                total_quantity=current_quantity,
                avg_buy_price=float(row["cost_original"]) / total_bought,
                original_currency=first.currency,
                avg_exchange_rate=float(row["rate_weight"]) / total_bought,
                total_invested=float(row["cost_reporting"]) * (current_quantity / total_bought),
                transactions=sorted(
                    by_ticker[ticker], key=lambda t: t.transaction_date, reverse=True
                ),
            )
        )

    return holdings


def find_holding(holdings: Iterable[Holding], ticker: str) -> Optional[Holding]:
    return next((h for h in holdings if h.ticker == ticker), None)


def calculate_realized_profit(
        avg_buy_price: float,
        avg_buy_rate: float,
        sell_price: float,
        sell_rate: float,
        quantity: float,
) -> float:
    """Sale value minus weighted-average cost, both in reporting currency."""
    cost_basis = quantity * avg_buy_price * avg_buy_rate
    sale_value = quantity * sell_price * sell_rate
    return sale_value - cost_basis


def build_closed_position(
        existing_transactions: Iterable[Any],
        sell: Any,
) -> Optional[Dict[str, Any]]:
    """
    Ledger row for a SELL, priced against the holding formed by the
    transactions recorded before it. Returns None (and warns) when there is
    no such holding; the SELL itself is still recorded by the caller.
    """
    holding = find_holding(calculate_holdings(existing_transactions), sell.ticker)
    if holding is None:
        logger.warning(
            f"SELL of {sell.quantity} {sell.ticker} has no prior holding, realized profit not recorded"
        )
        return None

    quantity = float(sell.quantity)
    sell_price = float(sell.price)
    sell_rate = float(sell.exchange_rate)

    return {
        "ticker": sell.ticker,
        "isin": getattr(sell, "isin", None),
        "asset_type": getattr(sell.asset_type, "value", sell.asset_type),
        "asset_name": getattr(sell, "asset_name", None),
        "quantity_sold": quantity,
        "avg_buy_price": holding.avg_buy_price,
        "avg_buy_rate": holding.avg_exchange_rate,
        "sell_price": sell_price,
        "sell_rate": sell_rate,
        "realized_profit": calculate_realized_profit(
            holding.avg_buy_price,
            holding.avg_exchange_rate,
            sell_price,
            sell_rate,
            quantity,
        ),
        "broker": getattr(sell, "broker", None),
        "closed_date": sell.transaction_date,
    }


def update_holding_with_live_data(
        holding: Holding,
        current_price: float,
        current_exchange_rate: float,
        day_change_percent: float,
) -> Holding:
    """
    Returns a copy of the holding valued at the live price and FX rate.
    The input holding is left untouched.
    """
    current_value = holding.total_quantity * current_price * current_exchange_rate
    unrealized_return = current_value - holding.total_invested
    unrealized_return_percent = (
        unrealized_return / holding.total_invested * 100
        if holding.total_invested > 0
        else 0.0
    )

    return holding.model_copy(
        update={
            "current_price": current_price,
            "current_exchange_rate": current_exchange_rate,
            "current_value": current_value,
            "day_change_percent": day_change_percent,
            "unrealized_return": unrealized_return,
            "unrealized_return_percent": unrealized_return_percent,
            "last_updated": datetime.utcnow(),
        }
    )
