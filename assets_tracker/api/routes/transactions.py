from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from assets_tracker.api.dependencies import get_current_user_id, get_market_data, get_transactions_service
from assets_tracker.core.exceptions import TransactionNotFoundError
from assets_tracker.core.logger import logger
from assets_tracker.models.schemas import TransactionType
from assets_tracker.schemas.transactions import PriceAnomaly, TransactionIn, TransactionsOut, TransactionUpdate
from assets_tracker.services.market_data import MarketDataService
from assets_tracker.services.transactions_service import TransactionsService, check_price

router = APIRouter()


@router.get("/", response_model=List[TransactionsOut])
def list_transactions(
        ticker: Optional[str] = None,
        type: Optional[TransactionType] = Query(default=None, description="BUY/SELL"),
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        user_id: str = Depends(get_current_user_id),
        service: TransactionsService = Depends(get_transactions_service),
):
    """Owner's transactions, newest first, filtered by optional parameters."""
    try:
        return service.list(
            user_id,
            ticker=ticker,
            type=type.value if type else None,
            date_from=date_from,
            date_to=date_to,
        )
    except Exception as e:
        logger.error(f"list_transactions failed: {e}", exc_info=True)
        raise HTTPException(500, detail="Failed to list transactions")


@router.post("/", response_model=TransactionsOut, status_code=201)
def add_transaction(
        data: TransactionIn,
        user_id: str = Depends(get_current_user_id),
        service: TransactionsService = Depends(get_transactions_service),
):
    try:
        return service.add(user_id, data)
    except Exception as e:
        logger.error(f"add_transaction failed: {e}", exc_info=True)
        raise HTTPException(500, detail="Failed to add transaction")


@router.get("/price-check", response_model=PriceAnomaly)
async def price_check(
        ticker: str,
        price: float = Query(gt=0),
        user_id: str = Depends(get_current_user_id),
        market: MarketDataService = Depends(get_market_data),
):
    """Flags a hand-entered price that looks off by x100 or by a split ratio."""
    try:
        return await check_price(market, ticker, price)
    except Exception as e:
        logger.error(f"price_check failed for {ticker}: {e}", exc_info=True)
        raise HTTPException(500, detail="Failed to check price")


@router.patch("/{transaction_id}", response_model=TransactionsOut)
def update_transaction(
        transaction_id: str,
        patch: TransactionUpdate,
        user_id: str = Depends(get_current_user_id),
        service: TransactionsService = Depends(get_transactions_service),
):
    try:
        return service.update(user_id, transaction_id, patch)
    except TransactionNotFoundError as e:
        raise HTTPException(404, detail=str(e))
    except Exception as e:
        logger.error(f"update_transaction failed: {e}", exc_info=True)
        raise HTTPException(500, detail="Failed to update transaction")


@router.delete("/ticker/{ticker}")
def delete_ticker_transactions(
        ticker: str,
        user_id: str = Depends(get_current_user_id),
        service: TransactionsService = Depends(get_transactions_service),
):
    try:
        deleted = service.delete_all_for_ticker(user_id, ticker)
        return {"status": "ok", "deleted": deleted}
    except Exception as e:
        logger.error(f"delete_ticker_transactions failed for {ticker}: {e}", exc_info=True)
        raise HTTPException(500, detail="Failed to delete transactions")


@router.delete("/{transaction_id}", status_code=204)
def delete_transaction(
        transaction_id: str,
        user_id: str = Depends(get_current_user_id),
        service: TransactionsService = Depends(get_transactions_service),
):
    try:
        service.delete(user_id, transaction_id)
    except TransactionNotFoundError as e:
        raise HTTPException(404, detail=str(e))
    except Exception as e:
        logger.error(f"delete_transaction failed: {e}", exc_info=True)
        raise HTTPException(500, detail="Failed to delete transaction")


@router.delete("/")
def delete_all_transactions(
        user_id: str = Depends(get_current_user_id),
        service: TransactionsService = Depends(get_transactions_service),
):
    try:
        deleted = service.delete_all(user_id)
        return {"status": "ok", "deleted": deleted}
    except Exception as e:
        logger.error(f"delete_all_transactions failed: {e}", exc_info=True)
        raise HTTPException(500, detail="Failed to delete transactions")
