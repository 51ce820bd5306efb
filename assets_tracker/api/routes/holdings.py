from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from assets_tracker.api.dependencies import get_current_user_id, get_portfolio_service, get_transactions_service
from assets_tracker.core.logger import logger
from assets_tracker.schemas.holdings import ClosedPositionOut, Holding
from assets_tracker.services.portfolio_service import PortfolioService
from assets_tracker.services.transactions_service import TransactionsService

router = APIRouter()


@router.get("/", response_model=List[Holding])
async def get_holdings(
        user_id: str = Depends(get_current_user_id),
        service: PortfolioService = Depends(get_portfolio_service),
):
    """Open positions valued at live prices; a ticker without a quote keeps its cost basis only."""
    try:
        return await service.get_live_holdings(user_id)
    except Exception as e:
        logger.error(f"get_holdings failed: {e}", exc_info=True)
        raise HTTPException(500, detail="Failed to fetch holdings")


@router.get("/closed", response_model=List[ClosedPositionOut])
def get_closed_positions(
        ticker: Optional[str] = None,
        user_id: str = Depends(get_current_user_id),
        service: TransactionsService = Depends(get_transactions_service),
):
    try:
        return service.list_closed_positions(user_id, ticker)
    except Exception as e:
        logger.error(f"get_closed_positions failed: {e}", exc_info=True)
        raise HTTPException(500, detail="Failed to fetch closed positions")


@router.delete("/closed")
def delete_closed_positions(
        user_id: str = Depends(get_current_user_id),
        service: TransactionsService = Depends(get_transactions_service),
):
    try:
        deleted = service.delete_closed_positions(user_id)
        return {"status": "ok", "deleted": deleted}
    except Exception as e:
        logger.error(f"delete_closed_positions failed: {e}", exc_info=True)
        raise HTTPException(500, detail="Failed to delete closed positions")
