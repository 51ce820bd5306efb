from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from assets_tracker.api.dependencies import get_current_user_id, get_market_data
from assets_tracker.core.logger import logger
from assets_tracker.schemas.market import AssetSearchResult
from assets_tracker.services.market_data import MarketDataService

router = APIRouter()


@router.get("/search", response_model=List[AssetSearchResult])
async def search_assets(
        q: str = Query(..., description="Ticker, company name or ISIN"),
        user_id: str = Depends(get_current_user_id),
        market: MarketDataService = Depends(get_market_data),
):
    try:
        return await market.search_assets(q)
    except Exception as e:
        logger.error(f"search_assets failed for '{q}': {e}", exc_info=True)
        raise HTTPException(500, detail="Failed to search assets")
