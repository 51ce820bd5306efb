from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from assets_tracker.api.dependencies import (
    get_current_user_id,
    get_factory,
    get_portfolio_service,
    get_refresh_cooldown,
)
from assets_tracker.core.config import settings
from assets_tracker.core.logger import logger
from assets_tracker.managers.refresh_cooldown import RefreshCooldown
from assets_tracker.repositories.factory import RepositoryFactory
from assets_tracker.schemas.portfolio import (
    BenchmarkResponse,
    PortfolioHistoryResponse,
    PortfolioSnapshotOut,
    PortfolioSummary,
    RefreshStatus,
)
from assets_tracker.services.portfolio_service import PortfolioService, save_daily_snapshot

router = APIRouter()


@router.get("/summary", response_model=PortfolioSummary)
async def get_portfolio_summary(
        user_id: str = Depends(get_current_user_id),
        service: PortfolioService = Depends(get_portfolio_service),
):
    try:
        return await service.get_summary(user_id)
    except Exception as e:
        logger.error(f"get_portfolio_summary failed: {e}", exc_info=True)
        raise HTTPException(500, detail="Failed to fetch portfolio summary")


@router.get("/history", response_model=PortfolioHistoryResponse)
async def get_portfolio_history(
        force_refresh: bool = Query(False, description="Ignore the cached series and refetch every price"),
        user_id: str = Depends(get_current_user_id),
        service: PortfolioService = Depends(get_portfolio_service),
):
    try:
        history = await service.get_history(user_id, force_refresh=force_refresh)
        return PortfolioHistoryResponse(currency=settings.REPORTING_CURRENCY, history=history)
    except Exception as e:
        logger.error(f"get_portfolio_history failed: {e}", exc_info=True)
        raise HTTPException(500, detail="Failed to fetch portfolio history")


@router.get("/benchmark", response_model=BenchmarkResponse)
async def get_benchmark(
        force_refresh: bool = False,
        user_id: str = Depends(get_current_user_id),
        service: PortfolioService = Depends(get_portfolio_service),
):
    try:
        history = await service.get_benchmark(user_id, force_refresh=force_refresh)
        return BenchmarkResponse(
            ticker=settings.BENCHMARK_TICKER,
            currency=settings.REPORTING_CURRENCY,
            history=history,
        )
    except Exception as e:
        logger.error(f"get_benchmark failed: {e}", exc_info=True)
        raise HTTPException(500, detail="Failed to fetch benchmark")


@router.post("/refresh", response_model=RefreshStatus)
def refresh_prices(
        user_id: str = Depends(get_current_user_id),
        service: PortfolioService = Depends(get_portfolio_service),
        cooldown: RefreshCooldown = Depends(get_refresh_cooldown),
):
    """Drops cached live quotes; allowed once per cooldown window."""
    remaining = cooldown.remaining(user_id)
    if remaining > 0:
        raise HTTPException(
            429,
            detail=f"Refresh available in {remaining} seconds",
            headers={"Retry-After": str(remaining)},
        )
    try:
        service.clear_quotes()
        cooldown.trigger(user_id)
        return RefreshStatus(refreshed=True, cooldown_remaining=cooldown.remaining(user_id))
    except Exception as e:
        logger.error(f"refresh_prices failed: {e}", exc_info=True)
        raise HTTPException(500, detail="Failed to refresh prices")


@router.get("/snapshots", response_model=List[PortfolioSnapshotOut])
def get_snapshots(
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        user_id: str = Depends(get_current_user_id),
        factory: RepositoryFactory = Depends(get_factory),
):
    try:
        rows = factory.get_snapshot_repository().list_for_user(user_id, date_from, date_to)
        return [PortfolioSnapshotOut.model_validate(r) for r in rows]
    except Exception as e:
        logger.error(f"get_snapshots failed: {e}", exc_info=True)
        raise HTTPException(500, detail="Failed to fetch portfolio snapshots")


@router.post("/snapshots")
async def save_snapshot(
        user_id: str = Depends(get_current_user_id),
        factory: RepositoryFactory = Depends(get_factory),
        service: PortfolioService = Depends(get_portfolio_service),
):
    try:
        summary = await service.get_summary(user_id, save_snapshot=False)
        saved = save_daily_snapshot(factory, user_id, summary)
        return {"status": "ok" if saved else "skipped", "total_value": summary.total_value}
    except Exception as e:
        logger.error(f"save_snapshot failed: {e}", exc_info=True)
        raise HTTPException(500, detail="Failed to save portfolio snapshot")
