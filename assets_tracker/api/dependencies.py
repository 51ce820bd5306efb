from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from assets_tracker.core.db import get_db
from assets_tracker.core.exceptions import require_user
from assets_tracker.managers.cache_manager import CacheManager
from assets_tracker.managers.refresh_cooldown import RefreshCooldown
from assets_tracker.repositories.factory import RepositoryFactory
from assets_tracker.services.fx_rates_service import FXRateService
from assets_tracker.services.market_data import MarketDataService
from assets_tracker.services.portfolio_service import PortfolioService
from assets_tracker.services.transactions_service import TransactionsService


def get_factory(db: Session = Depends(get_db)) -> RepositoryFactory:
    return RepositoryFactory(db)


def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    return require_user((x_user_id or "").strip())


@lru_cache
def get_market_data() -> MarketDataService:
    return MarketDataService()


def get_portfolio_cache() -> CacheManager:
    return CacheManager(prefix="portfolio")


def get_fx_service(market: MarketDataService = Depends(get_market_data)) -> FXRateService:
    return FXRateService(market)


def get_transactions_service(
        factory: RepositoryFactory = Depends(get_factory),
        cache: CacheManager = Depends(get_portfolio_cache),
        fx: FXRateService = Depends(get_fx_service),
) -> TransactionsService:
    return TransactionsService(factory, cache, fx)


def get_portfolio_service(
        factory: RepositoryFactory = Depends(get_factory),
        market: MarketDataService = Depends(get_market_data),
        cache: CacheManager = Depends(get_portfolio_cache),
        fx: FXRateService = Depends(get_fx_service),
) -> PortfolioService:
    return PortfolioService(factory, market, cache, fx)


def get_refresh_cooldown(cache: CacheManager = Depends(get_portfolio_cache)) -> RefreshCooldown:
    return RefreshCooldown(cache)
