import asyncio

from assets_tracker.core.celery_app import celery
from assets_tracker.core.db import SessionLocal
from assets_tracker.core.logger import logger
from assets_tracker.managers.cache_manager import CacheManager
from assets_tracker.repositories.factory import RepositoryFactory
from assets_tracker.services.market_data import MarketDataService
from assets_tracker.services.portfolio_service import PortfolioService


async def save_snapshots_for_all_users(factory: RepositoryFactory, market, cache: CacheManager) -> int:
    """One snapshot per owner with transactions; a failing owner does not stop the rest."""
    service = PortfolioService(factory, market, cache)
    saved = 0
    for user_id in factory.get_transaction_repository().list_user_ids():
        try:
            await service.get_summary(user_id, save_snapshot=True)
            saved += 1
        except Exception as e:
            logger.error(f"Snapshot for user {user_id} failed: {e}", exc_info=True)
    return saved


@celery.task(name="assets_tracker.tasks.snapshots.save_daily_snapshots_task")
def save_daily_snapshots_task():
    logger.info("Starting scheduled portfolio snapshots.")

    db = SessionLocal()

    try:
        saved = asyncio.run(
            save_snapshots_for_all_users(RepositoryFactory(db), MarketDataService(), CacheManager(prefix="portfolio"))
        )
        logger.info(f"Portfolio snapshots complete: {saved} users processed.")
    except Exception as e:
        logger.error(f"Portfolio snapshots failed: {e}", exc_info=True)
    finally:
        db.close()
