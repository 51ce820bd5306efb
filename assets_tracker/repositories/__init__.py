from assets_tracker.repositories.base import BaseRepository, RepositoryError
from assets_tracker.repositories.closed_positions import ClosedPositionRepository
from assets_tracker.repositories.portfolio_snapshots import PortfolioSnapshotRepository
from assets_tracker.repositories.transactions import TransactionRepository
from assets_tracker.repositories.factory import RepositoryFactory

__all__ = [
    "BaseRepository",
    "RepositoryError",
    "ClosedPositionRepository",
    "PortfolioSnapshotRepository",
    "TransactionRepository",
    "RepositoryFactory",
]
