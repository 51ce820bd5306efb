from typing import Type, TypeVar, Dict
from sqlalchemy.orm import Session
from assets_tracker.repositories.base import BaseRepository
from assets_tracker.repositories.closed_positions import ClosedPositionRepository
from assets_tracker.repositories.portfolio_snapshots import PortfolioSnapshotRepository
from assets_tracker.repositories.transactions import TransactionRepository

T = TypeVar('T', bound=BaseRepository)


class RepositoryFactory:
    """
    Creates repository instances bound to one database session.
    """

    _repository_mapping: Dict[str, Type[BaseRepository]] = {
        'transactions': TransactionRepository,
        'closed_positions': ClosedPositionRepository,
        'portfolio_snapshots': PortfolioSnapshotRepository,
    }

    def __init__(self, db: Session):
        self.db = db
        self._instances: Dict[str, BaseRepository] = {}

    def get_repository(self, repository_name: str) -> BaseRepository:
        """
        Get a repository instance by name. Creates a singleton instance per factory.

        Raises:
            ValueError: If repository name is not recognized
        """
        if repository_name not in self._repository_mapping:
            available = ', '.join(self._repository_mapping.keys())
            raise ValueError(f"Unknown repository '{repository_name}'. Available: {available}")

        if repository_name not in self._instances:
            repository_class = self._repository_mapping[repository_name]
            self._instances[repository_name] = repository_class(self.db)

        return self._instances[repository_name]

    def get_transaction_repository(self) -> TransactionRepository:
        return self.get_repository('transactions')

    def get_closed_position_repository(self) -> ClosedPositionRepository:
        return self.get_repository('closed_positions')

    def get_snapshot_repository(self) -> PortfolioSnapshotRepository:
        return self.get_repository('portfolio_snapshots')
