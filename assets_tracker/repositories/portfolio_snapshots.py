from typing import List, Optional
from datetime import date

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from assets_tracker.models import PortfolioSnapshot
from assets_tracker.repositories.base import BaseRepository, RepositoryError
import logging

logger = logging.getLogger(__name__)


class PortfolioSnapshotRepository(BaseRepository[PortfolioSnapshot]):
    def __init__(self, db: Session):
        super().__init__(db, PortfolioSnapshot)

    def list_for_user(
        self,
        user_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None
    ) -> List[PortfolioSnapshot]:
        """
        Owner's snapshots in ascending date order.
        """
        try:
            query = self.db.query(PortfolioSnapshot).filter(PortfolioSnapshot.user_id == user_id)

            if date_from:
                query = query.filter(PortfolioSnapshot.snapshot_date >= date_from)
            if date_to:
                query = query.filter(PortfolioSnapshot.snapshot_date <= date_to)

            return query.order_by(PortfolioSnapshot.snapshot_date).all()

        except SQLAlchemyError as e:
            logger.error(f"Error getting portfolio snapshots: {e}")
            raise RepositoryError("Failed to fetch portfolio snapshots") from e

    def upsert(
        self,
        user_id: str,
        snapshot_date: date,
        total_value: float,
        total_invested: float,
        total_profit: float,
    ) -> int:
        """
        One row per owner per day; saving the same day again overwrites it.
        """
        return self.upsert_bulk(
            data=[{
                "user_id": user_id,
                "snapshot_date": snapshot_date,
                "total_value": total_value,
                "total_invested": total_invested,
                "total_profit": total_profit,
            }],
            index_elements=["user_id", "snapshot_date"],
            update_columns=["total_value", "total_invested", "total_profit"],
        )
