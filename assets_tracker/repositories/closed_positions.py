from typing import List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from assets_tracker.models import ClosedPosition
from assets_tracker.repositories.base import BaseRepository, RepositoryError
import logging

logger = logging.getLogger(__name__)


class ClosedPositionRepository(BaseRepository[ClosedPosition]):
    def __init__(self, db: Session):
        super().__init__(db, ClosedPosition)

    def list_for_user(self, user_id: str, ticker: Optional[str] = None) -> List[ClosedPosition]:
        """
        Owner's realized trades, most recently closed first.
        """
        try:
            query = self.db.query(ClosedPosition).filter(ClosedPosition.user_id == user_id)
            if ticker:
                query = query.filter(ClosedPosition.ticker == ticker.upper())
            return query.order_by(ClosedPosition.closed_date.desc()).all()
        except SQLAlchemyError as e:
            logger.error(f"Error listing closed positions for user {user_id}: {e}")
            raise RepositoryError("Failed to fetch closed positions") from e

    def delete_all_for_user(self, user_id: str) -> int:
        return self.delete_by_filters(user_id=user_id)
