from typing import List, Dict, Optional, Union
from datetime import date

import pandas as pd
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from assets_tracker.models import Transaction, ClosedPosition, PortfolioSnapshot
from assets_tracker.repositories.base import BaseRepository, RepositoryError
import logging

logger = logging.getLogger(__name__)


class TransactionRepository(BaseRepository[Transaction]):
    def __init__(self, db: Session):
        super().__init__(db, Transaction)

    def list_for_user(
            self,
            user_id: str,
            ticker: Optional[str] = None,
            type: Optional[str] = None,
            date_from: Optional[date] = None,
            date_to: Optional[date] = None,
    ) -> List[Transaction]:
        """
        Owner's transactions, newest first.
        """
        try:
            query = self.db.query(Transaction).filter(Transaction.user_id == user_id)

            if ticker:
                query = query.filter(Transaction.ticker == ticker.upper())
            if type:
                query = query.filter(Transaction.type == type.upper())
            if date_from:
                query = query.filter(Transaction.transaction_date >= date_from)
            if date_to:
                query = query.filter(Transaction.transaction_date <= date_to)

            return query.order_by(
                Transaction.transaction_date.desc(),
                Transaction.created_at.desc(),
            ).all()

        except SQLAlchemyError as e:
            logger.error(f"Error listing transactions for user {user_id}: {e}")
            raise RepositoryError("Failed to fetch transactions") from e

    def get_for_user(self, id_: str, user_id: str) -> Optional[Transaction]:
        try:
            return (
                self.db.query(Transaction)
                .filter(Transaction.id == id_, Transaction.user_id == user_id)
                .first()
            )
        except SQLAlchemyError as e:
            logger.error(f"Error getting transaction {id_}: {e}")
            raise RepositoryError("Failed to get transaction") from e

    def update_for_user(
            self,
            db_obj: Transaction,
            obj_in: Dict,
            closed_position: Optional[Dict] = None,
            relink: bool = True,
    ) -> Transaction:
        """
        Applies field changes and replaces the linked closed position in one
        commit. closed_position=None removes it; relink=False leaves it as is.
        """
        try:
            for field, value in obj_in.items():
                if hasattr(db_obj, field):
                    setattr(db_obj, field, value)

            if relink:
                if db_obj.closed_position is not None:
                    db_obj.closed_position = None
                    # old row must be gone before the unique sell_transaction_id is reused
                    self.db.flush()
                if closed_position:
                    db_obj.closed_position = ClosedPosition(**closed_position, user_id=db_obj.user_id)

            self.db.commit()
            self.db.refresh(db_obj)
            return db_obj
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error updating transaction {db_obj.id}: {e}")
            raise RepositoryError("Failed to update transaction") from e

    def delete_for_user(self, id_: str, user_id: str) -> bool:
        """
        Deletes one transaction; its closed position goes with it. False when
        the owner has no such transaction.
        """
        db_obj = self.get_for_user(id_, user_id)
        if db_obj is None:
            return False
        return self.delete(db_obj)

    def list_user_ids(self) -> List[str]:
        """
        Owners that have at least one transaction.
        """
        try:
            result = (
                self.db.query(Transaction.user_id)
                .distinct()
                .order_by(Transaction.user_id)
                .all()
            )
            return [row.user_id for row in result]

        except SQLAlchemyError as e:
            logger.error(f"Error getting transaction owners: {e}")
            raise RepositoryError("Failed to get transaction owners") from e

    def delete_all_for_ticker(self, user_id: str, ticker: str) -> int:
        """
        Removes every transaction of a ticker together with its closed positions.
        """
        try:
            self.db.query(ClosedPosition).filter(
                ClosedPosition.user_id == user_id,
                ClosedPosition.ticker == ticker,
            ).delete(synchronize_session=False)
            deleted = self.db.query(Transaction).filter(
                Transaction.user_id == user_id,
                Transaction.ticker == ticker,
            ).delete(synchronize_session=False)
            self.db.commit()
            return int(deleted or 0)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error deleting transactions of {ticker} for user {user_id}: {e}")
            raise RepositoryError("Failed to delete transactions") from e

    def delete_all_for_user(self, user_id: str) -> int:
        """
        Wipes the owner's ledger: closed positions, transactions and snapshots.
        """
        try:
            self.db.query(ClosedPosition).filter(
                ClosedPosition.user_id == user_id
            ).delete(synchronize_session=False)
            deleted = self.db.query(Transaction).filter(
                Transaction.user_id == user_id
            ).delete(synchronize_session=False)
            self.db.query(PortfolioSnapshot).filter(
                PortfolioSnapshot.user_id == user_id
            ).delete(synchronize_session=False)
            self.db.commit()
            return int(deleted or 0)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error deleting all transactions for user {user_id}: {e}")
            raise RepositoryError("Failed to delete all transactions") from e

    def import_bulk(self, user_id: str, data: Union[List[Dict], pd.DataFrame]) -> int:
        """
        Bulk insert of imported rows, all owned by user_id.
        """
        if isinstance(data, pd.DataFrame):
            data = data.to_dict(orient="records")
        rows = [{**row, "user_id": user_id} for row in data]
        return self.create_bulk(rows)
