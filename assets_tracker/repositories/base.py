from typing import Generic, TypeVar, Type, List, Optional, Dict, Any, Union
from slugify import slugify

import pandas as pd
from sqlalchemy.exc import SQLAlchemyError
from assets_tracker.core.db import Base
from assets_tracker.core.logger import logger
from sqlalchemy.orm import Session
from sqlalchemy.dialects.postgresql import insert

T = TypeVar("T", bound=Base)

class RepositoryError(Exception):
    """Custom exception for repository operations"""
    pass


class BaseRepository(Generic[T]):
    def __init__(self, db: Session, model: Type[T]):
        self.db = db
        self.model = model

    def create(self, obj_in: Dict[str, Any]) -> T:
        """Create a new record"""
        try:
            db_obj = self.model(**obj_in)
            self.db.add(db_obj)
            self.db.commit()
            self.db.refresh(db_obj)
            return db_obj
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error creating {self.model.__name__}: {e}")
            raise RepositoryError(f"Failed to create {self.model.__name__}") from e

    def create_bulk(self, rows: List[Dict[str, Any]]) -> int:
        """Create many records in a single commit"""
        rows = self._validate_data(rows)
        if not rows:
            return 0
        try:
            self.db.add_all([self.model(**row) for row in rows])
            self.db.commit()
            return len(rows)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error bulk creating {self.model.__name__}: {e}")
            raise RepositoryError(f"Failed to bulk create {self.model.__name__}") from e

    def delete(self, db_obj: T) -> bool:
        """Delete a loaded record"""
        try:
            self.db.delete(db_obj)
            self.db.commit()
            return True
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error deleting {self.model.__name__}: {e}")
            raise RepositoryError(f"Failed to delete {self.model.__name__}") from e

    def _filtered(self, filters: Dict[str, Any]):
        """Query over the model with equality filters on known columns"""
        query = self.db.query(self.model)
        for key, value in filters.items():
            if hasattr(self.model, key):
                query = query.filter(getattr(self.model, key) == value)
        return query

    def delete_by_filters(self, **filters) -> int:
        """Delete all records matching the filter criteria"""
        try:
            deleted = self._filtered(filters).delete(synchronize_session=False)
            self.db.commit()
            return int(deleted or 0)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error deleting {self.model.__name__} by filters {filters}: {e}")
            raise RepositoryError(f"Failed to delete {self.model.__name__}") from e

    def count(self, **filters) -> int:
        """Count records matching the filter criteria"""
        try:
            return self._filtered(filters).count()
        except SQLAlchemyError as e:
            logger.error(f"Error counting {self.model.__name__}: {e}")
            raise RepositoryError(f"Failed to count {self.model.__name__}") from e

    @staticmethod
    def _snakeify(s: str) -> str:
        if not isinstance(s, str):
            return s
        s = s.strip()
        return slugify(s, separator="_", lowercase=True)

    @staticmethod
    def normalize_header(
            value: Optional[Union[str, List[str], pd.DataFrame, List[Dict[str, Any]]]]
    ) -> Optional[Union[str, List[str], pd.DataFrame, List[Dict[str, Any]]]]:
        if value is None:
            return None

        if isinstance(value, str):
            return BaseRepository._snakeify(value)

        if isinstance(value, list):
            if value and isinstance(value[0], dict):
                return [{BaseRepository._snakeify(k): v for k, v in rec.items()} for rec in value]
            return [BaseRepository._snakeify(v) for v in value]

        if isinstance(value, pd.DataFrame):
            df = value.copy()
            df.columns = [BaseRepository._snakeify(c) for c in df.columns]
            return df

        raise TypeError(
            f"Unsupported type for normalize_header: {type(value).__name__}. "
            "Expected str, list, pandas.DataFrame, or list of dictionaries."
        )

    def _validate_data(self, rows: List[Dict]) -> List[Dict]:
        """Normalizes headers and drops fields the repository model does not have."""
        if not rows:
            return []
        rows = self.normalize_header(rows)

        model_columns = set(column.name for column in self.model.__table__.columns)

        validated_rows = []
        for i, row in enumerate(rows):
            if not isinstance(row, dict):
                logger.warning(f"Row {i} is not a dictionary, skipping")
                continue

            valid_row = {}
            for key, value in row.items():
                if key in model_columns:
                    valid_row[key] = value
                else:
                    logger.debug(f"Row {i}: ignoring field '{key}' not in model {self.model.__name__}")

            if valid_row:
                validated_rows.append(valid_row)
            else:
                logger.warning(f"Row {i} has no valid fields for model {self.model.__name__}")

        return validated_rows

    def upsert_bulk(
            self,
            data: Union[List[Dict], pd.DataFrame],
            index_elements: Optional[List[str]] = None,
            update_columns: Optional[List[str]] = None,
    ) -> int:
        """Bulk upsert records; conflicting rows are overwritten when update_columns is given."""
        if data is None or len(data) == 0:
            return 0

        try:
            if isinstance(data, pd.DataFrame):
                data = data.to_dict(orient="records")

            data = self._validate_data(data)

            if not data:
                return 0

            stmt = insert(self.model).values(data)
            if index_elements and update_columns:
                stmt = stmt.on_conflict_do_update(
                    index_elements=index_elements,
                    set_={col: stmt.excluded[col] for col in update_columns},
                )
            elif index_elements:
                stmt = stmt.on_conflict_do_nothing(index_elements=index_elements)

            result = self.db.execute(stmt)
            self.db.commit()

            return int(result.rowcount or 0)

        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error upserting {self.model.__name__}: {e}")
            raise RepositoryError(f"Failed to upsert {self.model.__name__}") from e
