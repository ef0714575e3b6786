"""
Base repository class for the data access layer.

Repositories keep query logic out of services and give tests a single seam
to mock.

Example:
    class MarketMatchRepository(BaseRepository[MarketMatch]):
        def get_by_match_id(self, match_id: str) -> Optional[MarketMatch]:
            return self.where_first(MarketMatch.match_id == match_id)
"""
from typing import TypeVar, Generic, Type, Optional, List
from sqlalchemy import func
from sqlalchemy.orm import Query, Session

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """
    Common data access helpers bound to one model.

    Attributes:
        model_type: The SQLAlchemy model class this repository manages
        db: The database session
    """

    def __init__(self, model_type: Type[T], db: Session):
        self.model_type = model_type
        self.db = db

    # ========================================================================
    # Reads
    # ========================================================================

    def find_by_id(self, id: str) -> Optional[T]:
        """Find a single record by primary key."""
        return self.db.query(self.model_type).filter(self.model_type.id == id).first()

    def query(self) -> Query:
        """Get a new query object for this model."""
        return self.db.query(self.model_type)

    def where(self, *criterion) -> List[T]:
        """Filter records using SQLAlchemy expressions."""
        return self.db.query(self.model_type).filter(*criterion).all()

    def where_first(self, *criterion) -> Optional[T]:
        """Filter records using SQLAlchemy expressions and return the first match."""
        return self.db.query(self.model_type).filter(*criterion).first()

    def count(self, *criterion) -> int:
        """Count records matching optional criterion."""
        query = self.db.query(func.count(self.model_type.id))
        if criterion:
            query = query.filter(*criterion)
        return query.scalar() or 0

    # ========================================================================
    # Writes
    # ========================================================================

    def add(self, instance: T) -> T:
        """Stage a new record (not yet committed)."""
        self.db.add(instance)
        return instance

    def save(self) -> None:
        """Commit pending changes to the database."""
        self.db.commit()

    def rollback(self) -> None:
        """Rollback pending changes."""
        self.db.rollback()
