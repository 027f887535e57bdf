"""
Base Repository - Shared SQLAlchemy data access helpers.

Provides query helpers and transaction handling for the engine's
repositories. Storage failures surface as RepositoryError.
"""
from typing import Callable, Generic, List, Optional, Type, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from cost_engine.domain.exceptions import RepositoryError
from cost_engine.models import Base

T = TypeVar('T', bound=Base)


class BaseRepository(Generic[T]):
    """
    Base repository over one SQLAlchemy model.

    Type Parameters:
        T: The SQLAlchemy model type this repository manages
    """

    def __init__(self, session: Session, model_class: Type[T]):
        """
        Initialize the repository.

        Args:
            session: SQLAlchemy database session
            model_class: The model class this repository manages
        """
        self.session = session
        self.model_class = model_class

    def exists(self, **criteria) -> bool:
        """
        Check if a record matching the criteria exists.

        Args:
            **criteria: Field-value pairs to match

        Returns:
            True if a record exists, False otherwise
        """
        query = self.session.query(self.model_class)
        for field, value in criteria.items():
            query = query.filter(getattr(self.model_class, field) == value)
        return query.first() is not None

    def count(self, **criteria) -> int:
        """Count records matching the criteria."""
        query = self.session.query(self.model_class)
        for field, value in criteria.items():
            query = query.filter(getattr(self.model_class, field) == value)
        return query.count()

    def _first(self, **criteria) -> Optional[T]:
        """First matching row, refreshed from the database."""
        query = self.session.query(self.model_class).populate_existing()
        for field, value in criteria.items():
            query = query.filter(getattr(self.model_class, field) == value)
        return query.first()

    def _read(self, operation: str, func: Callable[[], T]) -> T:
        try:
            return func()
        except SQLAlchemyError as e:
            raise RepositoryError(operation, str(e)) from e

    def _commit(self, operation: str, on_conflict: Optional[Callable[[], Exception]] = None) -> None:
        """
        Commit the current transaction.

        Args:
            operation: Name used in error messages
            on_conflict: Builds the exception raised when a unique
                constraint rejects the write

        Raises:
            The on_conflict exception, or RepositoryError
        """
        try:
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            if on_conflict is not None:
                raise on_conflict() from e
            raise RepositoryError(operation, str(e.orig)) from e
        except SQLAlchemyError as e:
            self.session.rollback()
            raise RepositoryError(operation, str(e)) from e

    def all_values(self, column: str) -> List:
        """Distinct values of one column, sorted."""
        attribute = getattr(self.model_class, column)
        rows = self.session.query(attribute).distinct().order_by(attribute).all()
        return [row[0] for row in rows]
