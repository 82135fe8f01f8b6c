import logging
from typing import Any, AsyncIterator, Dict, Generic, List, Optional, Sequence, Type, TypeVar, Union
from uuid import UUID

from sqlmodel import SQLModel, Session, select, delete, func
from sqlalchemy.exc import SQLAlchemyError

from ....core.exceptions import DatabaseError, NotFoundError

logger = logging.getLogger(__name__)

ModelType = TypeVar("ModelType", bound=SQLModel)


class BaseRepository(Generic[ModelType]):
    """
    Base repository class with common CRUD operations.

    Writes are flushed, never committed: the owning service decides when a
    unit of work becomes visible.
    """

    def __init__(self, model: Type[ModelType], session: Session):
        self.model = model
        self.session = session

    def _apply_filters(self, statement, filters: Dict[str, Any]):
        for field, value in filters.items():
            if hasattr(self.model, field) and value is not None:
                statement = statement.where(getattr(self.model, field) == value)
        return statement

    async def create(self, obj_in: Union[ModelType, Dict[str, Any]]) -> ModelType:
        """
        Create a new record.

        Args:
            obj_in: Model instance or dictionary with field values

        Returns:
            Created model instance

        Raises:
            DatabaseError: If creation fails
        """
        try:
            if isinstance(obj_in, dict):
                db_obj = self.model(**obj_in)
            else:
                db_obj = obj_in

            self.session.add(db_obj)
            self.session.flush()
            self.session.refresh(db_obj)

            logger.debug(f"Created {self.model.__name__} with ID: {db_obj.id}")
            return db_obj

        except SQLAlchemyError as e:
            logger.error(f"Failed to create {self.model.__name__}: {e}")
            raise DatabaseError(f"Failed to create {self.model.__name__}: {str(e)}")

    async def bulk_create(self, objects: Sequence[ModelType]) -> int:
        """Insert many rows in one flush. Returns the number of rows added."""
        if not objects:
            return 0
        try:
            self.session.add_all(objects)
            self.session.flush()
            return len(objects)

        except SQLAlchemyError as e:
            logger.error(f"Failed to bulk create {self.model.__name__}: {e}")
            raise DatabaseError(f"Failed to insert {len(objects)} {self.model.__name__} rows: {str(e)}")

    async def get(self, id: UUID) -> Optional[ModelType]:
        """Get a record by ID, or None if not found."""
        try:
            statement = select(self.model).where(self.model.id == id)
            return self.session.exec(statement).first()

        except SQLAlchemyError as e:
            logger.error(f"Failed to get {self.model.__name__} by ID {id}: {e}")
            raise DatabaseError(f"Failed to get {self.model.__name__}: {str(e)}")

    async def get_or_404(self, id: UUID) -> ModelType:
        """
        Get a record by ID or raise 404 error.

        Raises:
            NotFoundError: If record not found
        """
        obj = await self.get(id)
        if not obj:
            raise NotFoundError(self.model.__name__, id)
        return obj

    async def iter_pages(
        self,
        statement,
        page_size: int = 1000,
    ) -> AsyncIterator[List[ModelType]]:
        """
        Yield successive pages of ``statement`` until a short page comes back.

        The statement must carry a deterministic ORDER BY.
        """
        page = 0
        while True:
            try:
                rows = list(self.session.exec(statement.offset(page * page_size).limit(page_size)).all())
            except SQLAlchemyError as e:
                logger.error(f"Failed to read page {page} of {self.model.__name__}: {e}")
                raise DatabaseError(f"Failed to read {self.model.__name__} page {page}: {str(e)}")

            if rows:
                yield rows
            if len(rows) < page_size:
                break
            page += 1

    async def delete(self, id: UUID) -> bool:
        """Delete a record. Returns True if a row was removed."""
        try:
            result = self.session.exec(delete(self.model).where(self.model.id == id))
            return result.rowcount > 0

        except SQLAlchemyError as e:
            logger.error(f"Failed to delete {self.model.__name__} {id}: {e}")
            raise DatabaseError(f"Failed to delete {self.model.__name__}: {str(e)}")

    async def delete_where(self, **filters) -> int:
        """Delete every row matching the equality filters. Returns the row count."""
        if not filters:
            raise DatabaseError(f"Refusing to delete all {self.model.__name__} rows without a filter")
        try:
            statement = delete(self.model)
            for field, value in filters.items():
                statement = statement.where(getattr(self.model, field) == value)
            result = self.session.exec(statement)
            return result.rowcount or 0

        except SQLAlchemyError as e:
            logger.error(f"Failed to delete {self.model.__name__} rows {filters}: {e}")
            raise DatabaseError(f"Failed to delete {self.model.__name__} rows: {str(e)}")

    async def count(self, **filters) -> int:
        """Count records with optional filtering."""
        try:
            statement = self._apply_filters(select(func.count()).select_from(self.model), filters)
            return self.session.exec(statement).one()

        except SQLAlchemyError as e:
            logger.error(f"Failed to count {self.model.__name__}: {e}")
            raise DatabaseError(f"Failed to count {self.model.__name__}: {str(e)}")
