"""
Generic repository with the read/write helpers every model shares.

Reads return a ``Result`` so callers can tell "no such row" apart from a
driver failure without catching exceptions.
"""

from __future__ import annotations

import logging
from typing import Generic, Type, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from assistline.core.result import (
    DatabaseError,
    RecordNotFound,
    Result,
    failure,
    success,
)
from assistline.domain.base import Base

logger = logging.getLogger(__name__)

T_Model = TypeVar("T_Model", bound=Base)


class BaseRepository(Generic[T_Model]):
    """
    CRUD helpers for one SQLAlchemy model bound to one session.

    Example:
        class DeclineRepository(BaseRepository[RequestDecline]):
            def __init__(self, session: AsyncSession):
                super().__init__(RequestDecline, session)
    """

    def __init__(self, model: Type[T_Model], session: AsyncSession):
        self.model = model
        self.session = session

    @property
    def model_name(self) -> str:
        return self.model.__name__

    async def get(self, id: int) -> Result[T_Model, RecordNotFound | DatabaseError]:
        """
        Get entity by primary key.

        Args:
            id: Primary key value

        Returns:
            Result containing the entity, ``RecordNotFound`` or ``DatabaseError``
        """
        try:
            entity = await self.session.get(self.model, id, populate_existing=True)
        except SQLAlchemyError as e:
            logger.error("Database error in %s.get(id=%s)", self.model_name, id, exc_info=True)
            return failure(DatabaseError(operation=f"{self.model_name}.get", message=str(e), original_exception=e))

        if entity is None:
            return failure(RecordNotFound(entity_type=self.model_name, entity_id=id))
        return success(entity)

    async def add(self, entity: T_Model) -> Result[T_Model, DatabaseError]:
        """Add and flush so the primary key is populated; the caller commits."""
        try:
            self.session.add(entity)
            await self.session.flush()
            await self.session.refresh(entity)
            return success(entity)
        except IntegrityError as e:
            logger.warning("Integrity error in %s.add(): %s", self.model_name, e.orig)
            return failure(
                DatabaseError(
                    operation=f"{self.model_name}.add",
                    message=f"Constraint violation: {e.orig}",
                    original_exception=e,
                )
            )
        except SQLAlchemyError as e:
            logger.error("Database error in %s.add()", self.model_name, exc_info=True)
            return failure(DatabaseError(operation=f"{self.model_name}.add", message=str(e), original_exception=e))
