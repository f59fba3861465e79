"""Base repository pattern for data access.

This module provides a base repository class for implementing the
repository pattern across modules, separating data access from
business logic.
"""

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from src.shared.database import Base

# Generic type for SQLAlchemy models
ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(ABC, Generic[ModelT]):
    """Base repository providing common CRUD operations.

    Module-specific repositories inherit from this class and
    implement ``_model_class``.
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: SQLAlchemy async session for database operations
        """
        self._session = session

    @property
    @abstractmethod
    def _model_class(self) -> type[ModelT]:
        """Return the SQLAlchemy model class for this repository."""
        pass

    async def create(self, entity: ModelT) -> ModelT:
        """Create a new entity.

        Args:
            entity: Entity to create

        Returns:
            Created entity with generated ID
        """
        self._session.add(entity)
        await self._session.flush()
        await self._session.refresh(entity)
        return entity

    async def update(self, entity: ModelT) -> ModelT:
        """Flush pending changes on an attached entity.

        Args:
            entity: Entity with updated values

        Returns:
            Updated entity
        """
        await self._session.flush()
        await self._session.refresh(entity)
        return entity
