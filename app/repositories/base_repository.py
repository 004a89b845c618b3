"""Generic async repository shared by all table repositories."""

from typing import Any, Generic, Optional, Type, TypeVar
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.database.base import Base
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=Base)


class BaseRepository(Generic[ModelT]):
    """CRUD helpers bound to one ORM model.

    Writes only ``flush``; the caller owns the transaction and decides when
    to commit.

    Attributes:
        session: SQLAlchemy async session for database operations
        model: ORM model class managed by this repository
    """

    def __init__(self, session: AsyncSession, model: Type[ModelT]):
        self.session = session
        self.model = model
        self.logger = LOGGER

    async def create(self, **fields: Any) -> ModelT:
        """Insert a new row and flush it so generated keys are populated."""
        instance = self.model(**fields)
        self.session.add(instance)
        await self.session.flush()
        return instance

    async def get_by_id(self, record_id: UUID) -> Optional[ModelT]:
        return await self.session.get(self.model, record_id)

    async def update(self, record_id: UUID, **fields: Any) -> Optional[ModelT]:
        """Apply field updates to an existing row.

        Returns:
            The updated instance, or None if no row has that id
        """
        instance = await self.get_by_id(record_id)
        if instance is None:
            return None
        for key, value in fields.items():
            setattr(instance, key, value)
        await self.session.flush()
        return instance
