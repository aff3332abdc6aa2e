"""
Base repository with the persistence primitives shared by all repositories.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete
from app.database import Base
from typing import TypeVar, Generic, Optional, Dict, Any, Type
import uuid
import logging

logger = logging.getLogger(__name__)

ModelType = TypeVar("ModelType", bound=Base)


class BaseRepository(Generic[ModelType]):
    """
    Generic repository over one model.
    Every write commits, and failures roll the session back before re-raising.
    """

    def __init__(self, model: Type[ModelType], db: AsyncSession):
        self.model = model
        self.db = db

    @property
    def _name(self) -> str:
        return self.model.__name__

    async def create(self, obj_in: Dict[str, Any]) -> ModelType:
        """
        Insert a new row.

        Args:
            obj_in: Column values for the new record
        """
        db_obj = self.model(**obj_in)
        self.db.add(db_obj)
        try:
            await self.db.commit()
            await self.db.refresh(db_obj)
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Failed to create {self._name}: {e}")
            raise

        logger.debug(f"Created {self._name} {db_obj.id}")
        return db_obj

    async def get_by_id(self, id: uuid.UUID) -> Optional[ModelType]:
        """
        Fetch by primary key. Column values are always reloaded, so counters
        changed by SQL expressions are current.
        """
        query = select(self.model).where(self.model.id == id).execution_options(populate_existing=True)
        result = await self.db.execute(query)
        obj = result.scalar_one_or_none()
        if obj is None:
            logger.debug(f"{self._name} {id} not found")
        return obj

    async def get_by_field(self, field: str, value: Any) -> Optional[ModelType]:
        """
        Fetch the single row whose ``field`` equals ``value``.

        Raises:
            ValueError: If the model has no such field
        """
        if not hasattr(self.model, field):
            raise ValueError(f"Field '{field}' does not exist on {self._name}")

        query = select(self.model).where(getattr(self.model, field) == value).execution_options(populate_existing=True)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def save(self, db_obj: ModelType, changes: Optional[Dict[str, Any]] = None) -> ModelType:
        """Apply ``changes`` to an already loaded instance and commit."""
        obj_id = db_obj.id
        for field, value in (changes or {}).items():
            setattr(db_obj, field, value)
        try:
            await self.db.commit()
            await self.db.refresh(db_obj)
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Failed to save {self._name} {obj_id}: {e}")
            raise

        logger.debug(f"Saved {self._name} {obj_id}")
        return db_obj

    async def delete(self, id: uuid.UUID) -> bool:
        """
        Hard delete.

        Returns:
            True if a row was removed
        """
        try:
            result = await self.db.execute(delete(self.model).where(self.model.id == id))
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Failed to delete {self._name} {id}: {e}")
            raise

        deleted = result.rowcount > 0
        logger.debug(f"Delete {self._name} {id}: {'removed' if deleted else 'not found'}")
        return deleted
