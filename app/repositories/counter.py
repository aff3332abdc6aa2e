"""
Counter repository handing out sequential numbers.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from app.repositories.base import BaseRepository
from app.models.counter import Counter
from app.models.property import Property
import logging

logger = logging.getLogger(__name__)


class CounterRepository(BaseRepository[Counter]):

    def __init__(self, db: AsyncSession):
        super().__init__(Counter, db)

    async def next_value(self, name: str) -> int:
        """
        Atomically increment the named sequence and return the new value.

        A missing counter is created on first use, seeded from the highest
        property number already stored so that numbers never repeat.
        """
        value = await self._increment(name)
        if value is not None:
            return value

        seed = await self._initial_value()
        try:
            self.db.add(Counter(name=name, sequence=seed + 1))
            await self.db.commit()
            logger.info(f"Initialized counter '{name}' at {seed + 1}")
            return seed + 1
        except IntegrityError:
            # Another request created the counter first
            await self.db.rollback()
            value = await self._increment(name)
            if value is None:
                raise
            return value

    async def current_value(self, name: str) -> int:
        result = await self.db.execute(select(Counter.sequence).where(Counter.name == name))
        return result.scalar() or 0

    async def _increment(self, name: str):
        try:
            stmt = (
                update(Counter)
                .where(Counter.name == name)
                .values(sequence=Counter.sequence + 1)
                .returning(Counter.sequence)
            )
            result = await self.db.execute(stmt)
            value = result.scalar_one_or_none()
            await self.db.commit()
            return value
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Failed to increment counter '{name}': {e}")
            raise

    async def _initial_value(self) -> int:
        result = await self.db.execute(select(func.max(Property.property_id)))
        return result.scalar() or 0
