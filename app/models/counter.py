"""
Named integer sequences, used to mint human-readable property numbers.
"""

from sqlalchemy import String, Integer
from sqlalchemy.orm import Mapped, mapped_column
from app.database import Base

PROPERTY_ID_COUNTER = "propertyId"


class Counter(Base):
    """A single named, monotonically increasing sequence."""

    __tablename__ = "counters"

    name: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        comment="Sequence name"
    )

    sequence: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Last value handed out"
    )

    def __repr__(self) -> str:
        return f"<Counter(name={self.name}, sequence={self.sequence})>"
