"""
Repository layer for data access operations.
"""

from app.repositories.base import BaseRepository
from app.repositories.counter import CounterRepository
from app.repositories.property import PropertyRepository, PropertySearchFilters
from app.repositories.user import UserRepository

__all__ = [
    "BaseRepository",
    "CounterRepository",
    "PropertyRepository",
    "PropertySearchFilters",
    "UserRepository",
]
