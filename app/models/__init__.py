"""
Database models for the marketplace API.
Includes User, Property, PropertyViewer and Counter models.
"""

from app.models.user import User, UserRole, UserStatus, BlueTickStatus, AvatarState
from app.models.property import (
    Property,
    PropertyType,
    ListingType,
    PropertyStatus,
    DeletionStatus,
)
from app.models.property_viewer import PropertyViewer
from app.models.counter import Counter, PROPERTY_ID_COUNTER

__all__ = [
    "User",
    "UserRole",
    "UserStatus",
    "BlueTickStatus",
    "AvatarState",
    "Property",
    "PropertyType",
    "ListingType",
    "PropertyStatus",
    "DeletionStatus",
    "PropertyViewer",
    "Counter",
    "PROPERTY_ID_COUNTER",
]
