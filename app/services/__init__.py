"""
Service layer for business logic implementation.
Contains services for authentication, listings, image uploads, events and error handling.
"""

from .auth import AuthService
from .property import PropertyService
from .image_upload import ImageUploadService
from .storage import ObjectStorage
from .events import PropertyEventManager, property_events
from .error_handler import ErrorHandlerService

__all__ = [
    "AuthService",
    "PropertyService",
    "ImageUploadService",
    "ObjectStorage",
    "PropertyEventManager",
    "property_events",
    "ErrorHandlerService"
]
