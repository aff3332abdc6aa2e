"""
API route handlers for the marketplace API.
"""

from .auth import router as auth_router
from .properties import router as properties_router
from .images import router as images_router
from .users import router as users_router
from .agents import router as agents_router

__all__ = ["auth_router", "properties_router", "images_router", "users_router", "agents_router"]
