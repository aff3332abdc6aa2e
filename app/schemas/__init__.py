"""
Pydantic schemas for request/response validation.
"""

# Authentication schemas
from .auth import (
    LoginRequest,
    TokenResponse,
    RefreshTokenRequest,
    AccessTokenResponse,
    LoginResponse,
    PasswordResetRequest,
    PasswordResetRequestResponse,
    PasswordResetConfirm,
    MessageResponse
)

# User schemas
from .user import (
    UserCreate,
    UserProfileUpdate,
    UserResponse,
    UserListResponse,
    UserStatusUpdate,
    UserRoleUpdate,
    BlueTickUpdate,
    PasswordChangeRequest
)

# Property schemas
from .property import (
    PropertyCreate,
    PropertyUpdate,
    PropertyResponse,
    PropertyListResponse,
    ViewCountResponse,
    SimilarPropertiesResponse
)

# Agent directory schemas
from .agent import (
    AgentSummary,
    AgentListResponse,
    AgentProfileResponse,
    AgentViewStatsResponse
)

# Upload schemas
from .image import (
    StoredFileResponse,
    FileUploadResponse,
    PropertyImagesUploadResponse
)

__all__ = [
    # Authentication
    "LoginRequest",
    "TokenResponse",
    "RefreshTokenRequest",
    "AccessTokenResponse",
    "LoginResponse",
    "PasswordResetRequest",
    "PasswordResetRequestResponse",
    "PasswordResetConfirm",
    "MessageResponse",

    # User
    "UserCreate",
    "UserProfileUpdate",
    "UserResponse",
    "UserListResponse",
    "UserStatusUpdate",
    "UserRoleUpdate",
    "BlueTickUpdate",
    "PasswordChangeRequest",

    # Property
    "PropertyCreate",
    "PropertyUpdate",
    "PropertyResponse",
    "PropertyListResponse",
    "ViewCountResponse",
    "SimilarPropertiesResponse",

    # Agents
    "AgentSummary",
    "AgentListResponse",
    "AgentProfileResponse",
    "AgentViewStatsResponse",

    # Uploads
    "StoredFileResponse",
    "FileUploadResponse",
    "PropertyImagesUploadResponse"
]
