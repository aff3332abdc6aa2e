"""
Pydantic schemas for user requests and responses.
Covers registration, profile edits, admin updates and the public user view.
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List
from app.models.user import UserRole, UserStatus, BlueTickStatus
from app.utils.passwords import normalize_phone_number, validate_phone_number


def _normalized_phone(value: str) -> str:
    if not validate_phone_number(value):
        raise ValueError("Phone number must be 9 local digits or 12 digits starting with 252")
    return normalize_phone_number(value)


class UserCreate(BaseModel):
    """Registration payload. Password rules are checked by the auth service."""

    full_name: str = Field(..., min_length=2, max_length=255, examples=["Faadumo Cali"])
    phone: str = Field(..., description="Somali phone number, local or +252", examples=["615123456"])
    password: str = Field(..., max_length=128, description="At least 5 characters, not only digits")
    email: Optional[str] = Field(None, max_length=255)

    @field_validator('full_name')
    @classmethod
    def validate_full_name(cls, v):
        if not v.strip():
            raise ValueError("Full name cannot be empty")
        return " ".join(v.split())

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v):
        return _normalized_phone(v)


class UserProfileUpdate(BaseModel):
    """Fields a user may change on their own profile."""

    full_name: Optional[str] = Field(None, min_length=2, max_length=255)
    email: Optional[str] = Field(None, max_length=255)
    bio: Optional[str] = Field(None, max_length=2000)
    location: Optional[str] = Field(None, max_length=255)
    avatar: Optional[str] = Field(None, max_length=1024, description="External avatar URL, or empty/null to clear")

    @field_validator('full_name')
    @classmethod
    def full_name_required(cls, v):
        if v is None:
            raise ValueError("Full name cannot be cleared")
        return " ".join(v.split())

    @field_validator('avatar')
    @classmethod
    def avatar_null_clears(cls, v):
        return v or ""

    @model_validator(mode='after')
    def validate_not_empty(self):
        if not self.model_dump(exclude_unset=True):
            raise ValueError("At least one field must be provided for update")
        return self


class AgentProfile(BaseModel):
    license_number: Optional[str] = None
    rating: float = 0.0
    verified: bool = False
    blue_tick_status: BlueTickStatus = BlueTickStatus.NONE
    total_views: int = 0
    total_properties: int = 0
    deleted_properties_views: int = 0


class UserPermissions(BaseModel):
    can_add_properties: bool = False
    can_manage_users: bool = False
    can_approve_properties: bool = False


class UserResponse(BaseModel):
    """User as returned by the API (no password or security data)."""

    id: str
    full_name: str
    phone: str
    email: Optional[str] = None
    role: UserRole
    status: UserStatus
    avatar: str = ""
    avatar_state: str = "none"
    bio: Optional[str] = None
    location: Optional[str] = None
    agent_profile: AgentProfile
    permissions: UserPermissions
    must_change_password: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class UserListResponse(BaseModel):
    users: List[UserResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class UserStatusUpdate(BaseModel):
    status: UserStatus


class UserRoleUpdate(BaseModel):
    role: UserRole


class BlueTickUpdate(BaseModel):
    status: BlueTickStatus = Field(..., description="none, pending or verified")


class PasswordChangeRequest(BaseModel):
    """Schema for password change request."""

    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., max_length=128)
    confirm_password: str = Field(..., max_length=128)

    @model_validator(mode='after')
    def passwords_match(self):
        if self.new_password != self.confirm_password:
            raise ValueError("Passwords do not match")
        return self
