"""
User model with authentication, role management and agent profile data.
Covers buyers, listing agents and superadmins.
"""

from sqlalchemy import String, Text, Boolean, Integer, Float, DateTime, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column
from app.database import Base, as_utc, utcnow
from app.utils.passwords import hash_password, verify_password
from email_validator import validate_email, EmailNotValidError
from datetime import datetime
from typing import Optional
import enum
import uuid


class UserRole(str, enum.Enum):
    """User role enumeration for role-based access control."""
    USER = "user"
    AGENT = "agent"
    SUPERADMIN = "superadmin"


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    PENDING_VERIFICATION = "pending_verification"


class BlueTickStatus(str, enum.Enum):
    """Agent verification badge states set through administrative review."""
    NONE = "none"
    PENDING = "pending"
    VERIFIED = "verified"
    SUSPENDED = "suspended"


class AvatarState(str, enum.Enum):
    NONE = "none"
    EXTERNAL = "external"
    UPLOADED = "uploaded"


class User(Base):
    """
    User model for authentication and authorization.
    Agent-specific counters live on the same row and are never recomputed
    from the properties table, so they survive property deletion.
    """

    __tablename__ = "users"

    # Identification and authentication
    full_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="User's full name"
    )

    phone: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        nullable=False,
        index=True,
        comment="Normalized phone number (+252...), used for login"
    )

    email: Mapped[Optional[str]] = mapped_column(
        String(255),
        unique=True,
        nullable=True,
        comment="Optional email address"
    )

    hashed_password: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Argon2 (or legacy bcrypt) password hash"
    )

    password_changed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=utcnow
    )

    # Role and status
    role: Mapped[UserRole] = mapped_column(
        SQLEnum(UserRole),
        nullable=False,
        default=UserRole.USER,
        index=True,
        comment="User role for access control"
    )

    status: Mapped[UserStatus] = mapped_column(
        SQLEnum(UserStatus),
        nullable=False,
        default=UserStatus.ACTIVE,
        index=True
    )

    # Profile
    avatar: Mapped[str] = mapped_column(
        String(1024),
        nullable=False,
        default="",
        comment="Avatar URL, empty when the placeholder should be shown"
    )

    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    location: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Agent profile
    license_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    rating: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    blue_tick_status: Mapped[BlueTickStatus] = mapped_column(
        SQLEnum(BlueTickStatus),
        nullable=False,
        default=BlueTickStatus.NONE
    )

    total_views: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Cumulative views across all of the agent's listings"
    )

    total_properties: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Cumulative number of listings ever created"
    )

    deleted_properties_views: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Views carried over from listings that were hard deleted"
    )

    # Permissions
    can_add_properties: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_manage_users: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    can_approve_properties: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Security
    last_login: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    login_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    locked_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    must_change_password: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    password_reset_token_hash: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    password_reset_expires: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, phone={self.phone}, role={self.role})>"

    @classmethod
    def validate_email_format(cls, email: str) -> str:
        """
        Validate email format using email-validator.

        Raises:
            ValueError: If email format is invalid
        """
        try:
            valid_email = validate_email(email, check_deliverability=False)
            return valid_email.normalized.lower()
        except EmailNotValidError as e:
            raise ValueError(f"Invalid email format: {str(e)}")

    def verify_password(self, password: str) -> bool:
        return verify_password(password, self.hashed_password)

    def set_password(self, password: str) -> None:
        self.hashed_password = hash_password(password)
        self.password_changed_at = utcnow()

    @property
    def is_superadmin(self) -> bool:
        return self.role == UserRole.SUPERADMIN

    @property
    def is_agent(self) -> bool:
        return self.role == UserRole.AGENT

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    def is_locked(self, now: Optional[datetime] = None) -> bool:
        """Whether failed logins have locked the account at ``now``."""
        locked_until = as_utc(self.locked_until)
        if locked_until is None:
            return False
        return locked_until > (now or utcnow())

    @property
    def avatar_state(self) -> AvatarState:
        """
        Classify the avatar as missing, hosted elsewhere, or uploaded to our
        object storage (recognised by the avatars/ key prefix).
        """
        if not self.avatar:
            return AvatarState.NONE
        if "/avatars/" in self.avatar:
            return AvatarState.UPLOADED
        return AvatarState.EXTERNAL

    def can_manage_property(self, property_agent_id: Optional[uuid.UUID]) -> bool:
        """Superadmins manage every listing, agents only their own."""
        if self.is_superadmin:
            return True
        return property_agent_id is not None and self.id == property_agent_id

    def public_profile(self) -> dict:
        """Contact card shown on listings and agent pages."""
        return {
            "id": str(self.id),
            "full_name": self.full_name,
            "phone": self.phone,
            "avatar": self.avatar,
            "rating": self.rating,
            "verified": self.verified,
            "blue_tick_status": self.blue_tick_status.value,
        }

    def to_dict(self) -> dict:
        """
        Convert user to dictionary (excluding sensitive data).
        """
        return {
            "id": str(self.id),
            "full_name": self.full_name,
            "phone": self.phone,
            "email": self.email,
            "role": self.role.value,
            "status": self.status.value,
            "avatar": self.avatar,
            "avatar_state": self.avatar_state.value,
            "bio": self.bio,
            "location": self.location,
            "agent_profile": {
                "license_number": self.license_number,
                "rating": self.rating,
                "verified": self.verified,
                "blue_tick_status": self.blue_tick_status.value,
                "total_views": self.total_views,
                "total_properties": self.total_properties,
                "deleted_properties_views": self.deleted_properties_views,
            },
            "permissions": {
                "can_add_properties": self.can_add_properties,
                "can_manage_users": self.can_manage_users,
                "can_approve_properties": self.can_approve_properties,
            },
            "must_change_password": self.must_change_password,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
