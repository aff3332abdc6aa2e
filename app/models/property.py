"""
Property model for rental and sale listings.
Holds listing details, image URLs, soft-deletion workflow state and view counters.
"""

from sqlalchemy import (
    String, Text, Integer, Numeric, Boolean, DateTime, JSON, Uuid,
    Enum as SQLEnum, Index, ForeignKey,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from app.database import Base
from datetime import datetime
from decimal import Decimal
import enum
import uuid
from typing import List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from app.models.user import User


class ListingType(str, enum.Enum):
    SALE = "sale"
    RENT = "rent"


class PropertyType(str, enum.Enum):
    """Kind of building being listed."""
    VILLA = "villa"
    APARTMENT = "apartment"
    HOUSE = "house"
    BACWEYNE = "bacweyne"
    LAND = "land"
    OFFICE = "office"
    SHOP = "shop"


class PropertyStatus(str, enum.Enum):
    FOR_SALE = "For Sale"
    FOR_RENT = "For Rent"
    SOLD = "Sold"
    RENTED = "Rented"
    OFF_MARKET = "Off Market"


class DeletionStatus(str, enum.Enum):
    """
    Soft-deletion workflow state.
    active -> pending_deletion (owner request) -> row removed (superadmin confirm),
    or active -> deleted (direct soft delete).
    """
    ACTIVE = "active"
    PENDING_DELETION = "pending_deletion"
    DELETED = "deleted"


# Title suffixes marking the listing type in Somali
TITLE_SUFFIXES = {
    ListingType.RENT: " Kiro ah",
    ListingType.SALE: " iib ah",
}

DEFAULT_STATUS = {
    ListingType.RENT: PropertyStatus.FOR_RENT,
    ListingType.SALE: PropertyStatus.FOR_SALE,
}


class Property(Base):
    """
    Property listing.
    Created with empty image fields and patched once uploads complete.
    """

    __tablename__ = "properties"

    property_id: Mapped[int] = mapped_column(
        Integer,
        unique=True,
        nullable=False,
        index=True,
        comment="Human-readable sequential listing number"
    )

    # Basic property information
    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        comment="Property listing title"
    )

    description: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Detailed property description"
    )

    property_type: Mapped[PropertyType] = mapped_column(
        SQLEnum(PropertyType),
        nullable=False,
        default=PropertyType.HOUSE,
        index=True
    )

    listing_type: Mapped[ListingType] = mapped_column(
        SQLEnum(ListingType),
        nullable=False,
        index=True,
        comment="sale or rent"
    )

    status: Mapped[PropertyStatus] = mapped_column(
        SQLEnum(PropertyStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True
    )

    measurement: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Pricing information
    price: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        index=True,
        comment="Price in USD"
    )

    # Location information
    location: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        comment="Neighbourhood or street address"
    )

    district: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True
    )

    # Property specifications
    bedrooms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bathrooms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    sqft: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    year_built: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    lot_size: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    features: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    amenities: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)

    # Images
    thumbnail_image: Mapped[str] = mapped_column(
        String(1024),
        nullable=False,
        default="",
        comment="Primary image URL, empty until uploads complete"
    )

    images: Mapped[List[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        comment="Additional image URLs, never containing the thumbnail"
    )

    # Ownership
    agent_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        comment="ID of the agent who owns this property"
    )

    agent_name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="Agent name copied at creation time"
    )

    agent_phone: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        comment="Agent phone copied at creation time"
    )

    featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)

    # Soft deletion
    deletion_status: Mapped[DeletionStatus] = mapped_column(
        SQLEnum(DeletionStatus),
        nullable=False,
        default=DeletionStatus.ACTIVE,
        index=True
    )
    deletion_requested_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    deletion_requested_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)
    deletion_confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    deletion_confirmed_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), nullable=True)

    # View tracking
    view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    unique_view_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, index=True)
    last_owner_view_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_viewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    agent: Mapped[Optional["User"]] = relationship(
        "User",
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<Property(property_id={self.property_id}, title={self.title[:30]}..., price={self.price})>"

    @property
    def is_deleted(self) -> bool:
        return self.deletion_status == DeletionStatus.DELETED

    def validate_price(self) -> None:
        if self.price is None or self.price < 0:
            raise ValueError("Price must be a non-negative number")

        if self.price > Decimal('999999999.99'):
            raise ValueError("Property price exceeds maximum allowed value")

    def validate_rooms(self) -> None:
        """
        Validate bedroom and bathroom counts.

        Raises:
            ValueError: If either count is negative
        """
        if self.bedrooms is None or self.bedrooms < 0:
            raise ValueError("Number of bedrooms cannot be negative")

        if self.bathrooms is None or self.bathrooms < 0:
            raise ValueError("Number of bathrooms cannot be negative")

    def validate_year_built(self) -> None:
        if self.year_built is not None and self.year_built < 1800:
            raise ValueError("Year built must be 1800 or later")

    def validate_images(self) -> None:
        """
        The thumbnail must not be repeated in the additional images.

        Raises:
            ValueError: If the thumbnail URL appears in images
        """
        if self.thumbnail_image and self.thumbnail_image in (self.images or []):
            raise ValueError("Thumbnail image must not be duplicated in images")

    def validate_all(self) -> None:
        """
        Run all validation checks on the property.

        Raises:
            ValueError: If any validation fails
        """
        self.validate_price()
        self.validate_rooms()
        self.validate_year_built()
        self.validate_images()

    def to_dict(self, include_agent: bool = False) -> dict:
        """
        Convert property to dictionary.

        Args:
            include_agent: Whether to embed the owning agent's public profile
        """
        result = {
            "id": str(self.id),
            "property_id": self.property_id,
            "title": self.title,
            "description": self.description,
            "property_type": self.property_type.value,
            "listing_type": self.listing_type.value,
            "status": self.status.value,
            "measurement": self.measurement,
            "price": float(self.price),
            "location": self.location,
            "district": self.district,
            "bedrooms": self.bedrooms,
            "bathrooms": self.bathrooms,
            "sqft": self.sqft,
            "year_built": self.year_built,
            "lot_size": self.lot_size,
            "features": list(self.features or []),
            "amenities": list(self.amenities or []),
            "thumbnail_image": self.thumbnail_image,
            "images": list(self.images or []),
            "agent_id": str(self.agent_id) if self.agent_id else None,
            "agent_name": self.agent_name,
            "agent_phone": self.agent_phone,
            "featured": self.featured,
            "deletion_status": self.deletion_status.value,
            "view_count": self.view_count,
            "unique_view_count": self.unique_view_count,
            "last_viewed_at": self.last_viewed_at.isoformat() if self.last_viewed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

        if include_agent and self.agent:
            result["agent"] = self.agent.public_profile()

        return result


# Listing queries always filter on deletion_status first
listing_visibility_index = Index(
    'idx_properties_deletion_created',
    Property.deletion_status,
    Property.created_at.desc()
)

agent_listing_index = Index(
    'idx_properties_agent_deletion',
    Property.agent_id,
    Property.deletion_status
)

district_listing_index = Index(
    'idx_properties_district_listing_type',
    Property.district,
    Property.listing_type,
    Property.deletion_status
)
