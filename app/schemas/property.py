"""
Pydantic schemas for property requests and responses.
Handles listing creation, partial updates, search filters and list pages.
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List
from decimal import Decimal
from app.models.property import PropertyType, ListingType, PropertyStatus
import uuid


def _strip_required(value: Optional[str], field_name: str) -> Optional[str]:
    if value is None:
        return value
    if not value.strip():
        raise ValueError(f"{field_name} cannot be empty")
    return value.strip()


class PropertyCreate(BaseModel):
    """Schema for creating a new listing. Images are attached afterwards."""

    title: str = Field(..., min_length=1, max_length=255, description="Listing title", examples=["Villa cusub"])
    description: str = Field(..., min_length=1, max_length=5000, description="Detailed description")
    price: Decimal = Field(..., ge=0, description="Price in USD", examples=[350.00])
    location: str = Field(..., min_length=1, max_length=255, description="Neighbourhood or street")
    district: str = Field(..., min_length=1, max_length=100, description="Mogadishu district", examples=["Hodan"])
    bedrooms: int = Field(..., ge=0, le=100)
    bathrooms: int = Field(..., ge=0, le=100)
    listing_type: ListingType = Field(ListingType.SALE, description="sale or rent")
    property_type: PropertyType = Field(PropertyType.HOUSE)
    status: Optional[PropertyStatus] = Field(None, description="Defaults from listing_type")
    measurement: Optional[str] = Field(None, max_length=100)
    sqft: Optional[int] = Field(None, ge=0)
    year_built: Optional[int] = Field(None, ge=1800, le=2100)
    lot_size: Optional[int] = Field(None, ge=0)
    features: List[str] = Field(default_factory=list)
    amenities: List[str] = Field(default_factory=list)
    featured: bool = False

    @field_validator('title', 'description', 'location', 'district')
    @classmethod
    def strip_text(cls, v, info):
        return _strip_required(v, info.field_name.capitalize())

    model_config = {
        "json_schema_extra": {
            "example": {
                "title": "Guri 3 qol",
                "description": "Spacious family house close to the main road with parking.",
                "price": 450.00,
                "location": "Taleex",
                "district": "Hodan",
                "bedrooms": 3,
                "bathrooms": 2,
                "listing_type": "rent",
                "property_type": "house"
            }
        }
    }


class PropertyUpdate(BaseModel):
    """
    Partial update. Only the fields below can be changed through the API;
    deletion state, counters and ownership have dedicated operations.
    """

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, min_length=1, max_length=5000)
    price: Optional[Decimal] = Field(None, ge=0)
    location: Optional[str] = Field(None, min_length=1, max_length=255)
    district: Optional[str] = Field(None, min_length=1, max_length=100)
    bedrooms: Optional[int] = Field(None, ge=0, le=100)
    bathrooms: Optional[int] = Field(None, ge=0, le=100)
    listing_type: Optional[ListingType] = None
    property_type: Optional[PropertyType] = None
    status: Optional[PropertyStatus] = None
    measurement: Optional[str] = Field(None, max_length=100)
    sqft: Optional[int] = Field(None, ge=0)
    year_built: Optional[int] = Field(None, ge=1800, le=2100)
    lot_size: Optional[int] = Field(None, ge=0)
    features: Optional[List[str]] = None
    amenities: Optional[List[str]] = None
    featured: Optional[bool] = None
    thumbnail_image: Optional[str] = Field(None, max_length=1024)
    images: Optional[List[str]] = None

    @field_validator('title', 'description', 'location', 'district')
    @classmethod
    def strip_text(cls, v, info):
        return _strip_required(v, info.field_name.capitalize())

    @model_validator(mode='after')
    def validate_not_empty(self):
        if not self.model_dump(exclude_unset=True):
            raise ValueError("At least one field must be provided for update")
        return self

    model_config = {"extra": "forbid"}


class PropertyResponse(BaseModel):
    id: uuid.UUID
    property_id: int
    title: str
    description: str
    property_type: PropertyType
    listing_type: ListingType
    status: PropertyStatus
    measurement: Optional[str] = None
    price: float
    location: str
    district: str
    bedrooms: int
    bathrooms: int
    sqft: Optional[int] = None
    year_built: Optional[int] = None
    lot_size: Optional[int] = None
    features: List[str] = []
    amenities: List[str] = []
    thumbnail_image: str = ""
    images: List[str] = []
    agent_id: Optional[uuid.UUID] = None
    agent_name: Optional[str] = None
    agent_phone: Optional[str] = None
    agent: Optional[dict] = None
    featured: bool = False
    deletion_status: str
    view_count: int = 0
    unique_view_count: int = 0
    last_viewed_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class PropertyListResponse(BaseModel):
    """Paginated listing page."""

    properties: List[PropertyResponse]
    total: int = Field(..., description="Total number of matching listings")
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_previous: bool


class ViewCountResponse(BaseModel):
    property_id: uuid.UUID
    view_count: int
    unique_view_count: int
    counted_as_unique: bool
    excessive: bool = Field(False, description="Viewer has exceeded the repeat-view threshold")


class SimilarPropertiesResponse(BaseModel):
    """Other visible listings in the same district."""

    properties: List[PropertyResponse]
    total: int
