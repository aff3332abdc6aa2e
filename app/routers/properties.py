"""
Property management API endpoints for CRUD operations, search, filtering and the deletion workflow.
"""

from fastapi import APIRouter, Depends, status, Query, Path, Header
from typing import Optional, List
from uuid import UUID
from decimal import Decimal
import math

from app.config import settings
from app.models.property import Property, ListingType, PropertyType, PropertyStatus
from app.models.user import User
from app.repositories.property import PropertySearchFilters, SORT_LATEST, SORT_MOST_VIEWED
from app.services.property import PropertyService
from app.schemas.property import (
    PropertyCreate,
    PropertyUpdate,
    PropertyResponse,
    PropertyListResponse,
    ViewCountResponse,
    SimilarPropertiesResponse
)
from app.services.error_handler import ERROR_RESPONSES
from app.utils.dependencies import (
    get_current_active_user,
    get_current_superadmin,
    get_optional_current_user,
    get_property_service
)
from app.utils.exceptions import ValidationError


router = APIRouter(prefix="/properties", tags=["Properties"])

CRUD_ERROR_RESPONSES = {code: ERROR_RESPONSES[code] for code in (401, 403, 404, 422)}


async def _to_response(property_obj: Property, property_service: PropertyService) -> PropertyResponse:
    data = property_obj.to_dict(include_agent=True)
    if data.get("agent") is None:
        agent = await property_service.resolve_agent(property_obj)
        if agent:
            data["agent"] = agent.public_profile()
    return PropertyResponse.model_validate(data)


def _page(properties: List[Property], total: int, page: int, page_size: int) -> PropertyListResponse:
    total_pages = math.ceil(total / page_size) if total > 0 else 0
    return PropertyListResponse(
        properties=[PropertyResponse.model_validate(p.to_dict(include_agent=True)) for p in properties],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_previous=page > 1
    )


@router.post(
    "",
    response_model=PropertyResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create new property",
    description="Create a listing without images. Requires an agent with listing rights or a superadmin.",
    responses=CRUD_ERROR_RESPONSES
)
async def create_property(
    property_data: PropertyCreate,
    current_user: User = Depends(get_current_active_user),
    property_service: PropertyService = Depends(get_property_service)
) -> PropertyResponse:
    """
    The listing gets the next property number, a title suffix for its listing
    type and a default status. Images are attached afterwards through the
    upload endpoints.
    """
    property_obj = await property_service.create_property(property_data, current_user)
    return PropertyResponse.model_validate(property_obj.to_dict(include_agent=True))


@router.get(
    "",
    response_model=PropertyListResponse,
    status_code=status.HTTP_200_OK,
    summary="List properties with search and filtering"
)
async def list_properties(
    search: Optional[str] = Query(None, description="Text search over title, location and description"),
    district: Optional[str] = Query(None),
    listing_type: Optional[ListingType] = Query(None),
    property_type: Optional[PropertyType] = Query(None),
    property_status: Optional[PropertyStatus] = Query(None, alias="status"),
    featured: Optional[bool] = Query(None),
    agent_id: Optional[UUID] = Query(None),
    min_price: Optional[Decimal] = Query(None, ge=0),
    max_price: Optional[Decimal] = Query(None, ge=0),
    sort: str = Query(SORT_LATEST, description=f"'{SORT_LATEST}' or '{SORT_MOST_VIEWED}'"),
    page: int = Query(1, ge=1, description="Page number (starts from 1)"),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size, description="Number of properties per page"),
    property_service: PropertyService = Depends(get_property_service)
) -> PropertyListResponse:
    """
    Public listing feed. Soft-deleted listings never appear.
    """
    if sort not in (SORT_LATEST, SORT_MOST_VIEWED):
        raise ValidationError(f"Invalid sort: {sort}. Must be '{SORT_LATEST}' or '{SORT_MOST_VIEWED}'")
    if min_price is not None and max_price is not None and min_price > max_price:
        raise ValidationError("min_price cannot be greater than max_price")

    filters = PropertySearchFilters(
        district=district,
        listing_type=listing_type,
        property_type=property_type,
        status=property_status,
        featured=featured,
        agent_id=agent_id,
        search_text=search,
        min_price=min_price,
        max_price=max_price,
        sort=sort
    )
    properties, total = await property_service.search_properties(filters, page, page_size)
    return _page(properties, total, page, page_size)


@router.get(
    "/agent/mine",
    response_model=PropertyListResponse,
    status_code=status.HTTP_200_OK,
    summary="Current agent's listings",
    description="Listings owned by the caller, hiding ones pending deletion or deleted"
)
async def get_my_properties(
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    current_user: User = Depends(get_current_active_user),
    property_service: PropertyService = Depends(get_property_service)
) -> PropertyListResponse:
    properties, total = await property_service.get_agent_properties(current_user, page, page_size)
    return _page(properties, total, page, page_size)


@router.get(
    "/pending-deletion",
    response_model=PropertyListResponse,
    status_code=status.HTTP_200_OK,
    summary="Listings awaiting deletion",
    description="Superadmin review queue, most recent request first",
    responses={code: ERROR_RESPONSES[code] for code in (401, 403)}
)
async def get_pending_deletions(
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    current_user: User = Depends(get_current_superadmin),
    property_service: PropertyService = Depends(get_property_service)
) -> PropertyListResponse:
    properties, total = await property_service.get_pending_deletions(current_user, page, page_size)
    return _page(properties, total, page, page_size)


@router.get(
    "/similar",
    response_model=SimilarPropertiesResponse,
    status_code=status.HTTP_200_OK,
    summary="Similar listings",
    description="Visible listings in the same district, featured and most viewed first"
)
async def get_similar_properties(
    district: str = Query(..., min_length=1),
    exclude_id: Optional[UUID] = Query(None, description="Listing to leave out, usually the one being viewed"),
    limit: int = Query(6, ge=1, le=settings.max_page_size),
    property_service: PropertyService = Depends(get_property_service)
) -> SimilarPropertiesResponse:
    properties = await property_service.find_similar(district, exclude_id, limit)
    return SimilarPropertiesResponse(
        properties=[PropertyResponse.model_validate(p.to_dict(include_agent=True)) for p in properties],
        total=len(properties)
    )


@router.get(
    "/{property_id}",
    response_model=PropertyResponse,
    status_code=status.HTTP_200_OK,
    summary="Get property by ID",
    responses={404: ERROR_RESPONSES[404]}
)
async def get_property(
    property_id: UUID = Path(..., description="Property ID"),
    property_service: PropertyService = Depends(get_property_service)
) -> PropertyResponse:
    property_obj = await property_service.get_property(property_id)
    return await _to_response(property_obj, property_service)


@router.patch(
    "/{property_id}",
    response_model=PropertyResponse,
    status_code=status.HTTP_200_OK,
    summary="Update property",
    responses=CRUD_ERROR_RESPONSES
)
async def update_property(
    property_data: PropertyUpdate,
    property_id: UUID = Path(..., description="Property ID"),
    current_user: User = Depends(get_current_active_user),
    property_service: PropertyService = Depends(get_property_service)
) -> PropertyResponse:
    """
    Partial update by the owner or a superadmin. Also used to attach image
    URLs after an upload.
    """
    property_obj = await property_service.update_property(property_id, property_data, current_user)
    return PropertyResponse.model_validate(property_obj.to_dict(include_agent=True))


@router.delete(
    "/{property_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete property",
    description="Soft delete: the listing disappears from all feeds but the row is kept",
    responses=CRUD_ERROR_RESPONSES
)
async def delete_property(
    property_id: UUID = Path(..., description="Property ID"),
    current_user: User = Depends(get_current_active_user),
    property_service: PropertyService = Depends(get_property_service)
) -> None:
    await property_service.delete_property(property_id, current_user)


@router.post(
    "/{property_id}/request-deletion",
    response_model=PropertyResponse,
    status_code=status.HTTP_200_OK,
    summary="Request deletion",
    description="Owner marks the listing pending deletion for superadmin approval",
    responses=CRUD_ERROR_RESPONSES
)
async def request_deletion(
    property_id: UUID = Path(..., description="Property ID"),
    current_user: User = Depends(get_current_active_user),
    property_service: PropertyService = Depends(get_property_service)
) -> PropertyResponse:
    property_obj = await property_service.request_deletion(property_id, current_user)
    return PropertyResponse.model_validate(property_obj.to_dict())


@router.post(
    "/{property_id}/confirm-deletion",
    status_code=status.HTTP_200_OK,
    summary="Confirm deletion",
    description="Superadmin removes a listing pending deletion; its views move to the agent's totals",
    responses=CRUD_ERROR_RESPONSES
)
async def confirm_deletion(
    property_id: UUID = Path(..., description="Property ID"),
    current_user: User = Depends(get_current_superadmin),
    property_service: PropertyService = Depends(get_property_service)
) -> dict:
    return await property_service.confirm_deletion(property_id, current_user)


@router.post(
    "/{property_id}/view",
    response_model=ViewCountResponse,
    status_code=status.HTTP_200_OK,
    summary="Record a view",
    responses={404: ERROR_RESPONSES[404], 429: {"description": "Owner viewed again within the cooldown"}}
)
async def record_view(
    property_id: UUID = Path(..., description="Property ID"),
    session_id: Optional[str] = Query(None, description="Anonymous viewer session"),
    x_session_id: Optional[str] = Header(None),
    current_user: Optional[User] = Depends(get_optional_current_user),
    property_service: PropertyService = Depends(get_property_service)
) -> ViewCountResponse:
    result = await property_service.increment_view(
        property_id,
        viewer=current_user,
        session_id=x_session_id or session_id
    )
    return ViewCountResponse(**result)
