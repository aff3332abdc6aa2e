"""
Property service for managing property listings with business logic validation.
Handles creation with sequential numbering, ownership checks, search, the
soft-deletion workflow and view counting.
"""

from datetime import timedelta
from typing import Optional, List, Dict, Any, Tuple, Union
from sqlalchemy.ext.asyncio import AsyncSession
from app.config import settings
from app.database import as_utc, utcnow
from app.repositories.counter import CounterRepository
from app.repositories.property import PropertyRepository, PropertySearchFilters, SORT_DELETION_REQUESTED
from app.repositories.user import UserRepository
from app.models.counter import PROPERTY_ID_COUNTER
from app.models.property import (
    Property,
    ListingType,
    DeletionStatus,
    TITLE_SUFFIXES,
    DEFAULT_STATUS,
)
from app.models.user import User
from app.schemas.property import PropertyCreate, PropertyUpdate
from app.services.events import PropertyEventManager, property_events
from app.utils.exceptions import (
    APIException,
    ForbiddenError,
    ValidationError,
    BadRequestError,
    InsufficientPermissionsError,
    PropertyNotFoundError,
    PropertyOwnershipError,
    PropertyStatusError,
    RateLimitExceededError,
    UserNotFoundError,
)
import uuid
import logging

logger = logging.getLogger(__name__)

# Fields a listing owner may change through a partial update
ALLOWED_UPDATE_FIELDS = frozenset({
    "title", "description", "price", "location", "district", "bedrooms",
    "bathrooms", "listing_type", "property_type", "status", "measurement",
    "sqft", "year_built", "lot_size", "features", "amenities", "featured",
    "thumbnail_image", "images",
})

# Optional details that a null in an update clears; nulls for other fields are ignored
CLEARABLE_UPDATE_FIELDS = frozenset({"measurement", "sqft", "year_built", "lot_size"})


def enhance_title(title: str, listing_type: ListingType) -> str:
    """Append the Somali listing-type suffix unless the title already carries it."""
    suffix = TITLE_SUFFIXES[listing_type]
    if suffix.strip().lower() in title.lower():
        return title
    return f"{title}{suffix}"


def dedupe_images(thumbnail: str, images: List[str]) -> List[str]:
    """Drop the thumbnail and repeated URLs from the additional images, keeping order."""
    seen = {thumbnail} if thumbnail else set()
    unique = []
    for url in images:
        if url and url not in seen:
            seen.add(url)
            unique.append(url)
    return unique


class PropertyService:
    """
    Property service for managing listings with ownership and visibility rules.
    """

    def __init__(self, db_session: AsyncSession, events: PropertyEventManager = property_events):
        self.db = db_session
        self.events = events
        self.property_repo = PropertyRepository(db_session)
        self.user_repo = UserRepository(db_session)
        self.counter_repo = CounterRepository(db_session)

    async def create_property(self, property_data: PropertyCreate, current_user: User) -> Property:
        """
        Create a new listing owned by ``current_user``.

        The listing starts without images; they are attached by a later patch.

        Raises:
            InsufficientPermissionsError: If the user cannot add listings
            ValidationError: If property data is invalid
        """
        try:
            if not self.can_create_property(current_user):
                raise InsufficientPermissionsError("create properties")

            if not current_user.is_active:
                raise ForbiddenError("Inactive users cannot create properties")

            create_data = property_data.model_dump()
            listing_type = property_data.listing_type
            create_data.update({
                "title": enhance_title(property_data.title, listing_type),
                "status": property_data.status or DEFAULT_STATUS[listing_type],
                "thumbnail_image": "",
                "images": [],
                "deletion_status": DeletionStatus.ACTIVE,
                "agent_id": current_user.id,
                "agent_name": current_user.full_name,
                "agent_phone": current_user.phone,
            })

            create_data["property_id"] = await self.counter_repo.next_value(PROPERTY_ID_COUNTER)

            try:
                property_obj = await self.property_repo.create_property(create_data)
            except ValueError as e:
                raise ValidationError(str(e))

            await self.user_repo.increment_counters(current_user.id, total_properties=1)

            logger.info(f"Property created by user {current_user.phone}: {property_obj.title} (#{property_obj.property_id})")
            self.events.notify_added(str(property_obj.id))
            return property_obj

        except APIException:
            raise
        except Exception as e:
            logger.error(f"Failed to create property for user {current_user.id}: {e}")
            raise BadRequestError(f"Failed to create property: {str(e)}")

    async def get_property(self, property_id: uuid.UUID, include_deleted: bool = False) -> Property:
        """
        Get a listing with its agent loaded.

        Raises:
            PropertyNotFoundError: If missing, or soft-deleted and include_deleted is False
        """
        property_obj = await self.property_repo.get_property_with_agent(property_id)
        if not property_obj or (property_obj.is_deleted and not include_deleted):
            raise PropertyNotFoundError(str(property_id))
        return property_obj

    async def search_properties(
        self,
        filters: PropertySearchFilters,
        page: int = 1,
        page_size: int = 20
    ) -> Tuple[List[Property], int]:
        """Visible listings matching ``filters``; soft-deleted ones are always excluded."""
        try:
            page_size = min(page_size, settings.max_page_size)
            skip = (page - 1) * page_size
            return await self.property_repo.search_properties(filters, skip=skip, limit=page_size)
        except Exception as e:
            logger.error(f"Failed to search properties: {e}")
            raise BadRequestError(f"Failed to search properties: {str(e)}")

    async def get_agent_properties(
        self,
        agent: User,
        page: int = 1,
        page_size: int = 20
    ) -> Tuple[List[Property], int]:
        """Agent dashboard: the agent's own listings, hiding pending and deleted ones."""
        filters = PropertySearchFilters(agent_id=agent.id, exclude_pending=True)
        return await self.search_properties(filters, page, page_size)

    async def update_property(
        self,
        property_id: uuid.UUID,
        property_data: Union[PropertyUpdate, Dict[str, Any]],
        current_user: User
    ) -> Property:
        """
        Apply a partial update from the owner or a superadmin.

        Fields outside the allowed set are ignored. Whenever images change,
        the thumbnail URL is removed from the additional images.

        Raises:
            PropertyNotFoundError: If the listing is missing or deleted
            PropertyOwnershipError: If the user does not own the listing
            ValidationError: If the result violates listing rules
        """
        try:
            property_obj = await self.get_property(property_id)
            if not current_user.can_manage_property(property_obj.agent_id):
                raise PropertyOwnershipError("You can only update your own properties")

            if isinstance(property_data, PropertyUpdate):
                changes = property_data.model_dump(exclude_unset=True)
            else:
                changes = dict(property_data)

            ignored = set(changes) - ALLOWED_UPDATE_FIELDS
            if ignored:
                logger.warning(f"Ignoring non-updatable fields on property {property_id}: {sorted(ignored)}")
            changes = {
                k: v for k, v in changes.items()
                if k in ALLOWED_UPDATE_FIELDS and (v is not None or k in CLEARABLE_UPDATE_FIELDS)
            }

            if "images" in changes or "thumbnail_image" in changes:
                thumbnail = changes.get("thumbnail_image", property_obj.thumbnail_image)
                changes["images"] = dedupe_images(thumbnail, changes.get("images", property_obj.images))

            for field, value in changes.items():
                setattr(property_obj, field, value)

            try:
                property_obj.validate_all()
            except ValueError as e:
                await self.db.rollback()
                raise ValidationError(str(e))

            updated = await self.property_repo.save(property_obj)
            logger.info(f"Property {property_id} updated by user {current_user.phone}: {sorted(changes)}")
            self.events.notify_updated(str(updated.id))
            return updated

        except APIException:
            raise
        except Exception as e:
            logger.error(f"Failed to update property {property_id}: {e}")
            raise BadRequestError(f"Failed to update property: {str(e)}")

    async def delete_property(self, property_id: uuid.UUID, current_user: User) -> Property:
        """
        Soft delete: the row stays but disappears from every listing query.
        """
        property_obj = await self.get_property(property_id)
        if not current_user.can_manage_property(property_obj.agent_id):
            raise PropertyOwnershipError("You can only delete your own properties")

        now = utcnow()
        deleted = await self.property_repo.save(property_obj, {
            "deletion_status": DeletionStatus.DELETED,
            "deletion_confirmed_at": now,
            "deletion_confirmed_by": current_user.id,
        })
        logger.info(f"Property {property_id} soft deleted by user {current_user.phone}")
        self.events.notify_deleted(str(deleted.id))
        return deleted

    async def request_deletion(self, property_id: uuid.UUID, current_user: User) -> Property:
        """
        Owner asks a superadmin to remove the listing.

        Raises:
            PropertyStatusError: If the listing is not active
        """
        property_obj = await self.get_property(property_id)
        if not current_user.can_manage_property(property_obj.agent_id):
            raise PropertyOwnershipError("You can only request deletion of your own properties")

        if property_obj.deletion_status != DeletionStatus.ACTIVE:
            raise PropertyStatusError(
                f"Deletion can only be requested for active properties (current: {property_obj.deletion_status.value})"
            )

        pending = await self.property_repo.save(property_obj, {
            "deletion_status": DeletionStatus.PENDING_DELETION,
            "deletion_requested_at": utcnow(),
            "deletion_requested_by": current_user.id,
        })
        logger.info(f"Deletion requested for property {property_id} by user {current_user.phone}")
        self.events.notify_updated(str(pending.id))
        return pending

    async def confirm_deletion(self, property_id: uuid.UUID, current_user: User) -> Dict[str, Any]:
        """
        Superadmin approves a pending deletion and the row is removed.

        The listing's views are first carried over to the agent's
        deleted_properties_views so cumulative totals survive.

        Raises:
            InsufficientPermissionsError: If the user is not a superadmin
            PropertyStatusError: If the listing is not pending deletion
        """
        if not current_user.is_superadmin:
            raise InsufficientPermissionsError("confirm property deletion")

        property_obj = await self.get_property(property_id, include_deleted=True)
        if property_obj.deletion_status != DeletionStatus.PENDING_DELETION:
            raise PropertyStatusError("Property is not pending deletion")

        property_number = property_obj.property_id
        views = property_obj.view_count
        agent_id = property_obj.agent_id

        if agent_id:
            await self.user_repo.increment_counters(agent_id, deleted_properties_views=views)

        await self.property_repo.delete(property_id)
        logger.info(f"Deletion of property #{property_number} confirmed by superadmin {current_user.phone}")
        self.events.notify_deleted(str(property_id))

        return {
            "id": str(property_id),
            "property_id": property_number,
            "views_preserved": views,
            "confirmed_by": str(current_user.id),
        }

    async def increment_view(
        self,
        property_id: uuid.UUID,
        viewer: Optional[User] = None,
        session_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Record a listing view.

        Owners viewing their own listing are limited to one counted view per
        cooldown period. Signed-in viewers are tracked by user id, anonymous
        ones by session id; either counts once towards unique views. Every
        counter is incremented in SQL, so concurrent views are all kept.

        Raises:
            PropertyNotFoundError: If the listing is missing or deleted
            RateLimitExceededError: Owner viewed again within the cooldown
        """
        property_obj = await self.get_property(property_id)
        now = utcnow()

        is_owner = viewer is not None and property_obj.agent_id == viewer.id
        if is_owner:
            cooldown = timedelta(minutes=settings.owner_view_cooldown_minutes)
            last_owner_view = as_utc(property_obj.last_owner_view_at)
            if last_owner_view and now - last_owner_view < cooldown:
                retry_after = int((cooldown - (now - last_owner_view)).total_seconds()) + 1
                raise RateLimitExceededError(retry_after, "Owner views are limited to one per hour")

        counted_as_unique = False
        excessive = False
        viewer_key = str(viewer.id) if viewer else session_id
        if viewer_key:
            counted_as_unique, viewer_total = await self.property_repo.record_viewer(
                property_obj.id, viewer_key, anonymous=viewer is None
            )
            excessive = viewer_total > settings.excessive_view_threshold
            if excessive:
                logger.warning(f"Excessive views on property {property_id} from {viewer_key}: {viewer_total}")

        agent_id = property_obj.agent_id
        counts = await self.property_repo.add_view(
            property_obj.id, now, unique=counted_as_unique, owner_view=is_owner
        )
        if counts is None:
            raise PropertyNotFoundError(str(property_id))
        view_count, unique_view_count = counts

        if agent_id:
            await self.user_repo.increment_counters(agent_id, total_views=1)

        return {
            "property_id": property_obj.id,
            "view_count": view_count,
            "unique_view_count": unique_view_count,
            "counted_as_unique": counted_as_unique,
            "excessive": excessive,
        }

    async def get_pending_deletions(
        self,
        current_user: User,
        page: int = 1,
        page_size: int = 20
    ) -> Tuple[List[Property], int]:
        """
        Superadmin review queue: listings awaiting deletion, most recent request first.

        Raises:
            InsufficientPermissionsError: If the user is not a superadmin
        """
        if not current_user.is_superadmin:
            raise InsufficientPermissionsError("view pending deletions")

        filters = PropertySearchFilters(
            deletion_status=DeletionStatus.PENDING_DELETION,
            sort=SORT_DELETION_REQUESTED
        )
        return await self.search_properties(filters, page, page_size)

    async def find_similar(
        self,
        district: str,
        exclude_id: Optional[uuid.UUID] = None,
        limit: int = 6
    ) -> List[Property]:
        """Listings in the same district, excluding the one being viewed."""
        district = district.strip()
        if not district:
            raise ValidationError("District is required")
        return await self.property_repo.find_similar(district, exclude_id, min(limit, settings.max_page_size))

    async def list_agents(self) -> List[User]:
        return await self.user_repo.list_active_agents()

    async def get_agent_profile(self, agent_id: uuid.UUID, listing_limit: int = 8) -> Tuple[User, List[Property], int]:
        """
        Public agent page: the agent and their newest visible listings.

        Returns:
            Tuple of (agent, listings, number of visible listings)

        Raises:
            UserNotFoundError: If no active agent has this id
        """
        agent = await self.user_repo.get_by_id(agent_id)
        if agent is None or not agent.is_agent or not agent.is_active:
            raise UserNotFoundError(str(agent_id))

        properties, total = await self.search_properties(
            PropertySearchFilters(agent_id=agent.id), page=1, page_size=listing_limit
        )
        return agent, properties, total

    async def get_agent_view_stats(self, agent_id: uuid.UUID, current_user: User) -> Dict[str, Any]:
        """
        Views on the agent's current listings plus the views carried over from
        listings that were deleted.

        Raises:
            ForbiddenError: Unless the caller is that agent or a superadmin
            UserNotFoundError: If the agent does not exist
        """
        if current_user.id != agent_id and not current_user.is_superadmin:
            raise ForbiddenError("You can only view your own statistics")

        agent = await self.user_repo.get_by_id(agent_id)
        if agent is None:
            raise UserNotFoundError(str(agent_id))

        current_views, current_unique_views, listings = await self.property_repo.view_totals_for_agent(agent.id)
        return {
            "agent_id": agent.id,
            "agent_name": agent.full_name,
            "current_views": current_views,
            "current_unique_views": current_unique_views,
            "current_property_count": listings,
            "deleted_properties_views": agent.deleted_properties_views,
            "combined_views": current_views + agent.deleted_properties_views,
            "total_views": agent.total_views,
            "total_properties": agent.total_properties,
        }

    async def resolve_agent(self, property_obj: Property) -> Optional[User]:
        """
        Find the agent behind a listing.

        Uses agent_id when it still points at a user. Older listings can have
        a missing or dangling agent_id; those fall back to the agent name and
        phone copied onto the listing, which is logged as a data problem.
        """
        if property_obj.agent_id:
            agent = await self.user_repo.get_by_id(property_obj.agent_id)
            if agent:
                return agent

        agent = await self.user_repo.find_agent_by_name_or_phone(
            name=property_obj.agent_name,
            phone=property_obj.agent_phone
        )
        if agent:
            logger.warning(
                f"Property #{property_obj.property_id} has no valid agent_id; "
                f"matched agent {agent.id} by name/phone"
            )
        else:
            logger.warning(f"Property #{property_obj.property_id} has no resolvable agent")
        return agent

    def can_create_property(self, user: User) -> bool:
        """Superadmins always, agents only while they hold listing rights."""
        if user.is_superadmin:
            return True
        return user.is_agent and user.can_add_properties
