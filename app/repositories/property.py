"""
Property repository for listings with filtering, visibility rules and sorting.
Soft-deleted listings never leave this layer through a search.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, delete, and_, or_, func, desc
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import selectinload
from app.repositories.base import BaseRepository
from app.models.property import Property, PropertyType, ListingType, PropertyStatus, DeletionStatus
from app.models.property_viewer import PropertyViewer
from datetime import datetime
from typing import Optional, List, Dict, Any, Tuple
from decimal import Decimal
import uuid
import logging

logger = logging.getLogger(__name__)

SORT_LATEST = "latest"
SORT_MOST_VIEWED = "most_viewed"
SORT_DELETION_REQUESTED = "deletion_requested"

# INSERT ... ON CONFLICT DO NOTHING for the backends we run on
_UPSERT_INSERT = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


class PropertySearchFilters:
    """Data class for property search filters."""

    def __init__(
        self,
        district: Optional[str] = None,
        listing_type: Optional[ListingType] = None,
        property_type: Optional[PropertyType] = None,
        status: Optional[PropertyStatus] = None,
        featured: Optional[bool] = None,
        agent_id: Optional[uuid.UUID] = None,
        search_text: Optional[str] = None,
        min_price: Optional[Decimal] = None,
        max_price: Optional[Decimal] = None,
        exclude_pending: bool = False,
        deletion_status: Optional[DeletionStatus] = None,
        sort: str = SORT_LATEST
    ):
        self.district = district
        self.listing_type = listing_type
        self.property_type = property_type
        self.status = status
        self.featured = featured
        self.agent_id = agent_id
        self.search_text = search_text
        self.min_price = min_price
        self.max_price = max_price
        self.exclude_pending = exclude_pending
        self.deletion_status = deletion_status
        self.sort = sort


class PropertyRepository(BaseRepository[Property]):
    """
    Repository for property listings.
    """

    def __init__(self, db: AsyncSession):
        super().__init__(Property, db)

    async def create_property(self, property_data: Dict[str, Any]) -> Property:
        """
        Create a new property after model-level validation.

        Raises:
            ValueError: If validation fails
        """
        property_obj = Property(**property_data)
        try:
            property_obj.validate_all()
        except ValueError as e:
            logger.error(f"Property validation failed: {e}")
            raise

        try:
            self.db.add(property_obj)
            await self.db.commit()
            await self.db.refresh(property_obj)
            logger.info(f"Created property #{property_obj.property_id}: {property_obj.title} (ID: {property_obj.id})")
            return property_obj
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Failed to create property: {e}")
            raise

    async def get_property_with_agent(self, property_id: uuid.UUID) -> Optional[Property]:
        try:
            query = (
                select(Property)
                .options(selectinload(Property.agent))
                .where(Property.id == property_id)
                .execution_options(populate_existing=True)
            )
            result = await self.db.execute(query)
            return result.scalar_one_or_none()
        except Exception as e:
            logger.error(f"Failed to get property with agent {property_id}: {e}")
            raise

    async def search_properties(
        self,
        filters: PropertySearchFilters,
        skip: int = 0,
        limit: int = 20
    ) -> Tuple[List[Property], int]:
        """
        Search visible properties with filtering and pagination.

        Args:
            filters: PropertySearchFilters instance with search criteria
            skip: Number of records to skip for pagination
            limit: Maximum number of records to return

        Returns:
            Tuple of (properties list, total count)
        """
        try:
            conditions = self._build_filter_conditions(filters)

            count_query = select(func.count(Property.id)).where(and_(*conditions))
            count_result = await self.db.execute(count_query)
            total_count = count_result.scalar()

            query = select(Property).where(and_(*conditions))
            if filters.sort == SORT_MOST_VIEWED:
                query = query.order_by(desc(Property.unique_view_count), desc(Property.created_at))
            elif filters.sort == SORT_DELETION_REQUESTED:
                query = query.order_by(desc(Property.deletion_requested_at), desc(Property.created_at))
            else:
                query = query.order_by(desc(Property.created_at))
            query = query.offset(skip).limit(limit)

            result = await self.db.execute(query)
            properties = result.scalars().all()

            logger.debug(f"Property search returned {len(properties)} of {total_count} total results")
            return list(properties), total_count
        except Exception as e:
            logger.error(f"Failed to search properties: {e}")
            raise

    async def find_similar(
        self,
        district: str,
        exclude_id: Optional[uuid.UUID] = None,
        limit: int = 6
    ) -> List[Property]:
        """
        Visible listings in the same district: featured first, then most viewed, then newest.
        """
        conditions = [
            Property.deletion_status != DeletionStatus.DELETED,
            Property.district == district,
        ]
        if exclude_id is not None:
            conditions.append(Property.id != exclude_id)

        query = (
            select(Property)
            .where(and_(*conditions))
            .order_by(desc(Property.featured), desc(Property.view_count), desc(Property.created_at))
            .limit(limit)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def view_totals_for_agent(self, agent_id: uuid.UUID) -> Tuple[int, int, int]:
        """
        Views, unique views and listing count over the agent's listings that
        have not been deleted.
        """
        query = (
            select(
                func.coalesce(func.sum(Property.view_count), 0),
                func.coalesce(func.sum(Property.unique_view_count), 0),
                func.count(Property.id),
            )
            .where(Property.agent_id == agent_id)
            .where(Property.deletion_status != DeletionStatus.DELETED)
        )
        views, unique_views, listings = (await self.db.execute(query)).one()
        return int(views), int(unique_views), int(listings)

    async def record_viewer(self, listing_id: uuid.UUID, viewer_key: str, anonymous: bool) -> Tuple[bool, int]:
        """
        Count one view from ``viewer_key`` on a listing.

        Both statements run in SQL, so concurrent views neither lose counts
        nor count the same viewer as new twice.

        Returns:
            Tuple of (first view by this viewer, this viewer's total views)
        """
        insert = _UPSERT_INSERT[self.db.get_bind().dialect.name]
        try:
            created = await self.db.execute(
                insert(PropertyViewer)
                .values(listing_id=listing_id, viewer_key=viewer_key, anonymous=anonymous, view_count=0)
                .on_conflict_do_nothing(index_elements=["listing_id", "viewer_key"])
                .returning(PropertyViewer.id)
            )
            first_view = created.scalar_one_or_none() is not None

            counted = await self.db.execute(
                update(PropertyViewer)
                .where(PropertyViewer.listing_id == listing_id, PropertyViewer.viewer_key == viewer_key)
                .values(view_count=PropertyViewer.view_count + 1)
                .returning(PropertyViewer.view_count)
                .execution_options(synchronize_session=False)
            )
            viewer_total = counted.scalar_one()
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Failed to record viewer {viewer_key} on property {listing_id}: {e}")
            raise

        return first_view, viewer_total

    async def add_view(
        self,
        listing_id: uuid.UUID,
        viewed_at: datetime,
        unique: bool = False,
        owner_view: bool = False
    ) -> Optional[Tuple[int, int]]:
        """
        Increment the listing's view counters in a single UPDATE.

        Returns:
            Tuple of (view_count, unique_view_count) after the update, or None
            if the listing no longer exists
        """
        values: Dict[str, Any] = {
            "view_count": Property.view_count + 1,
            "last_viewed_at": viewed_at,
        }
        if unique:
            values["unique_view_count"] = Property.unique_view_count + 1
        if owner_view:
            values["last_owner_view_at"] = viewed_at

        try:
            result = await self.db.execute(
                update(Property)
                .where(Property.id == listing_id)
                .values(**values)
                .returning(Property.view_count, Property.unique_view_count)
                .execution_options(synchronize_session=False)
            )
            row = result.one_or_none()
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Failed to count view on property {listing_id}: {e}")
            raise

        return (row[0], row[1]) if row else None

    async def delete(self, id: uuid.UUID) -> bool:
        """Hard delete the listing together with its viewer rows."""
        try:
            await self.db.execute(delete(PropertyViewer).where(PropertyViewer.listing_id == id))
            result = await self.db.execute(delete(Property).where(Property.id == id))
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Failed to delete property {id}: {e}")
            raise

        return result.rowcount > 0

    def _build_filter_conditions(self, filters: PropertySearchFilters) -> List:
        """
        Build SQLAlchemy filter conditions from search filters.
        The deletion status condition is always present.
        """
        hidden = [DeletionStatus.DELETED]
        if filters.exclude_pending:
            hidden.append(DeletionStatus.PENDING_DELETION)
        conditions = [Property.deletion_status.notin_(hidden)]

        if filters.deletion_status:
            conditions.append(Property.deletion_status == filters.deletion_status)

        if filters.district:
            conditions.append(Property.district == filters.district)

        if filters.listing_type:
            conditions.append(Property.listing_type == filters.listing_type)

        if filters.property_type:
            conditions.append(Property.property_type == filters.property_type)

        if filters.status:
            conditions.append(Property.status == filters.status)

        if filters.featured is not None:
            conditions.append(Property.featured == filters.featured)

        if filters.agent_id:
            conditions.append(Property.agent_id == filters.agent_id)

        if filters.min_price is not None:
            conditions.append(Property.price >= filters.min_price)
        if filters.max_price is not None:
            conditions.append(Property.price <= filters.max_price)

        # Case-insensitive match on title, location or description
        if filters.search_text:
            search_term = f"%{filters.search_text.strip()}%"
            conditions.append(
                or_(
                    Property.title.ilike(search_term),
                    Property.location.ilike(search_term),
                    Property.description.ilike(search_term)
                )
            )

        return conditions
