"""
Tests for listing creation, updates, soft deletion, the deletion workflow and view counting.
"""

import asyncio
import pytest
import uuid
from datetime import timedelta
from decimal import Decimal

from sqlalchemy import select

from app.database import AsyncSessionLocal, utcnow
from app.models.counter import PROPERTY_ID_COUNTER
from app.models.property import DeletionStatus, ListingType, PropertyStatus
from app.models.property_viewer import PropertyViewer
from app.models.user import User, UserRole, UserStatus
from app.repositories.counter import CounterRepository
from app.repositories.property import PropertySearchFilters, SORT_MOST_VIEWED
from app.repositories.user import UserRepository
from app.schemas.property import PropertyCreate, PropertyUpdate
from app.services.events import PropertyEventManager, PropertyEventType
from app.services.property import PropertyService, dedupe_images, enhance_title
from app.utils.exceptions import (
    ForbiddenError,
    InsufficientPermissionsError,
    PropertyNotFoundError,
    PropertyOwnershipError,
    PropertyStatusError,
    RateLimitExceededError,
    UserNotFoundError,
    ValidationError,
)


async def create_listing(service: PropertyService, agent: User, **overrides):
    data = {
        "title": "Guri cusub",
        "description": "Three bedroom house near the main road",
        "price": Decimal("450.00"),
        "location": "Taleex",
        "district": "Hodan",
        "bedrooms": 3,
        "bathrooms": 2,
        "listing_type": ListingType.RENT,
    }
    data.update(overrides)
    return await service.create_property(PropertyCreate(**data), agent)


class TestTitleAndImageHelpers:

    def test_enhance_title_appends_suffix(self):
        assert enhance_title("Guri", ListingType.RENT) == "Guri Kiro ah"
        assert enhance_title("Villa", ListingType.SALE) == "Villa iib ah"

    def test_enhance_title_is_idempotent(self):
        assert enhance_title("Guri Kiro ah", ListingType.RENT) == "Guri Kiro ah"

    def test_dedupe_images(self):
        assert dedupe_images("t", ["a", "t", "a", "", "b"]) == ["a", "b"]


class TestCreateProperty:

    @pytest.mark.asyncio
    async def test_create_assigns_number_title_and_status(
        self, property_service: PropertyService, test_agent: User, recorded_events
    ):
        property_obj = await create_listing(property_service, test_agent)

        assert property_obj.property_id == 1
        assert property_obj.title == "Guri cusub Kiro ah"
        assert property_obj.status == PropertyStatus.FOR_RENT
        assert property_obj.thumbnail_image == ""
        assert property_obj.images == []
        assert property_obj.agent_id == test_agent.id
        assert property_obj.agent_phone == test_agent.phone
        assert property_obj.deletion_status == DeletionStatus.ACTIVE
        assert [e.type for e in recorded_events] == [PropertyEventType.ADDED]

    @pytest.mark.asyncio
    async def test_property_numbers_are_sequential(self, property_service: PropertyService, test_agent: User):
        first = await create_listing(property_service, test_agent)
        second = await create_listing(property_service, test_agent, listing_type=ListingType.SALE)

        assert second.property_id == first.property_id + 1
        assert second.status == PropertyStatus.FOR_SALE

    @pytest.mark.asyncio
    async def test_counter_seeds_from_existing_numbers(
        self, db_session, property_service: PropertyService, test_agent: User
    ):
        await create_listing(property_service, test_agent)
        await create_listing(property_service, test_agent)
        counter_repo = CounterRepository(db_session)

        assert await counter_repo.current_value(PROPERTY_ID_COUNTER) == 2
        assert await counter_repo.next_value("otherCounter") == 3

    @pytest.mark.asyncio
    async def test_agent_total_properties_increments(
        self, db_session, property_service: PropertyService, test_agent: User
    ):
        await create_listing(property_service, test_agent)
        await create_listing(property_service, test_agent)

        agent = await UserRepository(db_session).get_by_id(test_agent.id)
        assert agent.total_properties == 2

    @pytest.mark.asyncio
    async def test_regular_user_cannot_create(self, property_service: PropertyService, test_user: User):
        with pytest.raises(InsufficientPermissionsError):
            await create_listing(property_service, test_user)

    @pytest.mark.asyncio
    async def test_agent_without_listing_rights_cannot_create(self, property_service: PropertyService, user_factory):
        agent = await user_factory(UserRole.AGENT, can_add_properties=False)

        with pytest.raises(InsufficientPermissionsError):
            await create_listing(property_service, agent)

    @pytest.mark.asyncio
    async def test_superadmin_can_create(self, property_service: PropertyService, test_superadmin: User):
        property_obj = await create_listing(property_service, test_superadmin)

        assert property_obj.agent_id == test_superadmin.id


class TestUpdateProperty:

    @pytest.mark.asyncio
    async def test_owner_updates_fields(self, property_service: PropertyService, test_agent: User, test_property):
        updated = await property_service.update_property(
            test_property.id,
            PropertyUpdate(price=Decimal("500.00"), bedrooms=4),
            test_agent
        )

        assert updated.price == Decimal("500.00")
        assert updated.bedrooms == 4

    @pytest.mark.asyncio
    async def test_thumbnail_is_removed_from_images(
        self, property_service: PropertyService, test_agent: User, test_property
    ):
        updated = await property_service.update_property(
            test_property.id,
            {"thumbnail_image": "https://cdn/a.webp", "images": ["https://cdn/a.webp", "https://cdn/b.webp"]},
            test_agent
        )

        assert updated.thumbnail_image == "https://cdn/a.webp"
        assert updated.images == ["https://cdn/b.webp"]

    @pytest.mark.asyncio
    async def test_protected_fields_are_ignored(
        self, property_service: PropertyService, test_agent: User, test_property
    ):
        updated = await property_service.update_property(
            test_property.id,
            {"view_count": 999, "deletion_status": DeletionStatus.DELETED, "title": "Renamed"},
            test_agent
        )

        assert updated.view_count == 0
        assert updated.deletion_status == DeletionStatus.ACTIVE
        assert updated.title == "Renamed"

    @pytest.mark.asyncio
    async def test_other_agent_cannot_update(
        self, property_service: PropertyService, other_agent: User, test_property
    ):
        with pytest.raises(PropertyOwnershipError):
            await property_service.update_property(test_property.id, {"title": "Mine now"}, other_agent)

    @pytest.mark.asyncio
    async def test_superadmin_can_update_any(
        self, property_service: PropertyService, test_superadmin: User, test_property
    ):
        updated = await property_service.update_property(test_property.id, {"featured": True}, test_superadmin)

        assert updated.featured is True

    @pytest.mark.asyncio
    async def test_invalid_result_is_rejected(
        self, property_service: PropertyService, test_agent: User, test_property
    ):
        with pytest.raises(ValidationError):
            await property_service.update_property(test_property.id, {"bedrooms": -1}, test_agent)

    @pytest.mark.asyncio
    async def test_null_clears_optional_details(self, property_service: PropertyService, test_agent: User):
        listing = await create_listing(property_service, test_agent, measurement="20x30", sqft=600)

        updated = await property_service.update_property(
            listing.id,
            PropertyUpdate(measurement=None, sqft=None),
            test_agent
        )

        assert updated.measurement is None
        assert updated.sqft is None

    @pytest.mark.asyncio
    async def test_null_leaves_required_fields_alone(
        self, property_service: PropertyService, test_agent: User, test_property
    ):
        updated = await property_service.update_property(
            test_property.id, {"bedrooms": None, "measurement": None}, test_agent
        )

        assert updated.bedrooms == 3
        assert updated.measurement is None

    @pytest.mark.asyncio
    async def test_update_emits_event(
        self, property_service: PropertyService, test_agent: User, test_property, recorded_events
    ):
        await property_service.update_property(test_property.id, {"title": "New"}, test_agent)

        assert recorded_events[-1].type == PropertyEventType.UPDATED
        assert recorded_events[-1].property_id == str(test_property.id)


class TestSoftDeletion:

    @pytest.mark.asyncio
    async def test_deleted_listing_is_hidden(
        self, property_service: PropertyService, test_agent: User, test_property, recorded_events
    ):
        deleted = await property_service.delete_property(test_property.id, test_agent)

        assert deleted.deletion_status == DeletionStatus.DELETED
        assert deleted.deletion_confirmed_by == test_agent.id
        assert recorded_events[-1].type == PropertyEventType.DELETED

        with pytest.raises(PropertyNotFoundError):
            await property_service.get_property(test_property.id)

        properties, total = await property_service.search_properties(PropertySearchFilters())
        assert total == 0
        assert properties == []

        still_there = await property_service.get_property(test_property.id, include_deleted=True)
        assert still_there.id == test_property.id

    @pytest.mark.asyncio
    async def test_other_agent_cannot_delete(
        self, property_service: PropertyService, other_agent: User, test_property
    ):
        with pytest.raises(PropertyOwnershipError):
            await property_service.delete_property(test_property.id, other_agent)


class TestDeletionWorkflow:

    @pytest.mark.asyncio
    async def test_request_then_confirm(
        self, db_session, property_service: PropertyService, test_agent: User, test_superadmin: User, test_property
    ):
        await property_service.increment_view(test_property.id, session_id="s1")
        await property_service.increment_view(test_property.id, session_id="s2")

        pending = await property_service.request_deletion(test_property.id, test_agent)
        assert pending.deletion_status == DeletionStatus.PENDING_DELETION
        assert pending.deletion_requested_by == test_agent.id

        result = await property_service.confirm_deletion(test_property.id, test_superadmin)

        assert result["views_preserved"] == 2
        agent = await UserRepository(db_session).get_by_id(test_agent.id)
        assert agent.deleted_properties_views == 2
        assert agent.total_views == 2
        with pytest.raises(PropertyNotFoundError):
            await property_service.get_property(test_property.id, include_deleted=True)

    @pytest.mark.asyncio
    async def test_pending_listing_still_public_but_hidden_from_agent_dashboard(
        self, property_service: PropertyService, test_agent: User, test_property
    ):
        await property_service.request_deletion(test_property.id, test_agent)

        _, public_total = await property_service.search_properties(PropertySearchFilters())
        mine, mine_total = await property_service.get_agent_properties(test_agent)

        assert public_total == 1
        assert mine_total == 0
        assert mine == []

    @pytest.mark.asyncio
    async def test_request_twice_fails(self, property_service: PropertyService, test_agent: User, test_property):
        await property_service.request_deletion(test_property.id, test_agent)

        with pytest.raises(PropertyStatusError):
            await property_service.request_deletion(test_property.id, test_agent)

    @pytest.mark.asyncio
    async def test_confirm_requires_superadmin(
        self, property_service: PropertyService, test_agent: User, test_property
    ):
        await property_service.request_deletion(test_property.id, test_agent)

        with pytest.raises(InsufficientPermissionsError):
            await property_service.confirm_deletion(test_property.id, test_agent)

    @pytest.mark.asyncio
    async def test_confirm_requires_pending(
        self, property_service: PropertyService, test_superadmin: User, test_property
    ):
        with pytest.raises(PropertyStatusError):
            await property_service.confirm_deletion(test_property.id, test_superadmin)

    @pytest.mark.asyncio
    async def test_pending_queue_is_superadmin_only(
        self, property_service: PropertyService, test_agent: User, test_superadmin: User, test_property
    ):
        untouched = await create_listing(property_service, test_agent)
        await property_service.request_deletion(test_property.id, test_agent)

        pending, total = await property_service.get_pending_deletions(test_superadmin)

        assert total == 1
        assert [p.id for p in pending] == [test_property.id]
        assert untouched.id not in [p.id for p in pending]
        with pytest.raises(InsufficientPermissionsError):
            await property_service.get_pending_deletions(test_agent)

    @pytest.mark.asyncio
    async def test_pending_queue_newest_request_first(
        self, property_service: PropertyService, test_agent: User, test_superadmin: User, test_property
    ):
        second = await create_listing(property_service, test_agent)
        await property_service.request_deletion(test_property.id, test_agent)
        await property_service.property_repo.save(
            test_property, {"deletion_requested_at": utcnow() - timedelta(days=1)}
        )
        await property_service.request_deletion(second.id, test_agent)

        pending, _ = await property_service.get_pending_deletions(test_superadmin)

        assert [p.id for p in pending] == [second.id, test_property.id]


class TestViews:

    @pytest.mark.asyncio
    async def test_anonymous_sessions_count_once(self, property_service: PropertyService, test_property):
        first = await property_service.increment_view(test_property.id, session_id="abc")
        second = await property_service.increment_view(test_property.id, session_id="abc")

        assert first["counted_as_unique"] is True
        assert second["counted_as_unique"] is False
        assert second["view_count"] == 2
        assert second["unique_view_count"] == 1

    @pytest.mark.asyncio
    async def test_signed_in_viewer_is_tracked_by_id(
        self, db_session, property_service: PropertyService, test_user: User, test_property
    ):
        await property_service.increment_view(test_property.id, viewer=test_user)
        result = await property_service.increment_view(test_property.id, viewer=test_user)

        assert result["unique_view_count"] == 1
        rows = await db_session.execute(
            select(PropertyViewer).where(PropertyViewer.listing_id == test_property.id)
        )
        assert [(r.viewer_key, r.anonymous, r.view_count) for r in rows.scalars()] == [(str(test_user.id), False, 2)]

    @pytest.mark.asyncio
    async def test_owner_view_cooldown(self, property_service: PropertyService, test_agent: User, test_property):
        await property_service.increment_view(test_property.id, viewer=test_agent)

        with pytest.raises(RateLimitExceededError) as exc_info:
            await property_service.increment_view(test_property.id, viewer=test_agent)

        assert int(exc_info.value.headers["Retry-After"]) > 0

    @pytest.mark.asyncio
    async def test_owner_view_counts_again_after_cooldown(
        self, property_service: PropertyService, test_agent: User, test_property
    ):
        await property_service.increment_view(test_property.id, viewer=test_agent)
        await property_service.property_repo.save(
            test_property, {"last_owner_view_at": utcnow() - timedelta(hours=2)}
        )

        result = await property_service.increment_view(test_property.id, viewer=test_agent)

        assert result["view_count"] == 2

    @pytest.mark.asyncio
    async def test_excessive_views_are_flagged(self, property_service: PropertyService, test_property):
        for _ in range(5):
            result = await property_service.increment_view(test_property.id, session_id="bot")
            assert result["excessive"] is False

        result = await property_service.increment_view(test_property.id, session_id="bot")

        assert result["excessive"] is True
        assert result["view_count"] == 6

    @pytest.mark.asyncio
    async def test_views_roll_up_to_agent(
        self, db_session, property_service: PropertyService, test_agent: User, test_property
    ):
        await property_service.increment_view(test_property.id, session_id="a")
        await property_service.increment_view(test_property.id, session_id="b")

        agent = await UserRepository(db_session).get_by_id(test_agent.id)
        assert agent.total_views == 2

    @pytest.mark.asyncio
    async def test_concurrent_views_are_all_counted(self, db_session, test_agent: User, test_property):
        async def view(session_id: str):
            async with AsyncSessionLocal() as session:
                service = PropertyService(session, events=PropertyEventManager())
                return await service.increment_view(test_property.id, session_id=session_id)

        results = await asyncio.gather(*(view(f"visitor-{i}") for i in range(5)))

        assert all(r["counted_as_unique"] for r in results)
        assert sorted(r["view_count"] for r in results) == [1, 2, 3, 4, 5]
        listing = await PropertyService(db_session).property_repo.get_by_id(test_property.id)
        assert listing.view_count == 5
        assert listing.unique_view_count == 5
        agent = await UserRepository(db_session).get_by_id(test_agent.id)
        assert agent.total_views == 5

    @pytest.mark.asyncio
    async def test_concurrent_repeat_views_count_viewer_once(self, db_session, test_property):
        async def view():
            async with AsyncSessionLocal() as session:
                service = PropertyService(session, events=PropertyEventManager())
                return await service.increment_view(test_property.id, session_id="same-visitor")

        results = await asyncio.gather(*(view() for _ in range(4)))

        assert sum(r["counted_as_unique"] for r in results) == 1
        listing = await PropertyService(db_session).property_repo.get_by_id(test_property.id)
        assert listing.view_count == 4
        assert listing.unique_view_count == 1

    @pytest.mark.asyncio
    async def test_missing_listing(self, property_service: PropertyService):
        with pytest.raises(PropertyNotFoundError):
            await property_service.increment_view(uuid.uuid4(), session_id="a")


class TestSearch:

    @pytest.mark.asyncio
    async def test_filters_and_sort(self, property_service: PropertyService, test_agent: User):
        cheap = await create_listing(property_service, test_agent, price=Decimal("100"), district="Hodan")
        pricey = await create_listing(property_service, test_agent, price=Decimal("900"), district="Waberi")
        await property_service.increment_view(pricey.id, session_id="x")

        in_hodan, total = await property_service.search_properties(PropertySearchFilters(district="Hodan"))
        assert total == 1
        assert in_hodan[0].id == cheap.id

        expensive, _ = await property_service.search_properties(PropertySearchFilters(min_price=Decimal("500")))
        assert [p.id for p in expensive] == [pricey.id]

        by_views, _ = await property_service.search_properties(PropertySearchFilters(sort=SORT_MOST_VIEWED))
        assert by_views[0].id == pricey.id

    @pytest.mark.asyncio
    async def test_text_search(self, property_service: PropertyService, test_agent: User):
        await create_listing(property_service, test_agent, title="Beach villa", listing_type=ListingType.SALE)
        await create_listing(property_service, test_agent, title="Office block")

        results, total = await property_service.search_properties(PropertySearchFilters(search_text="villa"))

        assert total == 1
        assert results[0].title == "Beach villa iib ah"

    @pytest.mark.asyncio
    async def test_pagination(self, property_service: PropertyService, test_agent: User):
        for _ in range(3):
            await create_listing(property_service, test_agent)

        page_one, total = await property_service.search_properties(PropertySearchFilters(), page=1, page_size=2)
        page_two, _ = await property_service.search_properties(PropertySearchFilters(), page=2, page_size=2)

        assert total == 3
        assert len(page_one) == 2
        assert len(page_two) == 1


class TestResolveAgent:

    @pytest.mark.asyncio
    async def test_uses_agent_id(self, property_service: PropertyService, test_agent: User, test_property):
        agent = await property_service.resolve_agent(test_property)

        assert agent.id == test_agent.id

    @pytest.mark.asyncio
    async def test_falls_back_to_phone(self, property_service: PropertyService, test_agent: User, test_property):
        orphan = await property_service.property_repo.save(test_property, {"agent_id": None})

        agent = await property_service.resolve_agent(orphan)

        assert agent.id == test_agent.id

    @pytest.mark.asyncio
    async def test_falls_back_to_name(self, property_service: PropertyService, test_agent: User, test_property):
        orphan = await property_service.property_repo.save(
            test_property, {"agent_id": None, "agent_phone": None, "agent_name": "cali agent"}
        )

        agent = await property_service.resolve_agent(orphan)

        assert agent.id == test_agent.id

    @pytest.mark.asyncio
    async def test_unresolvable(self, property_service: PropertyService, test_property):
        orphan = await property_service.property_repo.save(
            test_property, {"agent_id": None, "agent_phone": None, "agent_name": "Nobody"}
        )

        assert await property_service.resolve_agent(orphan) is None


class TestSimilarListings:

    @pytest.mark.asyncio
    async def test_same_district_most_viewed_first(
        self, property_service: PropertyService, test_agent: User, test_property
    ):
        quiet = await create_listing(property_service, test_agent)
        busy = await create_listing(property_service, test_agent)
        await create_listing(property_service, test_agent, district="Waberi")
        await property_service.increment_view(busy.id, session_id="x")

        similar = await property_service.find_similar("Hodan", exclude_id=test_property.id)

        assert [p.id for p in similar] == [busy.id, quiet.id]

    @pytest.mark.asyncio
    async def test_featured_listings_lead(
        self, property_service: PropertyService, test_agent: User, test_superadmin: User, test_property
    ):
        busy = await create_listing(property_service, test_agent)
        await property_service.increment_view(busy.id, session_id="x")
        await property_service.update_property(test_property.id, {"featured": True}, test_superadmin)

        similar = await property_service.find_similar("Hodan")

        assert similar[0].id == test_property.id

    @pytest.mark.asyncio
    async def test_deleted_listings_and_limit(
        self, property_service: PropertyService, test_agent: User, test_property
    ):
        for _ in range(3):
            await create_listing(property_service, test_agent)
        await property_service.delete_property(test_property.id, test_agent)

        similar = await property_service.find_similar(" Hodan ", limit=2)

        assert len(similar) == 2
        assert test_property.id not in [p.id for p in similar]

    @pytest.mark.asyncio
    async def test_blank_district(self, property_service: PropertyService):
        with pytest.raises(ValidationError):
            await property_service.find_similar("  ")


class TestAgentDirectory:

    @pytest.mark.asyncio
    async def test_lists_active_agents_by_name(
        self, property_service: PropertyService, test_agent: User, other_agent: User,
        test_superadmin: User, test_user: User, user_factory
    ):
        await user_factory(UserRole.AGENT, full_name="Zed Suspended", status=UserStatus.SUSPENDED)

        agents = await property_service.list_agents()

        assert [a.full_name for a in agents] == ["Cali Agent", "Other Agent"]

    @pytest.mark.asyncio
    async def test_profile_includes_visible_listings(
        self, property_service: PropertyService, test_agent: User, test_property
    ):
        removed = await create_listing(property_service, test_agent)
        await property_service.delete_property(removed.id, test_agent)

        agent, listings, total = await property_service.get_agent_profile(test_agent.id)

        assert agent.id == test_agent.id
        assert total == 1
        assert [p.id for p in listings] == [test_property.id]

    @pytest.mark.asyncio
    async def test_profile_of_non_agent(self, property_service: PropertyService, test_user: User):
        with pytest.raises(UserNotFoundError):
            await property_service.get_agent_profile(test_user.id)
        with pytest.raises(UserNotFoundError):
            await property_service.get_agent_profile(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_view_stats_combine_current_and_deleted(
        self, property_service: PropertyService, test_agent: User, test_superadmin: User, test_property
    ):
        kept = await create_listing(property_service, test_agent)
        await property_service.increment_view(test_property.id, session_id="a")
        await property_service.increment_view(test_property.id, session_id="b")
        await property_service.increment_view(kept.id, session_id="a")
        await property_service.request_deletion(test_property.id, test_agent)
        await property_service.confirm_deletion(test_property.id, test_superadmin)

        stats = await property_service.get_agent_view_stats(test_agent.id, test_agent)

        assert stats["current_views"] == 1
        assert stats["current_property_count"] == 1
        assert stats["deleted_properties_views"] == 2
        assert stats["combined_views"] == 3
        assert stats["total_views"] == 3

    @pytest.mark.asyncio
    async def test_view_stats_are_private(
        self, property_service: PropertyService, test_agent: User, other_agent: User, test_superadmin: User
    ):
        with pytest.raises(ForbiddenError):
            await property_service.get_agent_view_stats(test_agent.id, other_agent)

        stats = await property_service.get_agent_view_stats(test_agent.id, test_superadmin)
        assert stats["agent_name"] == "Cali Agent"
