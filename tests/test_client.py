"""
Tests for the marketplace API client's create-then-attach listing flow.
"""

import json
import pytest
import httpx
from httpx import ASGITransport

from app.client import MarketplaceClient
from app.main import app
from app.services.events import PropertyEventType
from app.utils.exceptions import UnsupportedFileTypeError

BASE_URL = "http://api.test/api/v1"
LISTING = {
    "title": "Guri cusub",
    "description": "Three bedroom house near the main road",
    "price": 450,
    "location": "Taleex",
    "district": "Hodan",
    "bedrooms": 3,
    "bathrooms": 2,
    "listing_type": "rent",
}


class FakeApi:
    """Scripted API: records every request and answers per route."""

    def __init__(self, upload_status: int = 200, patch_status: int = 200):
        self.requests = []
        self.upload_status = upload_status
        self.patch_status = patch_status

    def count(self, method: str, suffix: str) -> int:
        return sum(1 for r in self.requests if r.method == method and r.url.path.endswith(suffix))

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.method == "POST" and path.endswith("/properties"):
            body = json.loads(request.content)
            return httpx.Response(201, json={"id": "p-1", "title": body["title"], "thumbnail_image": "", "images": []})

        if request.method == "POST" and path.endswith("/uploads"):
            if self.upload_status != 200:
                return httpx.Response(self.upload_status, json={"error": {"code": "STORAGE_UPLOAD_FAILED"}})
            names = [part for part in request.content.split(b'filename="')[1:]]
            files = [
                {"key": f"properties/p-1/{i}.webp", "url": f"https://cdn.example.com/properties/p-1/{i}.webp"}
                for i in range(len(names))
            ]
            return httpx.Response(200, json={"success": True, "files": files, "message": "ok"})

        if request.method == "PATCH":
            if self.patch_status != 200:
                return httpx.Response(self.patch_status, json={"error": {"code": "FORBIDDEN"}})
            return httpx.Response(200, json={"id": "p-1", **json.loads(request.content)})

        return httpx.Response(404)


def make_client(api: FakeApi, events) -> MarketplaceClient:
    return MarketplaceClient(
        base_url=BASE_URL,
        token="token",
        transport=httpx.MockTransport(api.handler),
        events=events
    )


class TestCreateListingWithImages:

    @pytest.mark.asyncio
    async def test_create_upload_and_single_patch(self, events, recorded_events, make_file):
        api = FakeApi()
        client = make_client(api, events)

        result = await client.create_listing_with_images(
            LISTING, make_file("cover.jpg"), [make_file("a.jpg"), make_file("b.jpg")]
        )

        assert api.count("POST", "/properties") == 1
        assert api.count("POST", "/uploads") == 1
        assert api.count("PATCH", "/properties/p-1") == 1
        assert len(result.uploaded_urls) == 3
        assert result.property["thumbnail_image"] == result.uploaded_urls[0]
        assert result.property["images"] == result.uploaded_urls[1:]
        assert result.complete
        assert [e.type for e in recorded_events] == [PropertyEventType.ADDED]
        assert recorded_events[0].property_id == "p-1"

    @pytest.mark.asyncio
    async def test_requests_carry_token_and_listing_folder(self, events, make_file):
        api = FakeApi()
        client = make_client(api, events)

        await client.create_listing_with_images(LISTING, make_file("cover.jpg"))

        upload = next(r for r in api.requests if r.url.path.endswith("/uploads"))
        assert upload.headers["Authorization"] == "Bearer token"
        assert upload.url.params["listing_id"] == "p-1"

    @pytest.mark.asyncio
    async def test_without_images_there_is_no_upload_or_patch(self, events, recorded_events):
        api = FakeApi()
        client = make_client(api, events)

        result = await client.create_listing_with_images(LISTING)

        assert len(api.requests) == 1
        assert result.uploaded_urls == []
        assert len(recorded_events) == 1

    @pytest.mark.asyncio
    async def test_upload_failure_keeps_listing(self, events, recorded_events, make_file):
        api = FakeApi(upload_status=502)
        client = make_client(api, events)

        result = await client.create_listing_with_images(LISTING, make_file("cover.jpg"))

        assert api.count("PATCH", "/properties/p-1") == 0
        assert result.property["id"] == "p-1"
        assert not result.complete
        assert result.warnings[0].startswith("Property created but image upload failed")
        assert len(recorded_events) == 1

    @pytest.mark.asyncio
    async def test_patch_failure_is_a_warning(self, events, make_file):
        api = FakeApi(patch_status=403)
        client = make_client(api, events)

        result = await client.create_listing_with_images(LISTING, make_file("cover.jpg"))

        assert len(result.uploaded_urls) == 1
        assert result.property["thumbnail_image"] == ""
        assert "attaching images failed" in result.warnings[0]

    @pytest.mark.asyncio
    async def test_duplicate_selection_is_reported(self, events, make_file):
        api = FakeApi()
        client = make_client(api, events)

        result = await client.create_listing_with_images(
            LISTING, make_file("cover.jpg"), [make_file("cover.jpg")]
        )

        assert len(result.uploaded_urls) == 1
        assert result.property["images"] == []
        assert len(result.warnings) == 1

    @pytest.mark.asyncio
    async def test_invalid_selection_sends_nothing(self, events, make_file):
        api = FakeApi()
        client = make_client(api, events)

        with pytest.raises(UnsupportedFileTypeError):
            await client.create_listing_with_images(LISTING, make_file("doc.pdf", "application/pdf", b"%PDF"))

        assert api.requests == []

    @pytest.mark.asyncio
    async def test_create_failure_raises(self, events):
        client = MarketplaceClient(
            base_url=BASE_URL,
            transport=httpx.MockTransport(lambda request: httpx.Response(401, json={})),
            events=events
        )

        with pytest.raises(httpx.HTTPStatusError):
            await client.create_listing_with_images(LISTING)


class TestAgainstApplication:

    @pytest.mark.asyncio
    async def test_full_flow(self, async_client, storage_client, test_agent, auth_headers, events, make_file):
        token = auth_headers(test_agent)["Authorization"].split(" ", 1)[1]
        client = MarketplaceClient(
            base_url="http://test/api/v1",
            token=token,
            transport=ASGITransport(app=app),
            events=events
        )

        result = await client.create_listing_with_images(
            LISTING, make_file("cover.jpg"), [make_file("kitchen.jpg")]
        )

        assert result.complete
        assert storage_client.put_object.call_count == 2
        assert result.property["title"] == "Guri cusub Kiro ah"
        assert result.property["thumbnail_image"] == result.uploaded_urls[0]
        assert result.property["images"] == [result.uploaded_urls[1]]

        response = await async_client.get(f"/api/v1/properties/{result.property['id']}")
        assert response.json()["thumbnail_image"].startswith("https://cdn.example.com/properties/")
