"""
HTTP client for the marketplace API.

Drives the listing flow used by the dashboard: create the listing without
images, upload the files under the new listing's folder, then attach the
returned URLs with a single PATCH.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional
import logging

import httpx

from app.config import settings
from app.services.events import PropertyEventManager, property_events
from app.services.upload_preparation import ImageFile, prepare_upload

logger = logging.getLogger(__name__)


@dataclass
class ListingResult:
    property: Dict[str, Any]
    uploaded_urls: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.warnings


class MarketplaceClient:
    """
    Client for the marketplace REST API.

    Args:
        base_url: API root including the version prefix, e.g. http://host/api/v1
        token: Bearer access token
        transport: Optional httpx transport (tests pass httpx.MockTransport or ASGITransport)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        events: PropertyEventManager = property_events,
        timeout: float = 30.0
    ):
        self.base_url = base_url or f"http://localhost:{settings.port}{settings.api_v1_prefix}"
        self.token = token
        self.transport = transport
        self.events = events
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(),
            transport=self.transport,
            timeout=self.timeout
        )

    async def create_listing(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        async with self._client() as client:
            response = await client.post("/properties", json=payload)
            if response.status_code != 201:
                logger.error(f"Error creating listing: {response.status_code} - {response.text}")
                response.raise_for_status()
            return response.json()

    async def upload_files(self, files: Iterable[ImageFile], listing_id: Optional[str] = None) -> List[str]:
        """
        Returns:
            Public URLs in upload order
        """
        multipart = [
            ("files", (f.filename, f.data, f.content_type or "application/octet-stream"))
            for f in files
        ]
        params = {"listing_id": listing_id} if listing_id else None

        async with self._client() as client:
            response = await client.post("/uploads", files=multipart, params=params)
            if response.status_code != 200:
                logger.error(f"Error uploading files: {response.status_code} - {response.text}")
                response.raise_for_status()
            body = response.json()

        if not body.get("success"):
            raise httpx.HTTPError(body.get("message") or "Upload failed")
        return [item["url"] for item in body.get("files", [])]

    async def update_listing(self, property_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        async with self._client() as client:
            response = await client.patch(f"/properties/{property_id}", json=changes)
            if response.status_code != 200:
                logger.error(f"Error updating listing {property_id}: {response.status_code} - {response.text}")
                response.raise_for_status()
            return response.json()

    async def create_listing_with_images(
        self,
        payload: Dict[str, Any],
        thumbnail: Optional[ImageFile] = None,
        additional: Iterable[ImageFile] = ()
    ) -> ListingResult:
        """
        Create a listing and attach its images.

        The image selection is validated before anything is sent. Once the
        listing exists, upload or patch failures are reported as warnings on
        the result and the listing is kept without images.

        Raises:
            UnsupportedFileTypeError / FileSizeExceededError: Invalid selection
            httpx.HTTPError: The listing itself could not be created
        """
        prepared = prepare_upload(thumbnail, additional)
        warnings = list(prepared.warnings)

        created = await self.create_listing(payload)
        property_id = created["id"]
        result = ListingResult(property=created, warnings=warnings)

        if prepared.files:
            try:
                urls = await self.upload_files(prepared.files, listing_id=property_id)
            except httpx.HTTPError as e:
                logger.warning(f"Listing {property_id} created but image upload failed: {e}")
                result.warnings.append(f"Property created but image upload failed: {e}")
                urls = []

            if urls:
                result.uploaded_urls = urls
                try:
                    result.property = await self.update_listing(
                        property_id,
                        {"thumbnail_image": urls[0], "images": urls[1:]}
                    )
                except httpx.HTTPError as e:
                    logger.warning(f"Listing {property_id} created but attaching images failed: {e}")
                    result.warnings.append(f"Property created but attaching images failed: {e}")

        self.events.notify_added(property_id)
        return result
