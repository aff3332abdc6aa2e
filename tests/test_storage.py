"""
Tests for object storage keys, URLs and upload error handling.
"""

import pytest
from unittest.mock import MagicMock, patch
from botocore.exceptions import ClientError, EndpointConnectionError

from app.services.storage import (
    ObjectStorage,
    avatar_key,
    property_image_key,
    sanitize_filename,
    temp_folder,
)
from app.utils.exceptions import StorageConfigurationError, StorageUploadError


class TestKeys:

    def test_sanitize_filename(self):
        assert sanitize_filename("my photo (1).jpg") == "my_photo_1_.jpg"
        assert sanitize_filename("ok-name_2.webp") == "ok-name_2.webp"

    def test_property_image_key(self):
        key = property_image_key("abc", "front view.webp")

        assert key.startswith("properties/abc/")
        assert key.endswith("-front_view.webp")

    def test_avatar_key(self):
        assert avatar_key("u1", "me.webp").startswith("avatars/u1/")

    def test_keys_are_unique(self):
        assert property_image_key("p", "a.webp") != property_image_key("p", "a.webp")

    def test_temp_folder(self):
        assert temp_folder().startswith("temp-")


class TestObjectStorage:

    def test_public_url_with_base(self):
        storage = ObjectStorage(client=MagicMock(), bucket="b", public_base_url="https://cdn.example.com/")

        assert storage.public_url("properties/x.webp") == "https://cdn.example.com/properties/x.webp"

    def test_public_url_without_base(self):
        storage = ObjectStorage(client=MagicMock(), bucket="listings", public_base_url="")

        assert storage.public_url("k.webp") == "https://listings.r2.dev/k.webp"

    @pytest.mark.asyncio
    async def test_upload_puts_object(self, storage, storage_client):
        stored = await storage.upload("properties/p/a.webp", b"bytes", "image/webp")

        storage_client.put_object.assert_called_once_with(
            Bucket="test-bucket",
            Key="properties/p/a.webp",
            Body=b"bytes",
            ContentType="image/webp",
        )
        assert stored.key == "properties/p/a.webp"
        assert stored.url == "https://cdn.example.com/properties/p/a.webp"
        assert stored.to_dict() == {"key": stored.key, "url": stored.url}

    @pytest.mark.asyncio
    async def test_client_error_becomes_storage_error(self, storage, storage_client):
        storage_client.put_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject"
        )

        with pytest.raises(StorageUploadError) as exc_info:
            await storage.upload("k.webp", b"bytes", "image/webp")

        assert exc_info.value.status_code == 502
        assert exc_info.value.key == "k.webp"

    @pytest.mark.asyncio
    async def test_connection_error_becomes_storage_error(self, storage, storage_client):
        storage_client.put_object.side_effect = EndpointConnectionError(endpoint_url="https://r2.example.com")

        with pytest.raises(StorageUploadError):
            await storage.upload("k.webp", b"bytes", "image/webp")

    @pytest.mark.asyncio
    async def test_missing_configuration_lists_variables(self):
        with patch("app.services.storage.settings") as mock_settings:
            mock_settings.r2_bucket = ""
            mock_settings.r2_public_base_url = ""
            mock_settings.missing_storage_settings = ["R2_ENDPOINT", "R2_BUCKET"]
            storage = ObjectStorage()

            with pytest.raises(StorageConfigurationError) as exc_info:
                await storage.upload("k.webp", b"bytes", "image/webp")

        assert exc_info.value.missing == ["R2_ENDPOINT", "R2_BUCKET"]
        assert "R2_ENDPOINT" in exc_info.value.detail
