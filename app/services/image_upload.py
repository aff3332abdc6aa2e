"""
Image upload pipeline.

For a listing that already exists: normalize each file to WebP, put it in
object storage, then patch the listing once with thumbnail = first URL and
images = the rest. If any storage upload fails the listing is left untouched;
objects stored before the failure are not removed.
"""

from dataclasses import dataclass, field
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool
from app.models.property import Property
from app.models.user import User
from app.repositories.user import UserRepository
from app.services.events import PropertyEventManager, property_events
from app.services.image_processing import (
    ImageProcessingOptions,
    ProcessedImage,
    process_image_file_safe,
)
from app.services.property import PropertyService
from app.services.storage import (
    ObjectStorage,
    StoredObject,
    avatar_key,
    property_image_key,
    temp_folder,
    sanitize_filename,
)
from app.services.upload_preparation import ImageFile, prepare_upload, validate_image_file
from app.utils.exceptions import (
    FileUploadError,
    InsufficientPermissionsError,
    ImageProcessingError,
    PropertyOwnershipError,
    StorageUploadError,
)
import logging
import uuid

logger = logging.getLogger(__name__)


@dataclass
class ImageUploadResult:
    property: Property
    stored: List[StoredObject]
    warnings: List[str] = field(default_factory=list)

    @property
    def urls(self) -> List[str]:
        return [obj.url for obj in self.stored]


class ImageUploadService:
    """
    Runs uploaded files through normalization and storage and attaches the
    resulting URLs to listings and user profiles.
    """

    def __init__(
        self,
        db_session: AsyncSession,
        storage: ObjectStorage,
        events: PropertyEventManager = property_events,
        options: Optional[ImageProcessingOptions] = None
    ):
        self.db = db_session
        self.storage = storage
        self.options = options or ImageProcessingOptions.from_settings()
        self.property_service = PropertyService(db_session, events=events)
        self.user_repo = UserRepository(db_session)

    async def normalize(self, file: ImageFile) -> ProcessedImage:
        """
        Convert one file to WebP, keeping the original bytes when conversion fails.
        """
        try:
            return await run_in_threadpool(
                process_image_file_safe, file.data, file.filename, file.content_type, self.options
            )
        except ImageProcessingError as e:
            logger.warning(f"Keeping original bytes for {file.filename}: {e}")
            return ProcessedImage(
                data=file.data,
                filename=sanitize_filename(file.filename),
                content_type=file.content_type or "application/octet-stream",
                format="original",
                width=None,
                height=None,
                converted=False,
                original_size=file.size,
            )

    async def upload_property_images(
        self,
        property_id: uuid.UUID,
        thumbnail: Optional[ImageFile],
        additional: List[ImageFile],
        current_user: User
    ) -> ImageUploadResult:
        """
        Attach images to an existing listing.

        Raises:
            PropertyNotFoundError: The listing must exist before its images are uploaded
            PropertyOwnershipError: If the user does not own the listing
            UnsupportedFileTypeError / FileSizeExceededError: Invalid selection
            StorageUploadError: Storage rejected a file; the listing is not patched
        """
        property_obj = await self.property_service.get_property(property_id)
        if not current_user.can_manage_property(property_obj.agent_id):
            raise PropertyOwnershipError("You can only upload images for your own properties")

        prepared = prepare_upload(thumbnail, additional)
        if not prepared.files:
            raise FileUploadError("No images provided")

        stored: List[StoredObject] = []
        for file in prepared.files:
            processed = await self.normalize(file)
            key = property_image_key(property_obj.id, processed.filename)
            try:
                stored.append(await self.storage.upload(key, processed.data, processed.content_type))
            except StorageUploadError:
                logger.warning(
                    f"Image upload for property {property_id} stopped after {len(stored)} of "
                    f"{len(prepared.files)} files; listing left without these images"
                )
                raise

        urls = [obj.url for obj in stored]
        updated = await self.property_service.update_property(
            property_obj.id,
            {"thumbnail_image": urls[0], "images": urls[1:]},
            current_user
        )

        logger.info(f"Uploaded {len(stored)} image(s) for property #{updated.property_id}")
        return ImageUploadResult(property=updated, stored=stored, warnings=prepared.warnings)

    async def upload_files(
        self,
        files: List[ImageFile],
        current_user: User,
        listing_id: Optional[uuid.UUID] = None
    ) -> List[StoredObject]:
        """
        Store files without touching any listing.

        Images are normalized to WebP; other files are stored as they are.
        Without a listing id the files go into a temporary folder.

        Raises:
            InsufficientPermissionsError: If the user cannot add listings
            PropertyNotFoundError: If listing_id names no visible listing
            PropertyOwnershipError: If the listing belongs to another agent
        """
        if not self.property_service.can_create_property(current_user):
            raise InsufficientPermissionsError("upload property files")

        if listing_id is not None:
            listing = await self.property_service.get_property(listing_id)
            if not current_user.can_manage_property(listing.agent_id):
                raise PropertyOwnershipError("You can only upload files for your own properties")

        if not files:
            raise FileUploadError("No files provided")

        folder = str(listing_id) if listing_id is not None else temp_folder()
        stored: List[StoredObject] = []
        for file in files:
            if file.content_type and file.content_type.startswith("image/") and file.data:
                processed = await self.normalize(file)
                data, filename, content_type = processed.data, processed.filename, processed.content_type
            else:
                data = file.data
                filename = file.filename
                content_type = file.content_type or "application/octet-stream"

            stored.append(await self.storage.upload(property_image_key(folder, filename), data, content_type))

        logger.info(f"Uploaded {len(stored)} file(s) to {folder}")
        return stored

    async def upload_avatar(self, current_user: User, file: ImageFile) -> User:
        """
        Replace the user's avatar with an uploaded image.
        """
        validate_image_file(file)
        processed = await self.normalize(file)
        stored = await self.storage.upload(
            avatar_key(current_user.id, processed.filename),
            processed.data,
            processed.content_type
        )

        updated = await self.user_repo.save(current_user, {"avatar": stored.url})
        logger.info(f"Avatar updated for user {current_user.phone}: {stored.key}")
        return updated
