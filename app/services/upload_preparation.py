"""
Upload preparation: checks a listing's image selection before anything is
sent to storage.

Every file must be an image no larger than the configured ceiling. Files in
the additional list that share a filename with the thumbnail (or with an
earlier additional file) are dropped with a warning instead of failing the
whole submission.
"""

from dataclasses import dataclass, field
from app.config import settings
from app.utils.exceptions import FileUploadError, FileSizeExceededError, UnsupportedFileTypeError
from typing import Iterable, List, Optional
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageFile:
    """An uploaded file held in memory."""
    filename: str
    content_type: Optional[str]
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class PreparedUpload:
    thumbnail: Optional[ImageFile]
    additional: List[ImageFile] = field(default_factory=list)
    dropped: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def files(self) -> List[ImageFile]:
        """Upload order: thumbnail first, then the additional images."""
        head = [self.thumbnail] if self.thumbnail else []
        return head + self.additional


def validate_image_file(file: ImageFile, max_size: Optional[int] = None) -> None:
    """
    Raises:
        UnsupportedFileTypeError: Content type is not image/*
        FileSizeExceededError: File is larger than max_size
        FileUploadError: File is empty
    """
    max_size = max_size or settings.max_file_size

    if not file.content_type or not file.content_type.startswith(settings.allowed_mime_prefix):
        raise UnsupportedFileTypeError(file.content_type or "unknown", file.filename)

    if file.size == 0:
        raise FileUploadError(f"{file.filename} is empty")

    if file.size > max_size:
        raise FileSizeExceededError(file.size, max_size, file.filename)


def prepare_upload(
    thumbnail: Optional[ImageFile],
    additional: Iterable[ImageFile] = (),
    max_size: Optional[int] = None
) -> PreparedUpload:
    """
    Validate the selection and remove duplicate additional images.

    Args:
        thumbnail: The listing's primary image, if any
        additional: Gallery images in display order
        max_size: Size ceiling in bytes, defaults to the configured maximum

    Returns:
        PreparedUpload with the unique files and the names that were dropped
    """
    additional = list(additional)
    for file in ([thumbnail] if thumbnail else []) + additional:
        validate_image_file(file, max_size)

    prepared = PreparedUpload(thumbnail=thumbnail)
    seen = {thumbnail.filename} if thumbnail else set()

    for file in additional:
        if file.filename in seen:
            prepared.dropped.append(file.filename)
            continue
        seen.add(file.filename)
        prepared.additional.append(file)

    if prepared.dropped:
        message = (
            f"Removed {len(prepared.dropped)} duplicate image(s) already selected: "
            f"{', '.join(prepared.dropped)}"
        )
        prepared.warnings.append(message)
        logger.warning(message)

    return prepared
