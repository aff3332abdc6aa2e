"""
Image and file upload API endpoints.
Listing images and avatars are normalized to WebP and stored in object storage.
"""

from typing import List, Optional
from uuid import UUID
from fastapi import APIRouter, Depends, UploadFile, File, Query, Path, status

from app.models.user import User
from app.schemas.image import (
    FileUploadResponse,
    PropertyImagesUploadResponse,
    StoredFileResponse
)
from app.schemas.property import PropertyResponse
from app.schemas.user import UserResponse
from app.services.error_handler import ERROR_RESPONSES
from app.services.image_upload import ImageUploadService
from app.services.upload_preparation import ImageFile
from app.utils.dependencies import get_current_active_user, get_image_upload_service

router = APIRouter(tags=["Images"])

UPLOAD_ERROR_RESPONSES = {code: ERROR_RESPONSES[code] for code in (400, 401, 403, 404, 413, 502)}


async def read_upload(upload: UploadFile) -> ImageFile:
    """Read a multipart upload fully into memory."""
    data = await upload.read()
    return ImageFile(
        filename=upload.filename or "upload",
        content_type=upload.content_type or "",
        data=data
    )


@router.post(
    "/properties/{property_id}/images",
    response_model=PropertyImagesUploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload listing images",
    description=(
        "Upload a thumbnail and additional images for an existing listing. "
        "Files are converted to WebP; the listing is patched once after all uploads succeed."
    ),
    responses=UPLOAD_ERROR_RESPONSES
)
async def upload_property_images(
    property_id: UUID = Path(..., description="Property ID"),
    thumbnail: Optional[UploadFile] = File(None, description="Cover image"),
    images: List[UploadFile] = File(default=[], description="Additional images"),
    current_user: User = Depends(get_current_active_user),
    upload_service: ImageUploadService = Depends(get_image_upload_service)
) -> PropertyImagesUploadResponse:
    thumbnail_file = await read_upload(thumbnail) if thumbnail is not None else None
    additional = [await read_upload(upload) for upload in images]

    result = await upload_service.upload_property_images(
        property_id,
        thumbnail_file,
        additional,
        current_user
    )

    return PropertyImagesUploadResponse(
        property=PropertyResponse.model_validate(result.property.to_dict(include_agent=True)),
        files=[StoredFileResponse(**obj.to_dict()) for obj in result.stored],
        warnings=result.warnings,
        message=f"Uploaded {len(result.stored)} image(s)"
    )


@router.post(
    "/uploads",
    response_model=FileUploadResponse,
    status_code=status.HTTP_200_OK,
    summary="Upload files",
    description="Store files without changing any listing. Images are converted to WebP. "
                "Only callers who may create listings can upload, and only into their own listing folders.",
    responses=UPLOAD_ERROR_RESPONSES
)
async def upload_files(
    files: List[UploadFile] = File(..., description="Files to store"),
    listing_id: Optional[UUID] = Query(None, description="Listing to store under; a temporary folder when omitted"),
    current_user: User = Depends(get_current_active_user),
    upload_service: ImageUploadService = Depends(get_image_upload_service)
) -> FileUploadResponse:
    stored = await upload_service.upload_files(
        [await read_upload(f) for f in files],
        current_user,
        listing_id=listing_id
    )
    return FileUploadResponse(
        success=True,
        files=[StoredFileResponse(**obj.to_dict()) for obj in stored],
        message=f"Uploaded {len(stored)} file(s)"
    )


@router.post(
    "/users/me/avatar",
    response_model=UserResponse,
    status_code=status.HTTP_200_OK,
    summary="Upload avatar",
    responses=UPLOAD_ERROR_RESPONSES
)
async def upload_avatar(
    file: UploadFile = File(..., description="Avatar image"),
    current_user: User = Depends(get_current_active_user),
    upload_service: ImageUploadService = Depends(get_image_upload_service)
) -> UserResponse:
    user = await upload_service.upload_avatar(current_user, await read_upload(file))
    return UserResponse.model_validate(user.to_dict())
