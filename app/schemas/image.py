"""
Pydantic schemas for image and file upload responses.
"""

from pydantic import BaseModel, Field
from typing import List
from app.schemas.property import PropertyResponse


class StoredFileResponse(BaseModel):
    """One object written to storage."""

    key: str = Field(
        ...,
        description="Object key inside the bucket",
        examples=["4f0c.../1712345678901-a1b2c3d4.webp"]
    )
    url: str = Field(..., description="Public URL of the stored object")


class FileUploadResponse(BaseModel):
    """Response for raw uploads that do not touch a listing."""

    success: bool = True
    files: List[StoredFileResponse]
    message: str


class PropertyImagesUploadResponse(BaseModel):
    """Listing after its images were stored and attached."""

    success: bool = True
    property: PropertyResponse
    files: List[StoredFileResponse]
    warnings: List[str] = Field(default_factory=list, description="Files skipped during preparation")
    message: str
