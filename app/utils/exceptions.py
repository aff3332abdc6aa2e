"""
Exceptions raised by services and dependencies.
Each carries an HTTP status and a stable error code for the error envelope.
"""

from typing import Any, Dict, Optional, List
from fastapi import HTTPException, status


class APIException(HTTPException):
    """HTTPException with a machine-readable error code."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code


class ValidationError(APIException):
    """Business-rule validation failure; field_errors end up in the envelope details."""

    def __init__(
        self,
        detail: str,
        field_errors: Optional[List[Dict[str, str]]] = None
    ):
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            error_code="VALIDATION_ERROR"
        )
        self.field_errors = field_errors or []


class NotFoundError(APIException):

    def __init__(self, resource: str, resource_id: Optional[str] = None):
        detail = f"{resource} not found"
        if resource_id:
            detail += f" with ID: {resource_id}"

        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            error_code="NOT_FOUND"
        )


class UnauthorizedError(APIException):

    def __init__(self, detail: str = "Authentication required"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="UNAUTHORIZED",
            headers={"WWW-Authenticate": "Bearer"}
        )


class ForbiddenError(APIException):

    def __init__(self, detail: str = "Access forbidden"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code="FORBIDDEN"
        )


class ConflictError(APIException):
    """The request collides with existing state."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code="CONFLICT"
        )


class BadRequestError(APIException):

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            error_code="BAD_REQUEST"
        )


# Auth
class InvalidCredentialsError(UnauthorizedError):

    def __init__(self, detail: str = "Invalid phone number or password"):
        super().__init__(detail)


class TokenExpiredError(UnauthorizedError):
    """Access, refresh or reset token past its exp claim."""

    def __init__(self, detail: str = "Token has expired"):
        super().__init__(detail)


class InvalidTokenError(UnauthorizedError):

    def __init__(self, detail: str = "Invalid token"):
        super().__init__(detail)


class AccountLockedError(UnauthorizedError):
    """Too many failed logins; the account is temporarily locked."""

    def __init__(self, minutes_remaining: int):
        super().__init__(
            f"Account locked due to repeated failed logins. Try again in {minutes_remaining} minute(s)"
        )


class InactiveUserError(ForbiddenError):

    def __init__(self, detail: str = "User account is inactive"):
        super().__init__(detail)


class InsufficientPermissionsError(ForbiddenError):

    def __init__(self, action: str):
        super().__init__(f"Insufficient permissions to {action}")


# Listings
class PropertyNotFoundError(NotFoundError):

    def __init__(self, property_id: str):
        super().__init__("Property", property_id)


class PropertyOwnershipError(ForbiddenError):

    def __init__(self, detail: str = "You don't own this property"):
        super().__init__(detail)


class PropertyStatusError(BadRequestError):
    """The listing is in the wrong deletion state for the requested transition."""

    def __init__(self, detail: str):
        super().__init__(detail)


class UserNotFoundError(NotFoundError):

    def __init__(self, user_id: str):
        super().__init__("User", user_id)


class DuplicateResourceError(ConflictError):

    def __init__(self, resource: str, identifier: str):
        super().__init__(f"{resource} with identifier '{identifier}' already exists")


# Uploads
class FileUploadError(BadRequestError):

    def __init__(self, detail: str):
        super().__init__(f"File upload error: {detail}")


class UnsupportedFileTypeError(BadRequestError):

    def __init__(self, file_type: str, filename: Optional[str] = None):
        message = f"Unsupported file type '{file_type}'. Only image files are accepted"
        if filename:
            message += f" ({filename})"
        super().__init__(message)


class FileSizeExceededError(APIException):
    """Size limits are checked before any bytes reach storage."""

    def __init__(self, size: int, max_size: int, filename: Optional[str] = None):
        message = f"File size {size} bytes exceeds maximum allowed size {max_size} bytes"
        if filename:
            message += f" ({filename})"
        super().__init__(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=message,
            error_code="FILE_TOO_LARGE"
        )


# Object storage
class StorageConfigurationError(APIException):
    """Object storage credentials or bucket are not configured."""

    def __init__(self, missing: List[str]):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Object storage is not configured. Missing: {', '.join(missing)}",
            error_code="STORAGE_NOT_CONFIGURED"
        )
        self.missing = missing


class StorageUploadError(APIException):
    """Upload to object storage failed."""

    def __init__(self, key: str, reason: str):
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to upload '{key}' to object storage: {reason}",
            error_code="STORAGE_UPLOAD_FAILED"
        )
        self.key = key


class RateLimitExceededError(APIException):
    """Too many requests; Retry-After tells the caller when to come back."""

    def __init__(self, retry_after: int, detail: str = "Rate limit exceeded"):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=detail,
            error_code="RATE_LIMIT_EXCEEDED",
            headers={"Retry-After": str(retry_after)}
        )


class ServiceUnavailableError(APIException):
    """A dependency such as the database is unreachable."""

    def __init__(self, detail: str = "Service temporarily unavailable"):
        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=detail,
            error_code="SERVICE_UNAVAILABLE"
        )


class ImageProcessingError(Exception):
    """
    Raised by the image normalizer when conversion fails and falling back to
    the original bytes is disabled. Not an HTTP error; the caller decides
    whether the file is rejected.
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause
