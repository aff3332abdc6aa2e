"""
Pydantic schemas for authentication requests and responses.
Handles phone-based login, token refresh and password reset.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional
from app.schemas.user import UserResponse, _normalized_phone


class LoginRequest(BaseModel):
    """Login request schema."""

    phone: str = Field(
        ...,
        description="Registered phone number, local or international format",
        examples=["615123456"]
    )
    password: str = Field(
        ...,
        min_length=1,
        max_length=128,
        description="User's password"
    )

    @field_validator('phone')
    @classmethod
    def normalize_phone(cls, v):
        return _normalized_phone(v)


class TokenResponse(BaseModel):
    """Token response schema."""

    access_token: str = Field(..., description="JWT access token")
    refresh_token: str = Field(..., description="JWT refresh token")
    token_type: str = Field(default="bearer", description="Token type")
    expires_in: int = Field(..., description="Access token expiration time in seconds", examples=[1800])


class RefreshTokenRequest(BaseModel):
    refresh_token: str = Field(..., description="Valid refresh token")


class AccessTokenResponse(BaseModel):
    access_token: str = Field(..., description="New JWT access token")
    token_type: str = Field(default="bearer")
    expires_in: int = Field(..., description="Access token expiration time in seconds")


class LoginResponse(BaseModel):
    """Successful login: profile, tokens and whether a password change is due."""

    user: UserResponse
    tokens: TokenResponse
    must_change_password: bool = Field(
        False,
        description="True when an admin flagged the account or the password is older than the maximum age"
    )


class PasswordResetRequest(BaseModel):
    phone: str

    @field_validator('phone')
    @classmethod
    def normalize_phone(cls, v):
        return _normalized_phone(v)


class PasswordResetRequestResponse(BaseModel):
    message: str
    reset_token: Optional[str] = Field(
        None,
        description="Only returned outside production, where no SMS gateway delivers it"
    )


class PasswordResetConfirm(BaseModel):
    phone: str
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., max_length=128)

    @field_validator('phone')
    @classmethod
    def normalize_phone(cls, v):
        return _normalized_phone(v)


class MessageResponse(BaseModel):
    message: str
