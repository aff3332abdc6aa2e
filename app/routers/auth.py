"""
Authentication API endpoints for registration, phone login, token refresh and password management.
"""

from fastapi import APIRouter, Depends, status
from app.config import settings
from app.models.user import User
from app.services.auth import AuthService
from app.schemas.auth import (
    LoginRequest,
    LoginResponse,
    TokenResponse,
    RefreshTokenRequest,
    AccessTokenResponse,
    PasswordResetRequest,
    PasswordResetRequestResponse,
    PasswordResetConfirm,
    MessageResponse
)
from app.schemas.user import UserCreate, UserResponse, PasswordChangeRequest
from app.services.error_handler import ERROR_RESPONSES
from app.utils.dependencies import get_auth_service, get_current_active_user


router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post(
    "/register",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new account",
    responses={409: {"description": "Phone or email already registered"}, 422: ERROR_RESPONSES[422]}
)
async def register(
    user_data: UserCreate,
    auth_service: AuthService = Depends(get_auth_service)
) -> UserResponse:
    """
    Create a regular user account. Password rules: at least 5 characters,
    not only digits, not a common password, and not containing the user's
    phone number or email name.
    """
    user = await auth_service.register(user_data)
    return UserResponse.model_validate(user.to_dict())


@router.post(
    "/login",
    response_model=LoginResponse,
    status_code=status.HTTP_200_OK,
    summary="User login",
    description="Authenticate with phone number and password, returns JWT tokens",
    responses={401: ERROR_RESPONSES[401], 403: ERROR_RESPONSES[403]}
)
async def login(
    login_data: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service)
) -> LoginResponse:
    """
    Authenticate user and return JWT tokens.

    Repeated failures lock the account for a while. Login still succeeds when
    the password is due for a change; the response flags it instead.
    """
    user, access_token, refresh_token = await auth_service.login(
        phone=login_data.phone,
        password=login_data.password
    )

    return LoginResponse(
        user=UserResponse.model_validate(user.to_dict()),
        tokens=TokenResponse(
            access_token=access_token,
            refresh_token=refresh_token,
            token_type="bearer",
            expires_in=settings.access_token_expire_minutes * 60
        ),
        must_change_password=auth_service.password_change_due(user)
    )


@router.post(
    "/refresh",
    response_model=AccessTokenResponse,
    status_code=status.HTTP_200_OK,
    summary="Refresh access token"
)
async def refresh_token(
    refresh_data: RefreshTokenRequest,
    auth_service: AuthService = Depends(get_auth_service)
) -> AccessTokenResponse:
    access_token = await auth_service.refresh_access_token(refresh_token=refresh_data.refresh_token)

    return AccessTokenResponse(
        access_token=access_token,
        token_type="bearer",
        expires_in=settings.access_token_expire_minutes * 60
    )


@router.get(
    "/me",
    response_model=UserResponse,
    status_code=status.HTTP_200_OK,
    summary="Get current user"
)
async def get_current_user_info(
    current_user: User = Depends(get_current_active_user)
) -> UserResponse:
    return UserResponse.model_validate(current_user.to_dict())


@router.post(
    "/change-password",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Change password"
)
async def change_password(
    password_data: PasswordChangeRequest,
    current_user: User = Depends(get_current_active_user),
    auth_service: AuthService = Depends(get_auth_service)
) -> MessageResponse:
    await auth_service.change_password(
        current_user,
        current_password=password_data.current_password,
        new_password=password_data.new_password
    )
    return MessageResponse(message="Password changed successfully")


@router.post(
    "/password-reset/request",
    response_model=PasswordResetRequestResponse,
    status_code=status.HTTP_200_OK,
    summary="Request a password reset token"
)
async def request_password_reset(
    reset_data: PasswordResetRequest,
    auth_service: AuthService = Depends(get_auth_service)
) -> PasswordResetRequestResponse:
    """
    Always answers the same way so callers cannot discover which phone numbers
    are registered.
    """
    token = await auth_service.request_password_reset(reset_data.phone)
    return PasswordResetRequestResponse(
        message="If the phone number is registered, a reset code has been issued",
        reset_token=token if not settings.is_production else None
    )


@router.post(
    "/password-reset/confirm",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Reset password with a reset token"
)
async def confirm_password_reset(
    reset_data: PasswordResetConfirm,
    auth_service: AuthService = Depends(get_auth_service)
) -> MessageResponse:
    await auth_service.reset_password(
        phone=reset_data.phone,
        token=reset_data.token,
        new_password=reset_data.new_password
    )
    return MessageResponse(message="Password has been reset")
