"""
User management API endpoints: own profile edits and superadmin account administration.
"""

from fastapi import APIRouter, Depends, Query, Path, status
from typing import Optional
from uuid import UUID
import math

from app.config import settings
from app.models.user import User, UserRole, UserStatus
from app.schemas.user import (
    UserResponse,
    UserListResponse,
    UserProfileUpdate,
    UserStatusUpdate,
    UserRoleUpdate,
    BlueTickUpdate
)
from app.services.auth import AuthService
from app.services.error_handler import ERROR_RESPONSES
from app.utils.dependencies import (
    get_auth_service,
    get_current_active_user,
    get_current_superadmin
)

router = APIRouter(prefix="/users", tags=["Users"])

ADMIN_ERROR_RESPONSES = {code: ERROR_RESPONSES[code] for code in (401, 403, 404)}


@router.get(
    "",
    response_model=UserListResponse,
    status_code=status.HTTP_200_OK,
    summary="List users",
    responses=ADMIN_ERROR_RESPONSES
)
async def list_users(
    role: Optional[UserRole] = Query(None),
    user_status: Optional[UserStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None, description="Match on name or phone"),
    page: int = Query(1, ge=1),
    page_size: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    current_user: User = Depends(get_current_superadmin),
    auth_service: AuthService = Depends(get_auth_service)
) -> UserListResponse:
    users, total = await auth_service.user_repo.search_users(
        role=role,
        status=user_status,
        search_text=search,
        skip=(page - 1) * page_size,
        limit=page_size
    )
    return UserListResponse(
        users=[UserResponse.model_validate(u.to_dict()) for u in users],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=math.ceil(total / page_size) if total > 0 else 0
    )


@router.patch(
    "/me",
    response_model=UserResponse,
    status_code=status.HTTP_200_OK,
    summary="Update own profile"
)
async def update_my_profile(
    profile_data: UserProfileUpdate,
    current_user: User = Depends(get_current_active_user),
    auth_service: AuthService = Depends(get_auth_service)
) -> UserResponse:
    user = await auth_service.update_profile(current_user, profile_data.model_dump(exclude_unset=True))
    return UserResponse.model_validate(user.to_dict())


@router.get(
    "/{user_id}",
    response_model=UserResponse,
    status_code=status.HTTP_200_OK,
    summary="Get user by ID",
    responses={404: ERROR_RESPONSES[404]}
)
async def get_user(
    user_id: UUID = Path(...),
    current_user: User = Depends(get_current_active_user),
    auth_service: AuthService = Depends(get_auth_service)
) -> UserResponse:
    user = await auth_service.get_user_by_id(user_id)
    return UserResponse.model_validate(user.to_dict())


@router.patch(
    "/{user_id}/status",
    response_model=UserResponse,
    status_code=status.HTTP_200_OK,
    summary="Change account status",
    responses=ADMIN_ERROR_RESPONSES
)
async def update_user_status(
    status_data: UserStatusUpdate,
    user_id: UUID = Path(...),
    current_user: User = Depends(get_current_superadmin),
    auth_service: AuthService = Depends(get_auth_service)
) -> UserResponse:
    user = await auth_service.update_user_status(user_id, status_data.status, current_user)
    return UserResponse.model_validate(user.to_dict())


@router.patch(
    "/{user_id}/role",
    response_model=UserResponse,
    status_code=status.HTTP_200_OK,
    summary="Change user role",
    responses=ADMIN_ERROR_RESPONSES
)
async def update_user_role(
    role_data: UserRoleUpdate,
    user_id: UUID = Path(...),
    current_user: User = Depends(get_current_superadmin),
    auth_service: AuthService = Depends(get_auth_service)
) -> UserResponse:
    user = await auth_service.update_user_role(user_id, role_data.role, current_user)
    return UserResponse.model_validate(user.to_dict())


@router.patch(
    "/{user_id}/blue-tick",
    response_model=UserResponse,
    status_code=status.HTTP_200_OK,
    summary="Set agent verification badge",
    responses=ADMIN_ERROR_RESPONSES
)
async def set_blue_tick(
    tick_data: BlueTickUpdate,
    user_id: UUID = Path(...),
    current_user: User = Depends(get_current_superadmin),
    auth_service: AuthService = Depends(get_auth_service)
) -> UserResponse:
    user = await auth_service.set_blue_tick(user_id, tick_data.status, current_user)
    return UserResponse.model_validate(user.to_dict())
