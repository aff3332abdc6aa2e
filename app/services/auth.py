"""
Authentication service for registration, login, token management and account administration.
Handles phone-based login with lockout, password rules, password reset and superadmin user management.
"""

from datetime import timedelta
from typing import Optional, Tuple, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from app.config import settings
from app.database import as_utc, utcnow
from app.repositories.user import UserRepository
from app.models.user import User, UserRole, UserStatus, BlueTickStatus
from app.schemas.user import UserCreate
from app.utils.auth import (
    create_access_token,
    create_refresh_token,
    verify_token,
)
from app.utils.passwords import (
    validate_password,
    needs_rehash,
    hash_password,
    generate_reset_token,
    hash_reset_token,
    verify_reset_token,
    should_update_password,
    normalize_phone_number,
)
from app.utils.exceptions import (
    AccountLockedError,
    BadRequestError,
    DuplicateResourceError,
    InactiveUserError,
    InsufficientPermissionsError,
    InvalidCredentialsError,
    InvalidTokenError,
    TokenExpiredError,
    UserNotFoundError,
    ValidationError,
)
from jose import JWTError
import math
import uuid
import logging

logger = logging.getLogger(__name__)


class AuthService:
    """
    Authentication service for managing user authentication, authorization and account rules.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session
        self.user_repo = UserRepository(db_session)

    async def register(self, user_data: UserCreate) -> User:
        """
        Create a regular user account.

        Raises:
            ValidationError: If the password breaks a rule or the email is malformed
            DuplicateResourceError: If the phone or email is already registered
        """
        error = validate_password(user_data.password, phone=user_data.phone, email=user_data.email)
        if error:
            raise ValidationError(error, field_errors=[{"field": "password", "message": error}])

        if await self.user_repo.get_by_phone(user_data.phone):
            raise DuplicateResourceError("User", user_data.phone)

        try:
            user = await self.user_repo.create_user({
                **user_data.model_dump(),
                "role": UserRole.USER,
            })
        except ValueError as e:
            if "already exists" in str(e):
                raise DuplicateResourceError("User", user_data.email or user_data.phone)
            raise ValidationError(str(e))

        logger.info(f"User registered: {user.phone}")
        return user

    async def authenticate_user(self, phone: str, password: str) -> User:
        """
        Check credentials and apply the lockout policy.

        Raises:
            AccountLockedError: Too many recent failures
            InvalidCredentialsError: Unknown phone or wrong password
            InactiveUserError: Account is not active
        """
        if not phone or not password:
            raise InvalidCredentialsError()

        user = await self.user_repo.get_by_phone(phone)
        if not user:
            logger.warning(f"Failed authentication attempt for unknown phone: {normalize_phone_number(phone)}")
            raise InvalidCredentialsError()

        now = utcnow()
        if user.is_locked(now):
            remaining = as_utc(user.locked_until) - now
            raise AccountLockedError(max(1, math.ceil(remaining.total_seconds() / 60)))

        if not user.verify_password(password):
            await self._record_failed_login(user)
            raise InvalidCredentialsError()

        if user.status != UserStatus.ACTIVE:
            raise InactiveUserError(f"User account is {user.status.value}")

        changes: Dict[str, Any] = {"login_attempts": 0, "locked_until": None, "last_login": now}
        if needs_rehash(user.hashed_password):
            changes["hashed_password"] = hash_password(password)
            logger.info(f"Upgraded password hash for user {user.phone}")

        user = await self.user_repo.save(user, changes)
        logger.info(f"User authenticated successfully: {user.phone}")
        return user

    async def _record_failed_login(self, user: User) -> None:
        phone = user.phone
        attempts = await self.user_repo.register_failed_login(
            user,
            max_attempts=settings.max_login_attempts,
            lock_for=timedelta(minutes=settings.lockout_minutes)
        )
        if attempts >= settings.max_login_attempts:
            logger.warning(f"Account {phone} locked after {attempts} failed logins")
        else:
            logger.warning(f"Failed login for {phone} ({attempts}/{settings.max_login_attempts})")

    def create_tokens(self, user: User) -> Tuple[str, str]:
        """
        Returns:
            Tuple of (access_token, refresh_token)
        """
        access_token = create_access_token(user_id=user.id, phone=user.phone, role=user.role.value)
        refresh_token = create_refresh_token(user_id=user.id, phone=user.phone)
        return access_token, refresh_token

    def password_change_due(self, user: User) -> bool:
        return user.must_change_password or should_update_password(as_utc(user.password_changed_at))

    async def login(self, phone: str, password: str) -> Tuple[User, str, str]:
        user = await self.authenticate_user(phone, password)
        access_token, refresh_token = self.create_tokens(user)
        return user, access_token, refresh_token

    async def refresh_access_token(self, refresh_token: str) -> str:
        """
        Create new access token from refresh token.

        Raises:
            InvalidTokenError / TokenExpiredError: Bad refresh token
            InactiveUserError: If user account is inactive
        """
        try:
            token_payload = verify_token(refresh_token, token_type="refresh")
        except JWTError as e:
            if "expired" in str(e).lower():
                raise TokenExpiredError()
            raise InvalidTokenError(str(e))

        user = await self.get_user_by_id(uuid.UUID(token_payload.user_id))
        if not user.is_active:
            raise InactiveUserError()

        return create_access_token(user_id=user.id, phone=user.phone, role=user.role.value)

    async def get_current_user(self, token: str) -> User:
        """
        Get current user from access token.

        Raises:
            InvalidTokenError / TokenExpiredError: Bad access token
            InactiveUserError: If user account is inactive
        """
        try:
            token_payload = verify_token(token, token_type="access")
        except JWTError as e:
            if "expired" in str(e).lower():
                raise TokenExpiredError()
            raise InvalidTokenError(str(e))

        try:
            user = await self.get_user_by_id(uuid.UUID(token_payload.user_id))
        except UserNotFoundError:
            raise InvalidTokenError("User no longer exists")

        if not user.is_active:
            raise InactiveUserError()
        return user

    async def get_user_by_id(self, user_id: uuid.UUID) -> User:
        user = await self.user_repo.get_by_id(user_id)
        if not user:
            raise UserNotFoundError(str(user_id))
        return user

    async def change_password(self, user: User, current_password: str, new_password: str) -> User:
        """
        Raises:
            InvalidCredentialsError: If the current password is wrong
            ValidationError: If the new password breaks a rule or equals the old one
        """
        if not user.verify_password(current_password):
            raise InvalidCredentialsError("Current password is incorrect")

        if current_password == new_password:
            raise ValidationError("New password must be different from the current password")

        error = validate_password(new_password, phone=user.phone, email=user.email)
        if error:
            raise ValidationError(error, field_errors=[{"field": "new_password", "message": error}])

        user.set_password(new_password)
        user = await self.user_repo.save(user, {"must_change_password": False})
        logger.info(f"Password changed for user {user.phone}")
        return user

    async def request_password_reset(self, phone: str) -> Optional[str]:
        """
        Store a hashed one-time reset token for the account.

        Returns:
            The raw token, or None if no account uses this phone
        """
        user = await self.user_repo.get_by_phone(phone)
        if not user:
            logger.warning(f"Password reset requested for unknown phone {normalize_phone_number(phone)}")
            return None

        token = generate_reset_token()
        await self.user_repo.save(user, {
            "password_reset_token_hash": hash_reset_token(token),
            "password_reset_expires": utcnow() + timedelta(minutes=settings.password_reset_expire_minutes),
        })
        logger.info(f"Password reset token issued for user {user.phone}")
        return token

    async def reset_password(self, phone: str, token: str, new_password: str) -> User:
        """
        Raises:
            InvalidTokenError: Unknown phone, wrong token or expired token
            ValidationError: If the new password breaks a rule
        """
        user = await self.user_repo.get_by_phone(phone)
        if not user or not verify_reset_token(token, user.password_reset_token_hash):
            raise InvalidTokenError("Invalid or expired password reset token")

        expires = as_utc(user.password_reset_expires)
        if expires is None or expires < utcnow():
            raise InvalidTokenError("Invalid or expired password reset token")

        error = validate_password(new_password, phone=user.phone, email=user.email)
        if error:
            raise ValidationError(error, field_errors=[{"field": "new_password", "message": error}])

        user.set_password(new_password)
        user = await self.user_repo.save(user, {
            "password_reset_token_hash": None,
            "password_reset_expires": None,
            "must_change_password": False,
            "login_attempts": 0,
            "locked_until": None,
        })
        logger.info(f"Password reset completed for user {user.phone}")
        return user

    async def update_profile(self, user: User, changes: Dict[str, Any]) -> User:
        if changes.get("email"):
            try:
                changes["email"] = User.validate_email_format(changes["email"])
            except ValueError as e:
                raise ValidationError(str(e))
            existing = await self.user_repo.get_by_email(changes["email"])
            if existing and existing.id != user.id:
                raise DuplicateResourceError("User", changes["email"])
        return await self.user_repo.save(user, changes)

    async def update_user_status(self, user_id: uuid.UUID, status: UserStatus, current_user: User) -> User:
        self._require_superadmin(current_user, "change user status")
        if user_id == current_user.id and status != UserStatus.ACTIVE:
            raise BadRequestError("You cannot deactivate your own account")

        user = await self.get_user_by_id(user_id)
        user = await self.user_repo.save(user, {"status": status})
        logger.info(f"User {user.phone} status set to {status.value} by {current_user.phone}")
        return user

    async def update_user_role(self, user_id: uuid.UUID, role: UserRole, current_user: User) -> User:
        """
        Change a user's role; permission flags follow the role.
        """
        self._require_superadmin(current_user, "change user roles")
        if user_id == current_user.id:
            raise BadRequestError("You cannot change your own role")

        user = await self.get_user_by_id(user_id)
        user = await self.user_repo.save(user, {
            "role": role,
            "can_add_properties": role in (UserRole.AGENT, UserRole.SUPERADMIN),
            "can_manage_users": role == UserRole.SUPERADMIN,
            "can_approve_properties": role == UserRole.SUPERADMIN,
        })
        logger.info(f"User {user.phone} role set to {role.value} by {current_user.phone}")
        return user

    async def set_blue_tick(self, user_id: uuid.UUID, status: BlueTickStatus, current_user: User) -> User:
        """
        Set an agent's verification badge. Only agents carry a badge.
        """
        self._require_superadmin(current_user, "verify agents")

        user = await self.get_user_by_id(user_id)
        if not user.is_agent:
            raise BadRequestError("Blue-tick verification only applies to agents")

        user = await self.user_repo.save(user, {
            "blue_tick_status": status,
            "verified": status == BlueTickStatus.VERIFIED,
        })
        logger.info(f"Agent {user.phone} blue tick set to {status.value} by {current_user.phone}")
        return user

    def _require_superadmin(self, user: User, action: str) -> None:
        if not user.is_superadmin:
            raise InsufficientPermissionsError(action)
