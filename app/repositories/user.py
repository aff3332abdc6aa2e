"""
User repository for authentication and user management operations.
Looks users up by normalized phone number, the login identifier.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, or_
from app.repositories.base import BaseRepository
from app.models.user import User, UserRole, UserStatus
from app.utils.passwords import hash_password, normalize_phone_number
from app.database import utcnow
from datetime import timedelta
from typing import Optional, List, Dict, Any, Tuple
import uuid
import logging

logger = logging.getLogger(__name__)


class UserRepository(BaseRepository[User]):
    """
    Repository for user management with authentication and authorization support.
    """

    def __init__(self, db: AsyncSession):
        super().__init__(User, db)

    async def create_user(self, user_data: Dict[str, Any]) -> User:
        """
        Create a new user, normalizing phone and email and hashing the password.

        Args:
            user_data: Must include phone, password and full_name.
                       Optional: email, role (defaults to USER) and any profile field.

        Raises:
            ValueError: If the email is malformed or phone/email is already taken
        """
        data = dict(user_data)
        phone = normalize_phone_number(data.pop("phone"))
        password = data.pop("password")

        email = data.pop("email", None)
        if email:
            email = User.validate_email_format(email)

        if await self.get_by_phone(phone):
            raise ValueError(f"User with phone {phone} already exists")
        if email and await self.get_by_email(email):
            raise ValueError(f"User with email {email} already exists")

        create_data = {
            **data,
            "phone": phone,
            "email": email,
            "hashed_password": hash_password(password),
            "role": data.get("role", UserRole.USER),
        }

        created_user = await self.create(create_data)
        logger.info(f"Created user: {created_user.phone} (ID: {created_user.id})")
        return created_user

    async def get_by_phone(self, phone: str) -> Optional[User]:
        return await self.get_by_field("phone", normalize_phone_number(phone.strip()))

    async def get_by_email(self, email: str) -> Optional[User]:
        return await self.get_by_field("email", email.lower().strip())

    async def find_agent_by_name_or_phone(
        self,
        name: Optional[str] = None,
        phone: Optional[str] = None
    ) -> Optional[User]:
        """
        Look an agent up by exact phone, then by case-insensitive full name.
        Only used when a listing lost its agent_id link.
        """
        if phone:
            agent = await self.get_by_phone(phone)
            if agent:
                return agent

        if name:
            query = (
                select(User)
                .where(func.lower(User.full_name) == name.strip().lower())
                .where(User.role.in_([UserRole.AGENT, UserRole.SUPERADMIN]))
                .limit(1)
            )
            result = await self.db.execute(query)
            return result.scalar_one_or_none()

        return None

    async def search_users(
        self,
        role: Optional[UserRole] = None,
        status: Optional[UserStatus] = None,
        search_text: Optional[str] = None,
        skip: int = 0,
        limit: int = 20
    ) -> Tuple[List[User], int]:
        """
        List users for the admin dashboard.

        Returns:
            Tuple of (users list, total count)
        """
        try:
            conditions = []
            if role:
                conditions.append(User.role == role)
            if status:
                conditions.append(User.status == status)
            if search_text:
                term = f"%{search_text.strip()}%"
                conditions.append(or_(User.full_name.ilike(term), User.phone.ilike(term)))

            count_query = select(func.count(User.id)).where(*conditions)
            total = (await self.db.execute(count_query)).scalar()

            query = select(User).where(*conditions).order_by(User.created_at.desc()).offset(skip).limit(limit)
            result = await self.db.execute(query)
            users = list(result.scalars().all())

            logger.debug(f"User search returned {len(users)} of {total} total results")
            return users, total
        except Exception as e:
            logger.error(f"Failed to search users: {e}")
            raise

    async def increment_counters(self, user_id: uuid.UUID, **increments: int) -> Optional[User]:
        """
        Add to the agent's cumulative counters (total_views, total_properties,
        deleted_properties_views) without reading them into Python first.
        """
        user = await self.get_by_id(user_id)
        if user is None:
            return None
        changes = {field: getattr(User, field) + amount for field, amount in increments.items()}
        return await self.save(user, changes)

    async def list_active_agents(self) -> List[User]:
        query = (
            select(User)
            .where(User.role == UserRole.AGENT, User.status == UserStatus.ACTIVE)
            .order_by(User.full_name)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def register_failed_login(self, user: User, max_attempts: int, lock_for: timedelta) -> int:
        """
        Count a failed login with an SQL increment. Reaching ``max_attempts``
        locks the account for ``lock_for`` and starts the count again.

        Returns:
            The attempt count this failure reached
        """
        user_id = user.id
        try:
            result = await self.db.execute(
                update(User)
                .where(User.id == user_id)
                .values(login_attempts=User.login_attempts + 1)
                .returning(User.login_attempts)
                .execution_options(synchronize_session=False)
            )
            attempts = result.scalar_one()
            if attempts >= max_attempts:
                await self.db.execute(
                    update(User)
                    .where(User.id == user_id, User.login_attempts >= max_attempts)
                    .values(login_attempts=0, locked_until=utcnow() + lock_for)
                    .execution_options(synchronize_session=False)
                )
            await self.db.commit()
            await self.db.refresh(user)
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Failed to record failed login for user {user_id}: {e}")
            raise

        return attempts
