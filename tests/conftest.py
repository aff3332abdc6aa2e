"""
Test configuration and fixtures for the marketplace API.
Provides an in-memory database, user and listing factories, fake object
storage and an HTTP client bound to the application.
"""

import os

# Must be set before the application modules read their settings
os.environ["ENVIRONMENT"] = "testing"

import io
from decimal import Decimal
from typing import AsyncGenerator, Dict, List, Optional
from unittest.mock import MagicMock

import pytest
from httpx import AsyncClient, ASGITransport
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncSession

from app.main import app
from app.database import AsyncSessionLocal, create_tables, drop_tables, engine, get_db
from app.models.property import Property, ListingType
from app.models.user import User, UserRole
from app.repositories.user import UserRepository
from app.schemas.property import PropertyCreate
from app.services.auth import AuthService
from app.services.events import PropertyEventManager, property_events
from app.services.property import PropertyService
from app.services.storage import ObjectStorage, get_storage
from app.services.upload_preparation import ImageFile
from app.utils.auth import create_access_token

DEFAULT_PASSWORD = "Hodan2024x"


@pytest.fixture(autouse=True)
async def setup_test_database():
    """Fresh schema for every test."""
    await create_tables()
    yield
    await drop_tables()
    await engine.dispose()
    property_events.clear()


@pytest.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


@pytest.fixture
def events() -> PropertyEventManager:
    return PropertyEventManager()


@pytest.fixture
def recorded_events(events: PropertyEventManager) -> List:
    received = []
    events.subscribe(received.append)
    return received


@pytest.fixture
def storage_client() -> MagicMock:
    """Stand-in for the boto3 S3 client; put_object succeeds unless a test says otherwise."""
    client = MagicMock()
    client.put_object.return_value = {"ETag": '"etag"'}
    return client


@pytest.fixture
def storage(storage_client: MagicMock) -> ObjectStorage:
    return ObjectStorage(client=storage_client, bucket="test-bucket", public_base_url="https://cdn.example.com")


@pytest.fixture
def auth_service(db_session: AsyncSession) -> AuthService:
    return AuthService(db_session)


@pytest.fixture
def property_service(db_session: AsyncSession, events: PropertyEventManager) -> PropertyService:
    return PropertyService(db_session, events=events)


@pytest.fixture
async def async_client(db_session: AsyncSession, storage: ObjectStorage) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client sharing the test session and fake storage with the app."""
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_storage] = lambda: storage

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


# Test data factories
class UserFactory:
    """Factory for creating test users."""

    _sequence = 0

    @classmethod
    def next_phone(cls) -> str:
        cls._sequence += 1
        return f"61{cls._sequence:07d}"

    @classmethod
    async def create_user(
        cls,
        db: AsyncSession,
        role: UserRole = UserRole.AGENT,
        password: str = DEFAULT_PASSWORD,
        full_name: str = "Test User",
        phone: Optional[str] = None,
        email: Optional[str] = None,
        **extra
    ) -> User:
        data = {
            "full_name": full_name,
            "phone": phone or cls.next_phone(),
            "password": password,
            "email": email,
            "role": role,
            "can_add_properties": role in (UserRole.AGENT, UserRole.SUPERADMIN),
            "can_manage_users": role == UserRole.SUPERADMIN,
            "can_approve_properties": role == UserRole.SUPERADMIN,
        }
        data.update(extra)
        return await UserRepository(db).create_user(data)


class PropertyFactory:
    """Factory for creating test listings through the service."""

    @staticmethod
    def create_property_data(**overrides) -> PropertyCreate:
        data = {
            "title": "Guri cusub",
            "description": "Three bedroom house near the main road",
            "price": Decimal("450.00"),
            "location": "Taleex",
            "district": "Hodan",
            "bedrooms": 3,
            "bathrooms": 2,
            "listing_type": ListingType.RENT,
        }
        data.update(overrides)
        return PropertyCreate(**data)

    @staticmethod
    async def create_property(service: PropertyService, agent: User, **overrides) -> Property:
        return await service.create_property(PropertyFactory.create_property_data(**overrides), agent)


@pytest.fixture
async def test_agent(db_session: AsyncSession) -> User:
    return await UserFactory.create_user(db_session, UserRole.AGENT, full_name="Cali Agent")


@pytest.fixture
async def other_agent(db_session: AsyncSession) -> User:
    return await UserFactory.create_user(db_session, UserRole.AGENT, full_name="Other Agent")


@pytest.fixture
async def test_superadmin(db_session: AsyncSession) -> User:
    return await UserFactory.create_user(db_session, UserRole.SUPERADMIN, full_name="Super Admin")


@pytest.fixture
async def test_user(db_session: AsyncSession) -> User:
    return await UserFactory.create_user(db_session, UserRole.USER, full_name="Regular User")


@pytest.fixture
async def test_property(property_service: PropertyService, test_agent: User) -> Property:
    return await PropertyFactory.create_property(property_service, test_agent)


def _auth_headers(user: User) -> Dict[str, str]:
    token = create_access_token(user_id=user.id, phone=user.phone, role=user.role.value)
    return {"Authorization": f"Bearer {token}"}


def create_test_image(width: int = 64, height: int = 48, format: str = "JPEG", color: str = "red") -> bytes:
    """Create a test image in memory."""
    img = Image.new("RGB", (width, height), color=color)
    buffer = io.BytesIO()
    img.save(buffer, format=format)
    return buffer.getvalue()


def image_file(filename: str = "photo.jpg", content_type: str = "image/jpeg", data: Optional[bytes] = None) -> ImageFile:
    return ImageFile(filename=filename, content_type=content_type, data=data if data is not None else create_test_image())


@pytest.fixture
def auth_headers():
    """Bearer header builder for a user."""
    return _auth_headers


@pytest.fixture
def make_image():
    """Encoded test image builder."""
    return create_test_image


@pytest.fixture
def make_file():
    """ImageFile builder; defaults to a small JPEG."""
    return image_file


@pytest.fixture
def user_factory(db_session: AsyncSession):
    async def create(role: UserRole = UserRole.AGENT, **kwargs) -> User:
        return await UserFactory.create_user(db_session, role, **kwargs)
    return create
