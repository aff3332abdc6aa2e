"""
Configuration management using Pydantic settings.
Handles database URL, JWT secrets, object storage credentials and image pipeline defaults.
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings
from typing import List
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from the environment and an optional .env file."""

    # Application configuration
    app_name: str = "Real Estate Marketplace API"
    app_version: str = "1.0.0"
    environment: str = "development"
    debug: bool = False
    testing: bool = False

    # Database configuration
    database_url: str = "postgresql+asyncpg://postgres:postgres@db:5432/marketplace"
    test_database_url: str = "sqlite+aiosqlite:///:memory:"

    # JWT configuration
    jwt_secret_key: str = "your-secret-key-change-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 30
    jwt_refresh_token_expire_days: int = 7

    # Image upload configuration
    max_file_size: int = 5 * 1024 * 1024  # 5MB
    allowed_mime_prefix: str = "image/"
    image_quality: int = 85
    image_effort: int = 6
    image_max_width: int = 1920
    image_max_height: int = 1080
    image_fit: str = "inside"

    # S3-compatible object storage (Cloudflare R2)
    r2_endpoint: str = ""
    r2_access_key_id: str = ""
    r2_secret_access_key: str = ""
    r2_bucket: str = ""
    r2_public_base_url: str = ""
    r2_max_attempts: int = 3

    # Account security
    max_login_attempts: int = 5
    lockout_minutes: int = 15
    password_reset_expire_minutes: int = 60
    password_max_age_days: int = 180

    # View tracking
    owner_view_cooldown_minutes: int = 60
    excessive_view_threshold: int = 5

    # API configuration
    api_v1_prefix: str = "/api/v1"
    cors_origins: str = "http://localhost:3000,http://localhost:8000"

    # Pagination defaults
    default_page_size: int = 20
    max_page_size: int = 100

    # Server configuration
    host: str = "0.0.0.0"
    port: int = 8000

    @field_validator("database_url", mode="before")
    @classmethod
    def validate_database_url(cls, v):
        """Ensure an async driver is used."""
        if v and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        if v and v.startswith("sqlite://"):
            return v.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return v

    @field_validator("jwt_secret_key", mode="before")
    @classmethod
    def validate_jwt_secret_key(cls, v):
        """Validate JWT secret key strength."""
        if not v:
            raise ValueError("JWT_SECRET_KEY is required")
        if len(v) < 32 and v != "your-secret-key-change-in-production":
            raise ValueError("JWT_SECRET_KEY must be at least 32 characters long")
        return v

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        allowed_envs = ["development", "testing", "staging", "production"]
        if v not in allowed_envs:
            raise ValueError(f"Environment must be one of: {allowed_envs}")
        return v

    @field_validator("image_fit")
    @classmethod
    def validate_image_fit(cls, v):
        allowed_fits = ["cover", "contain", "fill", "inside", "outside"]
        if v not in allowed_fits:
            raise ValueError(f"Image fit must be one of: {allowed_fits}")
        return v

    @field_validator("image_quality")
    @classmethod
    def validate_image_quality(cls, v):
        if not 1 <= v <= 100:
            raise ValueError("Image quality must be between 1 and 100")
        return v

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_testing(self) -> bool:
        """ENVIRONMENT=testing or TESTING=true selects the in-memory database."""
        return self.environment == "testing" or self.testing

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def cors_origin_list(self) -> List[str]:
        """CORS origins as a list, split from the comma-separated setting."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def missing_storage_settings(self) -> List[str]:
        """Names of the object storage variables that are not set."""
        required = {
            "R2_ENDPOINT": self.r2_endpoint,
            "R2_ACCESS_KEY_ID": self.r2_access_key_id,
            "R2_SECRET_ACCESS_KEY": self.r2_secret_access_key,
            "R2_BUCKET": self.r2_bucket,
        }
        return [name for name, value in required.items() if not value]

    @property
    def storage_configured(self) -> bool:
        return not self.missing_storage_settings

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


@lru_cache()
def get_settings() -> Settings:
    """Settings are read from the environment once per process."""
    return Settings()


settings = get_settings()
