"""
Application Configuration Module

Centralizes all configuration using environment variables with Pydantic Settings.
Supports three modes:
    - DEVELOPMENT: Uses the local filesystem object storage
    - STAGING: Uses Supabase Storage with test credentials
    - PRODUCTION: Uses Supabase Storage with live credentials

The ENV_MODE variable controls which storage backend is instantiated,
enabling seamless switching between local testing and deployment.

Usage:
    from app.core.config import get_settings

    settings = get_settings()
    if settings.is_development:
        # Documents land under DATA_DIRECTORY/storage
    else:
        # Documents go to the Supabase bucket
"""

import logging
import sys
from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_JWT_SECRET = "dev-secret-change-me"


class EnvironmentMode(str, Enum):
    """
    Application environment modes.

    Attributes:
        DEVELOPMENT: Local run with filesystem object storage
        PRODUCTION: Live environment backed by Supabase Storage
        STAGING: Pre-production with Supabase Storage and test keys
    """
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    STAGING = "staging"


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables or .env file.
    Secrets (JWT secret, Supabase service key) should NEVER be committed.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # ENVIRONMENT
    # ==========================================================================

    env_mode: EnvironmentMode = Field(
        default=EnvironmentMode.DEVELOPMENT,
        description="Application environment mode"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode with verbose logging"
    )

    # ==========================================================================
    # APPLICATION
    # ==========================================================================

    app_name: str = Field(
        default="Food Share Orders",
        description="Application display name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API server host"
    )
    api_port: int = Field(
        default=8001,
        description="API server port"
    )
    cors_origins: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins"
    )

    # ==========================================================================
    # DATABASE
    # ==========================================================================

    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/foodshare.db",
        description="Async SQLAlchemy connection URL (postgresql+psycopg://... in production)"
    )

    # ==========================================================================
    # AUTHENTICATION
    # ==========================================================================

    jwt_secret: str = Field(
        default=DEFAULT_JWT_SECRET,
        description="Secret used to sign access and capability tokens"
    )
    jwt_algorithm: str = Field(
        default="HS256",
        description="JWT signing algorithm"
    )
    access_token_expire_minutes: int = Field(
        default=60 * 24,
        description="Lifetime of a session access token"
    )
    admin_capability_ttl_seconds: int = Field(
        default=300,
        description="Lifetime of a cached admin capability token"
    )

    # ==========================================================================
    # OBJECT STORAGE
    # ==========================================================================

    data_directory: str = Field(
        default="data",
        description="Directory for local storage and data files"
    )
    storage_bucket: str = Field(
        default="user_documents",
        description="Bucket holding user documents"
    )
    storage_lock_timeout: int = Field(
        default=30,
        description="Seconds to wait for a local storage file lock"
    )
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (https://<ref>.supabase.co)"
    )
    supabase_service_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key used for storage calls"
    )

    # ==========================================================================
    # DOCUMENTS
    # ==========================================================================

    document_max_bytes: int = Field(
        default=5 * 1024 * 1024,
        description="Maximum accepted document size in bytes"
    )
    allowed_document_types: str = Field(
        default=(
            "application/pdf,"
            "application/msword,"
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document,"
            "image/jpeg,"
            "image/png"
        ),
        description="Comma-separated list of accepted document MIME types"
    )
    single_document_per_user: bool = Field(
        default=True,
        description="Allow at most one stored document per user"
    )

    # ==========================================================================
    # ORDERS
    # ==========================================================================

    allow_multiple_processing_orders: bool = Field(
        default=False,
        description="Allow a user to hold more than one processing order"
    )
    export_filename_prefix: str = Field(
        default="Заказы_AAS",
        description="Prefix of exported spreadsheet filenames"
    )

    # ==========================================================================
    # CLIENT
    # ==========================================================================

    request_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout applied by the HTTP client to every request"
    )

    # ==========================================================================
    # VALIDATORS
    # ==========================================================================

    @field_validator("env_mode", mode="before")
    @classmethod
    def validate_env_mode(cls, v: str) -> EnvironmentMode:
        """Convert string to EnvironmentMode enum."""
        if isinstance(v, EnvironmentMode):
            return v
        try:
            return EnvironmentMode(v.lower())
        except ValueError:
            valid = [e.value for e in EnvironmentMode]
            raise ValueError(f"Invalid env_mode. Must be one of: {valid}")

    # ==========================================================================
    # COMPUTED PROPERTIES
    # ==========================================================================

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.env_mode == EnvironmentMode.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.env_mode == EnvironmentMode.PRODUCTION

    @property
    def is_staging(self) -> bool:
        """Check if running in staging mode."""
        return self.env_mode == EnvironmentMode.STAGING

    @property
    def use_real_services(self) -> bool:
        """Check if real external services should be used."""
        return self.env_mode in (EnvironmentMode.PRODUCTION, EnvironmentMode.STAGING)

    @property
    def allowed_document_types_list(self) -> list[str]:
        """Get accepted document MIME types as a list."""
        return [t.strip() for t in self.allowed_document_types.split(",") if t.strip()]

    @property
    def cors_origins_list(self) -> list[str]:
        """Get allowed CORS origins as a list."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    # ==========================================================================
    # VALIDATION METHODS
    # ==========================================================================

    def validate_production_config(self) -> list[str]:
        """
        Validate that all required production settings are configured.

        Returns:
            List of missing configuration keys (empty if all present)
        """
        missing = []

        if self.use_real_services:
            if not self.supabase_url:
                missing.append("SUPABASE_URL")
            if not self.supabase_service_key:
                missing.append("SUPABASE_SERVICE_KEY")
            if self.jwt_secret == DEFAULT_JWT_SECRET:
                missing.append("JWT_SECRET")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Settings are loaded once and shared for the application lifecycle.

    Returns:
        Settings: Configured application settings
    """
    return Settings()


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """
    Configure application-wide logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured application logger
    """
    settings = get_settings()

    if settings.debug:
        level = logging.DEBUG

    log_format = "%(asctime)s │ %(levelname)-8s │ %(name)-25s │ %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    logging.basicConfig(
        level=level,
        format=log_format,
        datefmt=date_format,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("filelock").setLevel(logging.WARNING)

    return logging.getLogger("app")
