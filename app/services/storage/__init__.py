"""
Object Storage Service Factory

Provides a single entry point for obtaining a storage service instance.
Automatically selects local filesystem or Supabase based on ENV_MODE.

Usage:
    from app.services.storage import get_storage_service

    storage = get_storage_service()
    result = await storage.upload("user_documents", path, data, "application/pdf")

Environment Switching:
    - ENV_MODE=development → LocalStorageService (files under DATA_DIRECTORY)
    - ENV_MODE=staging → SupabaseStorageService
    - ENV_MODE=production → SupabaseStorageService
"""

import logging
import os
from functools import lru_cache

from app.core.config import get_settings
from app.services.storage.base import (
    BaseStorageService,
    DownloadResult,
    StorageResult,
)
from app.services.storage.local import LocalStorageService
from app.services.storage.supabase import SupabaseStorageService

logger = logging.getLogger(__name__)


@lru_cache()
def get_storage_service() -> BaseStorageService:
    """
    Get the configured storage service instance.

    The instance is cached so every request shares one backend.

    Raises:
        ValueError: If staging/production but Supabase is not configured
    """
    settings = get_settings()

    if settings.is_development:
        logger.info("Storage Service: Using LocalStorageService (development mode)")
        return LocalStorageService(
            root=os.path.join(settings.data_directory, "storage"),
            lock_timeout=settings.storage_lock_timeout,
        )
    else:
        logger.info(
            f"Storage Service: Using SupabaseStorageService "
            f"({settings.env_mode.value} mode)"
        )
        return SupabaseStorageService()


def reset_storage_service() -> None:
    """
    Clear the cached storage service instance.

    Useful for testing or when configuration changes at runtime.
    """
    get_storage_service.cache_clear()
    logger.debug("Storage service cache cleared")


__all__ = [
    "get_storage_service",
    "reset_storage_service",
    "BaseStorageService",
    "DownloadResult",
    "StorageResult",
    "LocalStorageService",
    "SupabaseStorageService",
]
