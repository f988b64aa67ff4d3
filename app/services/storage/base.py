"""
Object Storage Abstract Base Class

Defines the interface contract for all object storage implementations.
Both LocalStorageService and SupabaseStorageService implement these
methods, so documents are handled identically whichever one is active.

Objects are addressed by (bucket, path). Paths are per-user prefixed
("<user_id>/<name>") by the document service.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class StorageResult:
    """
    Standardized result from an upload or remove call.

    Attributes:
        success: Whether the operation completed
        bucket: Target bucket
        path: Object path inside the bucket
        size_bytes: Bytes written (uploads only)
        removed: Whether an object was actually deleted (removes only)
        error_message: Error description if the call failed
    """
    success: bool
    bucket: str
    path: str
    size_bytes: int = 0
    removed: bool = False
    error_message: Optional[str] = None


@dataclass
class DownloadResult:
    """
    Standardized result from a download call.

    ``not_found`` distinguishes a missing object from a storage failure.
    """
    success: bool
    data: Optional[bytes] = None
    not_found: bool = False
    error_message: Optional[str] = None


class BaseStorageService(ABC):
    """
    Abstract base class for object storage services.

    Example:
        >>> storage = get_storage_service()
        >>> result = await storage.upload("user_documents", "u1/passport.pdf", data, "application/pdf")
        >>> if result.success:
        ...     print(result.path)
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the name of the storage provider (e.g. "local", "supabase")."""
        pass

    @abstractmethod
    async def ensure_bucket(self, bucket: str) -> bool:
        """
        Create the bucket if it does not exist yet.

        Returns:
            bool: True if the bucket exists after the call
        """
        pass

    @abstractmethod
    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str,
    ) -> StorageResult:
        """
        Store an object, replacing any object already at the same path.

        Args:
            bucket: Target bucket
            path: Object path inside the bucket
            data: Raw bytes
            content_type: MIME type stored alongside the object
        """
        pass

    @abstractmethod
    async def download(self, bucket: str, path: str) -> DownloadResult:
        """Read an object's bytes."""
        pass

    @abstractmethod
    async def remove(self, bucket: str, path: str) -> StorageResult:
        """
        Delete an object.

        Removing an object that does not exist succeeds with
        ``removed=False``.
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Verify the storage backend is reachable.

        Returns:
            bool: True if storage is operational
        """
        pass
