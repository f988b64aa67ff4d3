"""
Local Filesystem Storage Implementation

Stores objects as files under ``<data_directory>/storage/<bucket>/<path>``.
Used in development mode (ENV_MODE=development) to:
    - Run the complete upload/download flow without cloud credentials
    - Keep tests hermetic

Writes to a bucket are serialised with a file lock so concurrent
uploads from several workers never interleave on the same path.
"""

import asyncio
import logging
import os
import tempfile
from pathlib import Path

from filelock import FileLock, Timeout

from app.services.storage.base import (
    BaseStorageService,
    DownloadResult,
    StorageResult,
)

logger = logging.getLogger(__name__)


class LocalStorageService(BaseStorageService):
    """
    Filesystem-backed object storage.

    Attributes:
        root: Directory holding one sub-directory per bucket
        lock_timeout: Seconds to wait for a bucket lock
    """

    def __init__(self, root: str, lock_timeout: int = 30):
        self.root = Path(root)
        self.lock_timeout = lock_timeout

        logger.info(f"LocalStorageService initialized (root={self.root})")

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return "local"

    def _bucket_dir(self, bucket: str) -> Path:
        return self.root / bucket

    def _lock_for(self, bucket: str) -> FileLock:
        self.root.mkdir(parents=True, exist_ok=True)
        return FileLock(str(self.root / f"{bucket}.lock"), timeout=self.lock_timeout)

    def _object_path(self, bucket: str, path: str) -> Path:
        """Resolve an object path, refusing anything outside the bucket."""
        bucket_dir = self._bucket_dir(bucket).resolve()
        target = (bucket_dir / path).resolve()
        if bucket_dir not in target.parents:
            raise ValueError(f"Object path escapes bucket: {path}")
        return target

    # =========================================================================
    # BLOCKING HELPERS (run in a worker thread)
    # =========================================================================

    def _write(self, bucket: str, path: str, data: bytes) -> None:
        target = self._object_path(bucket, path)
        with self._lock_for(bucket):
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".upload-")
            try:
                with os.fdopen(fd, "wb") as fh:
                    fh.write(data)
                os.replace(tmp_name, target)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise

    def _read(self, bucket: str, path: str) -> bytes:
        return self._object_path(bucket, path).read_bytes()

    def _delete(self, bucket: str, path: str) -> bool:
        target = self._object_path(bucket, path)
        with self._lock_for(bucket):
            if not target.exists():
                return False
            target.unlink()
            return True

    # =========================================================================
    # INTERFACE
    # =========================================================================

    async def ensure_bucket(self, bucket: str) -> bool:
        bucket_dir = self._bucket_dir(bucket)
        if not bucket_dir.exists():
            bucket_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created local bucket: {bucket_dir}")
        return True

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str,
    ) -> StorageResult:
        try:
            await asyncio.to_thread(self._write, bucket, path, data)
        except Timeout:
            logger.error(f"Lock timeout writing {bucket}/{path}")
            return StorageResult(
                success=False,
                bucket=bucket,
                path=path,
                error_message=f"Lock timeout ({self.lock_timeout}s)",
            )
        except (OSError, ValueError) as e:
            logger.exception(f"Error writing {bucket}/{path}")
            return StorageResult(success=False, bucket=bucket, path=path, error_message=str(e))

        logger.info(f"Local: stored {bucket}/{path} ({len(data)} bytes, {content_type})")
        return StorageResult(success=True, bucket=bucket, path=path, size_bytes=len(data))

    async def download(self, bucket: str, path: str) -> DownloadResult:
        try:
            data = await asyncio.to_thread(self._read, bucket, path)
        except FileNotFoundError:
            return DownloadResult(success=False, not_found=True, error_message="Object not found")
        except (OSError, ValueError) as e:
            logger.error(f"Error reading {bucket}/{path}: {e}")
            return DownloadResult(success=False, error_message=str(e))
        return DownloadResult(success=True, data=data)

    async def remove(self, bucket: str, path: str) -> StorageResult:
        try:
            removed = await asyncio.to_thread(self._delete, bucket, path)
        except Timeout:
            logger.error(f"Lock timeout removing {bucket}/{path}")
            return StorageResult(
                success=False,
                bucket=bucket,
                path=path,
                error_message=f"Lock timeout ({self.lock_timeout}s)",
            )
        except (OSError, ValueError) as e:
            logger.exception(f"Error removing {bucket}/{path}")
            return StorageResult(success=False, bucket=bucket, path=path, error_message=str(e))

        if removed:
            logger.info(f"Local: removed {bucket}/{path}")
        else:
            logger.debug(f"Local: {bucket}/{path} already absent")
        return StorageResult(success=True, bucket=bucket, path=path, removed=removed)

    async def health_check(self) -> bool:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            return os.access(self.root, os.W_OK)
        except OSError:
            return False
