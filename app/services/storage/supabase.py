"""
Supabase Storage Implementation

Production implementation talking to the Supabase Storage REST API.
Used when ENV_MODE=production or ENV_MODE=staging.

Requirements:
    - SUPABASE_URL must be set in environment
    - SUPABASE_SERVICE_KEY (service role) for server-side writes

API Documentation:
    https://supabase.com/docs/reference/api/storage
"""

import logging
from typing import Optional
from urllib.parse import quote

import httpx

from app.core.config import get_settings
from app.services.storage.base import (
    BaseStorageService,
    DownloadResult,
    StorageResult,
)

logger = logging.getLogger(__name__)


class SupabaseStorageService(BaseStorageService):
    """
    Supabase Storage service implementation.

    Every call opens a short-lived ``httpx.AsyncClient`` with the configured
    timeout, so a stalled storage request fails instead of hanging a handler.

    Example:
        >>> service = SupabaseStorageService()
        >>> result = await service.upload("user_documents", "u1/id.png", data, "image/png")
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize with project URL and service key from settings.

        Raises:
            ValueError: If SUPABASE_URL or SUPABASE_SERVICE_KEY is not configured
        """
        settings = get_settings()

        if not settings.supabase_url or not settings.supabase_service_key:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_SERVICE_KEY are required outside development mode. "
                "Set them in your .env file or environment variables."
            )

        self._base_url = settings.supabase_url.rstrip("/") + "/storage/v1"
        self._service_key = settings.supabase_service_key
        self._timeout = settings.request_timeout_seconds
        self._file_size_limit = settings.document_max_bytes
        self._transport = transport

        logger.info(f"SupabaseStorageService initialized ({self._base_url})")

    @property
    def provider_name(self) -> str:
        """Return the provider name."""
        return "supabase"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {self._service_key}",
                "apikey": self._service_key,
            },
        )

    @staticmethod
    def _object_url(bucket: str, path: str) -> str:
        return f"/object/{quote(bucket)}/{quote(path)}"

    @staticmethod
    def _error_text(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        return body.get("message") or body.get("error") or str(body)

    async def ensure_bucket(self, bucket: str) -> bool:
        try:
            async with self._client() as client:
                response = await client.get(f"/bucket/{quote(bucket)}")
                if response.status_code == 200:
                    logger.info(f"Supabase: bucket {bucket} already exists")
                    return True

                logger.info(f"Supabase: creating bucket {bucket}")
                response = await client.post(
                    "/bucket",
                    json={
                        "id": bucket,
                        "name": bucket,
                        "public": False,
                        "file_size_limit": self._file_size_limit,
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"Supabase: bucket check failed - {e}")
            return False

        if response.status_code >= 400:
            logger.error(f"Supabase: could not create bucket {bucket} - {self._error_text(response)}")
            return False
        return True

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str,
    ) -> StorageResult:
        try:
            async with self._client() as client:
                response = await client.post(
                    self._object_url(bucket, path),
                    content=data,
                    headers={
                        "Content-Type": content_type,
                        "cache-control": "3600",
                        "x-upsert": "true",
                    },
                )
        except httpx.HTTPError as e:
            logger.error(f"Supabase: upload of {bucket}/{path} failed - {e}")
            return StorageResult(success=False, bucket=bucket, path=path, error_message=str(e))

        if response.status_code >= 400:
            message = self._error_text(response)
            logger.error(f"Supabase: upload of {bucket}/{path} rejected - {message}")
            return StorageResult(success=False, bucket=bucket, path=path, error_message=message)

        logger.info(f"Supabase: stored {bucket}/{path} ({len(data)} bytes)")
        return StorageResult(success=True, bucket=bucket, path=path, size_bytes=len(data))

    async def download(self, bucket: str, path: str) -> DownloadResult:
        try:
            async with self._client() as client:
                response = await client.get(self._object_url(bucket, path))
        except httpx.HTTPError as e:
            logger.error(f"Supabase: download of {bucket}/{path} failed - {e}")
            return DownloadResult(success=False, error_message=str(e))

        # Storage answers 400 "Object not found" as well as 404
        if response.status_code in (400, 404):
            return DownloadResult(success=False, not_found=True, error_message=self._error_text(response))
        if response.status_code >= 400:
            return DownloadResult(success=False, error_message=self._error_text(response))
        return DownloadResult(success=True, data=response.content)

    async def remove(self, bucket: str, path: str) -> StorageResult:
        try:
            async with self._client() as client:
                response = await client.request(
                    "DELETE",
                    f"/object/{quote(bucket)}",
                    json={"prefixes": [path]},
                )
        except httpx.HTTPError as e:
            logger.error(f"Supabase: remove of {bucket}/{path} failed - {e}")
            return StorageResult(success=False, bucket=bucket, path=path, error_message=str(e))

        if response.status_code >= 400:
            message = self._error_text(response)
            logger.error(f"Supabase: remove of {bucket}/{path} rejected - {message}")
            return StorageResult(success=False, bucket=bucket, path=path, error_message=message)

        # The API lists the objects it deleted; an empty list means already absent
        removed = bool(response.json())
        return StorageResult(success=True, bucket=bucket, path=path, removed=removed)

    async def health_check(self) -> bool:
        try:
            async with self._client() as client:
                response = await client.get("/bucket")
        except httpx.HTTPError as e:
            logger.error(f"Supabase: health check failed - {e}")
            return False
        return response.status_code == 200
