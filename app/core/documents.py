"""
Document acceptance rules shared by the API and the client package.

Both sides validate a file before it is sent anywhere: the client before
any network call, the server before any storage call.
"""

import os
import re
import time
from typing import Iterable, Optional
from urllib.parse import quote

from app.core.config import get_settings

EXTENSION_MIME_TYPES = {
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
}

# Browsers and multipart clients send these when they do not know the type
GENERIC_MIME_TYPES = {"", "application/octet-stream", "binary/octet-stream"}

UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


class DocumentValidationError(ValueError):
    """File rejected by the size or type rules."""


def resolve_mime_type(filename: str, mime_type: Optional[str]) -> str:
    """Declared MIME type, or one derived from the extension when it is generic."""
    declared = (mime_type or "").split(";")[0].strip().lower()
    if declared not in GENERIC_MIME_TYPES:
        return declared
    extension = os.path.splitext(filename or "")[1].lower()
    return EXTENSION_MIME_TYPES.get(extension, declared or "application/octet-stream")


def validate_document(
    filename: str,
    size_bytes: int,
    mime_type: Optional[str],
    max_bytes: Optional[int] = None,
    allowed_types: Optional[Iterable[str]] = None,
) -> str:
    """
    Check a file against the size and type limits.

    Returns:
        The resolved MIME type to store with the document

    Raises:
        DocumentValidationError: If the file is empty, too large or of a disallowed type
    """
    settings = get_settings()
    max_bytes = settings.document_max_bytes if max_bytes is None else max_bytes
    allowed = set(settings.allowed_document_types_list if allowed_types is None else allowed_types)

    if not filename:
        raise DocumentValidationError("File name is missing")
    if size_bytes <= 0:
        raise DocumentValidationError("File is empty")
    if size_bytes > max_bytes:
        raise DocumentValidationError(
            f"File is too large ({size_bytes} bytes); the limit is {max_bytes // (1024 * 1024)} MB"
        )

    resolved = resolve_mime_type(filename, mime_type)
    if resolved not in allowed:
        raise DocumentValidationError(
            f"File type '{resolved}' is not allowed. Upload a PDF, DOC, DOCX, JPEG or PNG file"
        )
    return resolved


def safe_filename(filename: str) -> str:
    return UNSAFE_FILENAME_CHARS.sub("_", os.path.basename(filename)) or "document"


def build_storage_path(user_id: str, filename: str, now_ms: Optional[int] = None) -> str:
    """``<user_id>/<epoch_ms>_<sanitised filename>``"""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{user_id}/{now_ms}_{safe_filename(filename)}"


def content_disposition(filename: str) -> str:
    """Attachment header with an ASCII fallback and the UTF-8 name (RFC 5987)."""
    fallback = safe_filename(filename)
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"
