"""
User Document Service

Identity documents live in object storage; ``user_documents`` rows hold
the bucket/path reference plus download metadata.

Upload order is object first, record second. If the record cannot be
written the object is removed again so storage never keeps orphans that
the database does not know about.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.documents import (
    DocumentValidationError,
    build_storage_path,
    validate_document,
)
from app.models import Profile, UserDocument
from app.services.errors import (
    ConflictError,
    InvalidRequestError,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
)
from app.services.storage import BaseStorageService

logger = logging.getLogger(__name__)


def _check_access(document_owner: str, actor: Profile) -> None:
    if document_owner != actor.id and not actor.is_admin:
        raise PermissionDeniedError("This document belongs to another user")


async def list_documents(db: AsyncSession, user_id: str) -> list[UserDocument]:
    result = await db.execute(
        select(UserDocument)
        .where(UserDocument.user_id == user_id)
        .order_by(UserDocument.uploaded_at.desc(), UserDocument.id.desc())
    )
    return list(result.scalars().all())


async def upload_document(
    db: AsyncSession,
    storage: BaseStorageService,
    owner_id: Optional[str],
    actor: Profile,
    filename: str,
    data: bytes,
    content_type: Optional[str],
) -> UserDocument:
    """
    Validate, store and record one document for ``owner_id``.

    Raises:
        InvalidRequestError: Missing owner, empty/oversized file or disallowed type
        PermissionDeniedError: Uploading for another user without admin rights
        ConflictError: The owner already has a document
        StorageError: The object store or the record insert failed
    """
    settings = get_settings()

    if not owner_id:
        raise InvalidRequestError("File or user id is missing")
    _check_access(owner_id, actor)

    try:
        mime_type = validate_document(filename, len(data), content_type)
    except DocumentValidationError as e:
        raise InvalidRequestError(str(e)) from e

    if await db.get(Profile, owner_id) is None:
        raise NotFoundError(f"Profile {owner_id} not found")

    if settings.single_document_per_user and await list_documents(db, owner_id):
        raise ConflictError("A document is already uploaded; delete it before uploading a new one")

    bucket = settings.storage_bucket
    path = build_storage_path(owner_id, filename)

    stored = await storage.upload(bucket, path, data, mime_type)
    if not stored.success:
        raise StorageError(f"Upload failed: {stored.error_message}")

    document = UserDocument(
        user_id=owner_id,
        filename=filename,
        size_bytes=len(data),
        mime_type=mime_type,
        storage_bucket=bucket,
        storage_path=path,
        exclusive=True if settings.single_document_per_user else None,
    )
    try:
        db.add(document)
        await db.commit()
    except IntegrityError as e:
        # A concurrent upload recorded its document first
        await db.rollback()
        logger.warning(f"Concurrent upload rejected for {owner_id}, removing {bucket}/{path}")
        await storage.remove(bucket, path)
        raise ConflictError("A document is already uploaded; delete it before uploading a new one") from e
    except Exception as e:
        await db.rollback()
        logger.error(f"Document record for {bucket}/{path} failed, removing object: {e}")
        await storage.remove(bucket, path)
        raise StorageError(f"Could not save document record: {e}") from e

    await db.refresh(document)
    logger.info(f"Document #{document.id} uploaded for {owner_id} ({document.size_bytes} bytes)")
    return document


async def download_document(
    db: AsyncSession,
    storage: BaseStorageService,
    document_id: Optional[int],
    actor: Profile,
) -> tuple[UserDocument, bytes]:
    """
    Raises:
        InvalidRequestError: No document id given
        NotFoundError: Unknown document or missing object
        StorageError: Storage read failed
    """
    if document_id is None:
        raise InvalidRequestError("Document id is missing")

    document = await db.get(UserDocument, document_id)
    if document is None:
        raise NotFoundError(f"Document #{document_id} not found")
    _check_access(document.user_id, actor)

    fetched = await storage.download(document.storage_bucket, document.storage_path)
    if fetched.not_found:
        raise NotFoundError(f"Document #{document_id} has no stored content")
    if not fetched.success:
        raise StorageError(f"Download failed: {fetched.error_message}")

    return document, fetched.data


async def delete_document(
    db: AsyncSession,
    storage: BaseStorageService,
    document_id: int,
    actor: Profile,
) -> bool:
    """
    Remove a document record and its stored object.

    Returns:
        False when the document did not exist (nothing to do), True otherwise
    """
    document = await db.get(UserDocument, document_id)
    if document is None:
        logger.debug(f"Document #{document_id} already gone")
        return False
    _check_access(document.user_id, actor)

    removed = await storage.remove(document.storage_bucket, document.storage_path)
    if not removed.success:
        raise StorageError(f"Could not remove stored object: {removed.error_message}")

    await db.delete(document)
    await db.commit()

    logger.info(f"Document #{document_id} deleted by {actor.id}")
    return True
