"""
Profile registration, self-service editing and admin user management.
"""

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Account, Profile, UserDocument
from app.schemas import (
    AdminProfileUpdate,
    AdminUserCreate,
    ProfileRegister,
    ProfileUpdate,
)
from app.services.auth import check_admin, Authorized, signup
from app.services.errors import (
    FoodOrderError,
    InvalidRequestError,
    NotFoundError,
    PermissionDeniedError,
)

logger = logging.getLogger(__name__)

REQUIRED_REGISTRATION_FIELDS = ("id", "first_name", "last_name", "email")


async def get_profile(db: AsyncSession, user_id: str) -> Profile:
    result = await db.execute(select(Profile).where(Profile.id == user_id))
    profile = result.scalar_one_or_none()
    if profile is None:
        raise NotFoundError(f"Profile {user_id} not found")
    return profile


async def register_profile(
    db: AsyncSession,
    payload: ProfileRegister,
    caller_id: Optional[str],
) -> tuple[Profile, bool]:
    """
    Create or update the profile that belongs to an account.

    The caller must be the account itself or an administrator.

    Returns:
        (profile, created) where ``created`` is False for an update
    """
    missing = [f for f in REQUIRED_REGISTRATION_FIELDS if not getattr(payload, f)]
    if missing:
        raise InvalidRequestError(f"Missing required fields: {', '.join(missing)}")

    if caller_id != payload.id:
        if not isinstance(await check_admin(db, caller_id), Authorized):
            raise PermissionDeniedError("Cannot register a profile for another account")

    account = await db.get(Account, payload.id)
    if account is None:
        raise NotFoundError(f"Account {payload.id} not found")

    name = payload.name or f"{payload.first_name} {payload.last_name}"
    profile = await db.get(Profile, payload.id)
    created = profile is None

    if created:
        profile = Profile(id=payload.id, is_admin=False)
        db.add(profile)

    profile.first_name = payload.first_name
    profile.last_name = payload.last_name
    profile.name = name
    profile.email = payload.email
    profile.phone = payload.phone
    profile.address = payload.address or None

    await db.commit()
    await db.refresh(profile)

    logger.info(f"Profile {'created' if created else 'updated'}: {profile.id}")
    return profile, created


NON_NULL_FIELDS = ("first_name", "last_name", "email", "is_admin")


def _apply_changes(profile: Profile, data: dict) -> None:
    for field, value in data.items():
        if value is None and field in NON_NULL_FIELDS:
            continue
        setattr(profile, field, value)
    profile.name = profile.full_name


async def update_own_profile(db: AsyncSession, profile: Profile, changes: ProfileUpdate) -> Profile:
    """Apply self-service fields. The admin flag is never touched here."""
    _apply_changes(profile, changes.model_dump(exclude_unset=True))

    await db.commit()
    await db.refresh(profile)
    return profile


# =============================================================================
# ADMIN USER MANAGEMENT
# =============================================================================

async def list_users(db: AsyncSession) -> list[tuple[Profile, int]]:
    """All profiles, newest first, each with its document count."""
    doc_counts = (
        select(UserDocument.user_id, func.count(UserDocument.id).label("document_count"))
        .group_by(UserDocument.user_id)
        .subquery()
    )
    result = await db.execute(
        select(Profile, func.coalesce(doc_counts.c.document_count, 0))
        .outerjoin(doc_counts, doc_counts.c.user_id == Profile.id)
        .order_by(Profile.created_at.desc(), Profile.id)
    )
    return [(profile, count) for profile, count in result.all()]


async def get_user_detail(db: AsyncSession, user_id: str) -> tuple[Profile, list[UserDocument]]:
    profile = await get_profile(db, user_id)
    result = await db.execute(
        select(UserDocument)
        .where(UserDocument.user_id == user_id)
        .order_by(UserDocument.uploaded_at.desc(), UserDocument.id.desc())
    )
    return profile, list(result.scalars().all())


async def admin_update_user(
    db: AsyncSession,
    user_id: str,
    changes: AdminProfileUpdate,
    actor: Profile,
) -> Profile:
    profile = await get_profile(db, user_id)
    data = changes.model_dump(exclude_unset=True)

    if data.get("is_admin") is False and profile.id == actor.id:
        raise InvalidRequestError("Administrators cannot revoke their own privileges")

    _apply_changes(profile, data)

    await db.commit()
    await db.refresh(profile)

    if "is_admin" in data:
        logger.info(f"Admin {actor.id} set is_admin={profile.is_admin} on {profile.id}")
    return profile


async def admin_create_user(db: AsyncSession, payload: AdminUserCreate) -> Profile:
    """Create an account and its profile in one step."""
    account = await signup(db, payload.email, payload.password, commit=False)

    profile = Profile(
        id=account.id,
        first_name=payload.first_name,
        last_name=payload.last_name,
        name=f"{payload.first_name} {payload.last_name}",
        email=payload.email,
        phone=payload.phone,
        address=payload.address,
        is_admin=payload.is_admin,
    )
    try:
        db.add(profile)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Creating user {payload.email} failed, account discarded: {e}")
        raise FoodOrderError(f"Could not create user {payload.email}") from e

    await db.refresh(profile)

    logger.info(f"Admin-created user {profile.id} (admin={profile.is_admin})")
    return profile
