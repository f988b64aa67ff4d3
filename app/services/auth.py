"""
Accounts, Sessions and the Admin Gate

Sign-up/sign-in issue bearer tokens. ``check_admin`` is the single admin
capability check: it returns a typed result and never grants access when
any step of the lookup fails. The ``require_*`` functions are FastAPI
dependencies built on top of it.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Optional, Union

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import (
    TokenError,
    decode_access_token,
    hash_password,
    verify_password,
)
from app.database import get_db
from app.models import Account, Profile
from app.services.errors import (
    AuthenticationRequiredError,
    ConflictError,
    PermissionDeniedError,
)

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)

REASON_NO_SESSION = "no_session"
REASON_PROFILE_LOOKUP_FAILED = "profile_lookup_failed"
REASON_NOT_ADMIN = "not_admin"


@dataclass
class Authorized:
    profile: Profile

    @property
    def authorized(self) -> bool:
        return True


@dataclass
class Unauthorized:
    """Denied admin check. ``reason`` is one of the REASON_* constants."""
    reason: str

    @property
    def authorized(self) -> bool:
        return False


AdminCheckResult = Union[Authorized, Unauthorized]


# =============================================================================
# ACCOUNTS
# =============================================================================

async def signup(db: AsyncSession, email: str, password: str, commit: bool = True) -> Account:
    """
    Create a sign-in account. The profile is registered separately.

    With ``commit=False`` the account is only flushed, so the caller can
    write the profile in the same transaction.
    """
    existing = await db.execute(select(Account).where(Account.email == email))
    if existing.scalar_one_or_none() is not None:
        raise ConflictError(f"An account with email {email} already exists")

    account = Account(id=str(uuid.uuid4()), email=email, password_hash=hash_password(password))
    db.add(account)
    if not commit:
        await db.flush()
        return account

    await db.commit()
    await db.refresh(account)

    logger.info(f"Account created: {account.id}")
    return account


async def login(db: AsyncSession, email: str, password: str) -> Account:
    """Verify credentials and return the matching account."""
    result = await db.execute(select(Account).where(Account.email == email))
    account = result.scalar_one_or_none()

    if account is None or not verify_password(password, account.password_hash):
        logger.warning(f"Failed login for {email}")
        raise AuthenticationRequiredError("Invalid email or password")

    return account


# =============================================================================
# ADMIN GATE
# =============================================================================

async def check_admin(db: AsyncSession, user_id: Optional[str]) -> AdminCheckResult:
    """
    Decide whether ``user_id`` holds admin privileges.

    Returns:
        Authorized(profile) when the profile exists and ``is_admin`` is true,
        otherwise Unauthorized with the reason of the first failing step.
    """
    if not user_id:
        return Unauthorized(REASON_NO_SESSION)

    try:
        result = await db.execute(select(Profile).where(Profile.id == user_id))
        profile = result.scalar_one_or_none()
    except SQLAlchemyError as e:
        logger.error(f"Admin check: profile lookup failed for {user_id}: {e}")
        return Unauthorized(REASON_PROFILE_LOOKUP_FAILED)

    if profile is None:
        logger.warning(f"Admin check: no profile for {user_id}")
        return Unauthorized(REASON_PROFILE_LOOKUP_FAILED)

    if profile.is_admin is not True:
        return Unauthorized(REASON_NOT_ADMIN)

    return Authorized(profile)


# =============================================================================
# DEPENDENCIES
# =============================================================================

async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    """Account id from the bearer token, or None when absent or invalid."""
    if credentials is None:
        return None
    try:
        return decode_access_token(credentials.credentials)
    except TokenError as e:
        logger.debug(f"Rejected bearer token: {e}")
        return None


async def require_user(user_id: Optional[str] = Depends(get_current_user_id)) -> str:
    if user_id is None:
        raise AuthenticationRequiredError("Sign in required")
    return user_id


async def require_profile(
    user_id: str = Depends(require_user),
    db: AsyncSession = Depends(get_db),
) -> Profile:
    """Signed-in user's profile; registration must be complete."""
    result = await db.execute(select(Profile).where(Profile.id == user_id))
    profile = result.scalar_one_or_none()
    if profile is None:
        raise PermissionDeniedError("Profile registration is not complete")
    return profile


async def require_admin(
    user_id: Optional[str] = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Profile:
    """Re-checks the admin flag in the database on every request."""
    outcome = await check_admin(db, user_id)
    if isinstance(outcome, Authorized):
        return outcome.profile

    if outcome.reason == REASON_NO_SESSION:
        raise AuthenticationRequiredError("Sign in required")
    logger.warning(f"Admin access denied for {user_id}: {outcome.reason}")
    raise PermissionDeniedError(f"Administrator privileges required ({outcome.reason})")
