"""
Admin Bootstrap Script

Grants (or revokes) administrator privileges on an existing profile.
Needed once per deployment: the first administrator cannot be created
through the API because every admin endpoint requires an administrator.

Run from project root:
    python scripts/grant_admin.py anna@example.com
    python scripts/grant_admin.py anna@example.com --revoke
"""

import argparse
import asyncio
import os
import sys

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

from app.core.config import setup_logging
from app.database import async_session_maker, engine, init_db
from app.models import Profile


async def set_admin(email: str, is_admin: bool) -> bool:
    """Set the admin flag on the profile with ``email``."""
    await init_db()
    try:
        async with async_session_maker() as db:
            result = await db.execute(select(Profile).where(Profile.email == email.strip().lower()))
            profile = result.scalar_one_or_none()
            if profile is None:
                print(f"❌ No profile registered with email {email}")
                return False

            profile.is_admin = is_admin
            await db.commit()
            state = "granted to" if is_admin else "revoked from"
            print(f"✅ Admin privileges {state} {profile.full_name} ({profile.id})")
            return True
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Grant or revoke admin privileges")
    parser.add_argument("email", help="Email of a registered profile")
    parser.add_argument("--revoke", action="store_true", help="Revoke instead of grant")
    args = parser.parse_args()

    setup_logging()
    ok = asyncio.run(set_admin(args.email, not args.revoke))
    sys.exit(0 if ok else 1)
