"""
Client session state: bearer token, admin capability cache and navigation.

The admin capability token is only a hint that spares repeated admin
checks while a session is open; it expires quickly, is dropped on
sign-out, and the server re-checks the database on every admin call
regardless.
"""

import enum
import json
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from app.client.storage import SessionStorage

logger = logging.getLogger(__name__)

ADMIN_CAPABILITY_KEY = "admin_capability"
LOGIN_PATH = "/login"


@dataclass
class AdminCapability:
    user_id: str
    token: str
    expires_at: int


class AdminCapabilityCache:
    """Admin capability token held in session storage."""

    def __init__(self, storage: SessionStorage, clock: Callable[[], float] = time.time):
        self._storage = storage
        self._clock = clock

    def store(self, user_id: str, token: str, expires_at: int) -> None:
        self._storage.set_item(
            ADMIN_CAPABILITY_KEY,
            json.dumps({"user_id": user_id, "token": token, "expires_at": expires_at}),
        )

    def get(self, user_id: str) -> Optional[AdminCapability]:
        """Cached capability for ``user_id``, or None when absent, expired or foreign."""
        raw = self._storage.get_item(ADMIN_CAPABILITY_KEY)
        if raw is None:
            return None
        try:
            capability = AdminCapability(**json.loads(raw))
        except (TypeError, ValueError):
            self.clear()
            return None

        if capability.user_id != user_id or capability.expires_at <= self._clock():
            self.clear()
            return None
        return capability

    def clear(self) -> None:
        self._storage.remove_item(ADMIN_CAPABILITY_KEY)


class NavigationState(str, enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    REDIRECTING = "redirecting"
    AUTHENTICATED = "authenticated"


class Navigation:
    """
    Tracks whether the client is signed in or on its way to the login page.

    A failed gate asks for one redirect; further failures while that
    redirect is pending are ignored, so the client cannot loop.
    """

    def __init__(self):
        self.state = NavigationState.UNAUTHENTICATED

    def require_login(self) -> Optional[str]:
        """Path to redirect to, or None if a redirect is already under way."""
        if self.state == NavigationState.REDIRECTING:
            return None
        self.state = NavigationState.REDIRECTING
        return LOGIN_PATH

    def signed_in(self) -> None:
        self.state = NavigationState.AUTHENTICATED

    def reset(self) -> None:
        self.state = NavigationState.UNAUTHENTICATED


class Session:
    """One browser session: bearer token, session storage and navigation."""

    def __init__(self, storage: Optional[SessionStorage] = None, clock: Callable[[], float] = time.time):
        self.storage = storage or SessionStorage()
        self.admin_capability = AdminCapabilityCache(self.storage, clock=clock)
        self.navigation = Navigation()
        self.access_token: Optional[str] = None
        self.user_id: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.access_token is not None

    def sign_in(self, access_token: str, user_id: str) -> None:
        self.access_token = access_token
        self.user_id = user_id
        self.navigation.signed_in()
        logger.debug(f"Signed in as {user_id}")

    def sign_out(self) -> None:
        self.access_token = None
        self.user_id = None
        self.admin_capability.clear()
        self.navigation.reset()
