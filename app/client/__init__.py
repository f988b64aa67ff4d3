"""
Client-side state and API access.

Carries what a browser front end keeps locally: the cart mirrored into
durable storage, the session token and admin capability cache, and the
navigation state, plus an HTTP client for the API.
"""

from app.client.api import ApiError, FoodOrderClient
from app.client.cart import Cart
from app.client.session import Navigation, NavigationState, Session
from app.client.storage import LocalStorage, SessionStorage

__all__ = [
    "ApiError",
    "Cart",
    "FoodOrderClient",
    "LocalStorage",
    "Navigation",
    "NavigationState",
    "Session",
    "SessionStorage",
]
