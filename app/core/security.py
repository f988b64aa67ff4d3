"""
Session and capability tokens, password hashing.

Access tokens identify a signed-in account. Admin capability tokens are
short-lived hints a client may cache to skip repeated admin checks; the
server never accepts them in place of a database check.
"""

import time
from typing import Optional

import jwt
from passlib.context import CryptContext

from app.core.config import get_settings

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

ACCESS_TOKEN_TYPE = "access"
CAPABILITY_TOKEN_TYPE = "admin_capability"


class TokenError(Exception):
    """Raised when a token is missing, malformed, expired or of the wrong type."""


def _encode(payload: dict) -> str:
    settings = get_settings()
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def _decode(token: str, expected_type: str) -> dict:
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.PyJWTError as e:
        raise TokenError(str(e)) from e
    if payload.get("typ") != expected_type:
        raise TokenError(f"expected {expected_type} token")
    if not payload.get("sub"):
        raise TokenError("token has no subject")
    return payload


def create_access_token(user_id: str, expires_delta: Optional[int] = None) -> str:
    settings = get_settings()
    now = int(time.time())
    exp = now + (expires_delta or settings.access_token_expire_minutes * 60)
    return _encode({"sub": user_id, "typ": ACCESS_TOKEN_TYPE, "iat": now, "exp": exp})


def decode_access_token(token: str) -> str:
    """Return the account id carried by a valid access token."""
    return _decode(token, ACCESS_TOKEN_TYPE)["sub"]


def create_capability_token(user_id: str) -> tuple[str, int]:
    """Return a signed admin capability token and its expiry (epoch seconds)."""
    settings = get_settings()
    now = int(time.time())
    exp = now + settings.admin_capability_ttl_seconds
    token = _encode({"sub": user_id, "typ": CAPABILITY_TOKEN_TYPE, "iat": now, "exp": exp})
    return token, exp


def decode_capability_token(token: str) -> dict:
    return _decode(token, CAPABILITY_TOKEN_TYPE)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)
