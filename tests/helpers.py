"""Shared test helpers."""

import time
from datetime import UTC, datetime

import jwt

OWNER_ID = "11111111-1111-1111-1111-111111111111"
SESSION_NAME = "acme-session"
JWT_SECRET = "test-secret"


def make_token(
    user_id: str,
    email: str | None = None,
    expires_in: int = 3600,
    secret: str = JWT_SECRET,
) -> str:
    """Identity provider style access token."""
    claims = {
        "sub": user_id,
        "aud": "authenticated",
        "exp": int(time.time()) + expires_in,
    }
    if email:
        claims["email"] = email
    return jwt.encode(claims, secret, algorithm="HS256")


def epoch(*args) -> int:
    """Unix seconds of a UTC wall-clock time."""
    return int(datetime(*args, tzinfo=UTC).timestamp())


def at(*args) -> datetime:
    return datetime(*args, tzinfo=UTC)
