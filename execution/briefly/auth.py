"""
Access Token Verification

Verifies the HS256 access tokens issued by the managed auth platform and
extracts the caller's identity. Token issuance belongs to the platform;
create_access_token() exists for local tooling and tests only.
"""

import os
import logging
from typing import Optional
from datetime import datetime, timezone, timedelta

import jwt

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
JWT_AUDIENCE = "authenticated"


def _get_jwt_secret() -> str:
    val = os.getenv("SUPABASE_JWT_SECRET", "")
    if not val:
        raise RuntimeError(
            "SUPABASE_JWT_SECRET environment variable is not set. "
            "Copy the project's JWT secret into .env or the environment."
        )
    return val


def _get_jwt_expiry_hours() -> int:
    return int(os.getenv("JWT_EXPIRY_HOURS", "1"))


def create_access_token(user_id: str, email: str = "", expires_in_hours: Optional[int] = None) -> str:
    """
    Mint an access token shaped like the platform's.

    Args:
        user_id: Auth user UUID (``sub`` claim)
        email: User's email
        expires_in_hours: Lifetime; defaults to JWT_EXPIRY_HOURS

    Returns:
        Encoded JWT string
    """
    hours = expires_in_hours if expires_in_hours is not None else _get_jwt_expiry_hours()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "email": email,
        "role": "authenticated",
        "aud": JWT_AUDIENCE,
        "iat": now,
        "exp": now + timedelta(hours=hours),
    }
    return jwt.encode(payload, _get_jwt_secret(), algorithm=JWT_ALGORITHM)


def verify_access_token(token: str) -> Optional[dict]:
    """
    Verify an access token and extract user info.

    Returns:
        Dict with user_id, email, role if valid; None if invalid/expired
    """
    try:
        payload = jwt.decode(
            token,
            _get_jwt_secret(),
            algorithms=[JWT_ALGORITHM],
            audience=JWT_AUDIENCE,
        )
    except jwt.ExpiredSignatureError:
        logger.debug("JWT expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.debug(f"JWT invalid: {e}")
        return None

    if not payload.get("sub"):
        logger.debug("JWT without subject")
        return None

    return {
        "user_id": payload["sub"],
        "email": payload.get("email", ""),
        "role": payload.get("role", ""),
    }


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
