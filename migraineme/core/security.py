"""Helpers for Supabase-issued access tokens."""

from typing import Optional

from jose import JWTError, jwt

from migraineme.core.logging import get_logger

logger = get_logger(__name__)


def extract_user_id(access_token: Optional[str]) -> Optional[str]:
    """Read the user id (``sub`` claim) from a Supabase access token.

    The signature is not verified here: the token is only forwarded to
    Supabase, which verifies it and enforces row level security. The
    user id is needed client-side to fill ``user_id`` columns and filters.

    Returns:
        The ``sub`` claim, or None if the token is missing or malformed.
    """
    if not access_token:
        return None
    try:
        claims = jwt.get_unverified_claims(access_token)
    except JWTError as e:
        logger.warning("access_token_unreadable", error=str(e))
        return None
    sub = claims.get("sub")
    return str(sub) if sub else None
