"""Athlete access tokens.

Tokens are stateless. They name the athlete in 'sub', are issued by this
service ('iss'), and carry the 'coaching' scope that the coaching API
requires.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from loguru import logger

from pacelab.config.settings import settings

COACHING_SCOPE = "coaching"


def create_access_token(athlete_id: str, expires_in: timedelta | None = None) -> str:
    """Issue a coaching access token for an athlete.

    Args:
        athlete_id: Athlete the token authenticates
        expires_in: Lifetime override, defaults to AUTH_TOKEN_EXPIRE_DAYS

    Raises:
        ValueError: If athlete_id is empty
    """
    if not athlete_id:
        raise ValueError("athlete_id cannot be empty")

    issued_at = datetime.now(timezone.utc)
    lifetime = expires_in if expires_in is not None else timedelta(days=settings.auth_token_expire_days)
    claims = {
        "iss": settings.auth_issuer,
        "sub": str(athlete_id),
        "scope": COACHING_SCOPE,
        "iat": issued_at,
        "exp": issued_at + lifetime,
    }
    return jwt.encode(claims, settings.auth_secret_key, algorithm=settings.auth_algorithm)


def decode_access_token(token: str) -> str:
    """Verify a coaching access token and return the athlete id it names.

    Raises:
        ValueError: If the token is malformed, expired, from another issuer,
            lacks the coaching scope or names no athlete
    """
    try:
        claims = jwt.decode(
            token,
            settings.auth_secret_key,
            algorithms=[settings.auth_algorithm],
            issuer=settings.auth_issuer,
            options={"require_exp": True, "require_iss": True, "require_sub": True},
        )
    except JWTError as e:
        logger.warning(f"Rejected access token: {e}")
        raise ValueError("Invalid or expired token") from e

    if COACHING_SCOPE not in str(claims.get("scope", "")).split():
        logger.warning(f"Rejected access token without coaching scope: sub={claims.get('sub')}")
        raise ValueError("Token is not valid for coaching")

    athlete_id = claims.get("sub")
    if not athlete_id:
        raise ValueError("Token missing athlete ID")
    return str(athlete_id)
