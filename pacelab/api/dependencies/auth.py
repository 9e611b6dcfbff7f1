"""FastAPI authentication dependency for JWT-based auth."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from loguru import logger

from pacelab.core.auth_jwt import decode_access_token

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)


def get_current_athlete_id(request: Request, token: str | None = Depends(oauth2_scheme)) -> str:
    """Resolve the authenticated athlete from the bearer token.

    Raises:
        HTTPException: 401 if the token is missing, invalid, or expired
    """
    if not token:
        logger.warning(f"Missing bearer token: {request.method} {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return decode_access_token(token)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
