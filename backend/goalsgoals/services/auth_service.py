"""
backend/goalsgoals/services/auth_service.py

Purpose:
    Identity seam for the HTTP layer: verify the bearer JWT issued by the
    login service and hand the username to the quota and claim services.
    Tokens are never issued here.

Dependencies:
    - PyJWT
    - goalsgoals.config
"""

import logging
from typing import Optional

import jwt
from fastapi import HTTPException, Request, status
from jwt.exceptions import InvalidTokenError as JWTError

from goalsgoals.config import settings

logger = logging.getLogger("goalsgoals.auth")

ALGORITHM = "HS256"


def decode_jwt(token: str) -> dict:
    """Decode a JWT, trying the current secret first, then the old one.

    JWT_SECRET_OLD keeps tokens signed before a rotation valid until they expire.
    """
    if not settings.JWT_SECRET:
        raise JWTError("JWT_SECRET not configured")
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGORITHM])
    except JWTError:
        if settings.JWT_SECRET_OLD:
            return jwt.decode(token, settings.JWT_SECRET_OLD, algorithms=[ALGORITHM])
        raise


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def _payload_or_401(request: Request) -> dict:
    token = _bearer_token(request)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Please log in",
        )
    try:
        payload = decode_jwt(token)
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )
    if not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )
    return payload


async def get_current_username(request: Request) -> str:
    """FastAPI dependency: the authenticated username (token subject)."""
    return str(_payload_or_401(request)["sub"])


async def get_admin_username(request: Request) -> str:
    """FastAPI dependency: requires an authenticated admin."""
    payload = _payload_or_401(request)
    if payload.get("role") != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden",
        )
    return str(payload["sub"])
