"""
Authentication middleware for JWT verification.

This module provides authentication by:
1. Extracting and verifying JWT tokens from Authorization headers
2. Looking up the user in our database to get their roles
3. Returning a verified AuthContext that routes can trust

Tokens are issued by the identity service and signed with the shared
JWT_SECRET_KEY. Every credential failure is reported to the client with the
same 401 message; the specific cause is only logged.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, status
from jose import JWTError, jwt

from config import settings
from models.database import get_session
from models.user import User
from services.result_policy import Principal

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid credentials."


@dataclass
class AuthContext:
    """
    Verified authentication context.

    All values are verified from the JWT token and looked up from our
    database. Routes should ONLY use these values, never client-provided
    parameters.
    """
    user_id: int
    email: str
    roles: frozenset[str]

    @property
    def principal(self) -> Principal:
        return Principal(user_id=self.user_id, roles=self.roles)


def _invalid_credentials() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=INVALID_CREDENTIALS_MESSAGE,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _extract_token(authorization: Optional[str]) -> str:
    """
    Extract the JWT token from the Authorization header.

    Args:
        authorization: The Authorization header value (e.g., "Bearer <token>")

    Returns:
        The extracted token string

    Raises:
        HTTPException: If header is missing or malformed
    """
    if not authorization:
        logger.warning("Missing Authorization header")
        raise _invalid_credentials()

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        logger.warning("Invalid Authorization header format")
        raise _invalid_credentials()

    return parts[1]


def _verify_jwt(token: str) -> dict:
    """
    Verify the JWT token and return the payload.

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_aud": False},
        )
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        raise _invalid_credentials()


def _subject_user_id(payload: dict) -> int:
    sub = payload.get("sub")
    try:
        return int(sub)
    except (TypeError, ValueError):
        logger.warning(f"Invalid token subject: {sub!r}")
        raise _invalid_credentials()


async def _get_user(user_id: int) -> User:
    """
    Look up the user in our database using the JWT subject claim.

    Raises:
        HTTPException: If user not found
    """
    async with get_session() as session:
        user = await session.get(User, user_id)

    if not user:
        logger.warning(f"User not found for JWT subject: {user_id}")
        raise _invalid_credentials()
    return user


async def get_current_auth(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> AuthContext:
    """
    FastAPI dependency that verifies the JWT and returns AuthContext.

    Usage:
        @router.get("/protected")
        async def protected_route(auth: AuthContext = Depends(get_current_auth)):
            # auth.user_id and auth.roles are verified
            ...

    Raises:
        HTTPException: If authentication fails
    """
    token = _extract_token(authorization)
    payload = _verify_jwt(token)
    user = await _get_user(_subject_user_id(payload))

    return AuthContext(
        user_id=user.id,
        email=user.email,
        roles=frozenset(user.roles or []),
    )
