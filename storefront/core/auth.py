# storefront/core/auth.py
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from sqlmodel import Session

from storefront.core.config import get_settings
from storefront.database import get_session
from storefront.models.user import User

settings = get_settings()

# auto_error=False so a missing header yields our own 401 detail
bearer_scheme = HTTPBearer(auto_error=False)


def _signing_secret() -> str:
    """
    JWT_SECRET is only needed where tokens are issued or verified.

    Raises:
        HTTPException(500): if the store API runs without one.
    """
    if not settings.JWT_SECRET:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Token verification is not configured",
        )
    return settings.JWT_SECRET


def create_access_token(
    sub: str,
    email: str | None = None,
    expires_minutes: int = 60,
) -> str:
    """
    Issue an HS256 access token for `sub`. Used by tooling and tests;
    production tokens come from the identity provider with the same secret.
    """
    claims: dict[str, Any] = {
        "sub": sub,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=expires_minutes),
    }
    if email:
        claims["email"] = email
    return jwt.encode(claims, _signing_secret(), algorithm=settings.JWT_ALG)


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Decode and verify an access token (JWT).

    Verification:
      - signature (JWT_SECRET / JWT_ALG)
      - expiration time (exp)
      - audience is NOT verified

    Raises:
        HTTPException(401): if token is invalid/expired.
        HTTPException(500): if JWT_SECRET is not set.
    """
    secret = _signing_secret()
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=[settings.JWT_ALG],
            options={"verify_aud": False},
        )
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> User | None:
    """
    Resolve the current user from the bearer token.

    Flow:
      1. No Authorization header => None.
      2. Decode JWT => 'sub' is the user id.
      3. Auto-provision the user row on first sight.

    Raises:
        HTTPException(401): if token is malformed or has no 'sub'.
    """
    if credentials is None:
        return None

    payload = decode_access_token(credentials.credentials)
    sub = payload.get("sub")
    if not sub:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token missing sub",
        )

    user = session.get(User, sub)
    if user is None:
        user = User(id=sub, email=payload.get("email"))
        session.add(user)
        session.commit()
        session.refresh(user)

    return user


def require_auth(user: User | None = Depends(get_current_user)) -> User:
    """
    Enforce authentication.

    Raises:
        HTTPException(401): if user is None.
    """
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return user


def require_owner(user_id: str, user: User = Depends(require_auth)) -> User:
    """
    Enforce that the `{user_id}` path segment is the caller.

    Raises:
        HTTPException(403): if it belongs to someone else.
    """
    if user.id != user_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Cannot access another user's collections",
        )
    return user
