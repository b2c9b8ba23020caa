"""Shared FastAPI dependencies for API routes."""

from __future__ import annotations

from fastapi import Cookie, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from codetrack.db.session import get_db, get_session_factory  # re-export
from codetrack.models.user import User
from codetrack.services.auth import get_user_from_token
from codetrack.services.errors import (
    ExternalToolFailure,
    NotFoundError,
    PersistenceFailure,
    ServiceError,
    UnauthorizedError,
    ValidationFailure,
)

__all__ = [
    "AUTH_COOKIE",
    "get_current_user",
    "get_db",
    "get_github_token",
    "get_session_factory",
    "http_error",
    "require_auth",
]

# Cookie name for browser sessions
AUTH_COOKIE = "access_token"


def get_current_user(
    db: Session = Depends(get_db),
    authorization: str | None = Header(None),
    access_token: str | None = Cookie(None),
) -> User | None:
    """Return the authenticated user or None.

    Checks (in order):
    1. Authorization: Bearer <token> header
    2. access_token cookie
    """
    token: str | None = None

    if authorization and authorization.startswith("Bearer "):
        token = authorization[len("Bearer ") :]

    if token is None and access_token:
        token = access_token

    if token is None:
        return None

    return get_user_from_token(db, token)


def require_auth(user: User | None = Depends(get_current_user)) -> User:
    """Dependency that requires authentication (401 otherwise)."""
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return user


def get_github_token(x_github_token: str | None = Header(None)) -> str | None:
    """Per-request GitHub credentials from the X-GitHub-Token header."""
    if x_github_token and x_github_token.strip():
        return x_github_token.strip()
    return None


_STATUS_BY_ERROR: list[tuple[type[ServiceError], int]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (UnauthorizedError, status.HTTP_403_FORBIDDEN),
    (ValidationFailure, status.HTTP_400_BAD_REQUEST),
    (ExternalToolFailure, status.HTTP_502_BAD_GATEWAY),
    (PersistenceFailure, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def http_error(exc: ServiceError) -> HTTPException:
    """Map a service error to the HTTPException a route should raise."""
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
