"""Authentication API routes."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from codetrack.api.deps import AUTH_COOKIE, get_db, require_auth
from codetrack.models.user import User
from codetrack.schemas.auth import LoginRequest, TokenResponse, UserRead
from codetrack.services.auth import (
    ACCESS_TOKEN_EXPIRE_HOURS,
    authenticate_user,
    create_access_token,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/login", response_model=TokenResponse)
def login(
    body: LoginRequest,
    response: Response,
    db: Session = Depends(get_db),
) -> TokenResponse:
    """Authenticate and return a JWT; also set it as an httponly cookie."""
    user = authenticate_user(db, body.username, body.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
        )

    token = create_access_token(data={"sub": user.username})
    max_age = 60 * 60 * ACCESS_TOKEN_EXPIRE_HOURS
    response.set_cookie(
        key=AUTH_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        max_age=max_age,
        path="/",
    )
    logger.info("User %s logged in", user.username)
    return TokenResponse(access_token=token, expires_in=max_age)


@router.post("/logout")
def logout(response: Response) -> dict:
    """Clear the authentication cookie."""
    response.delete_cookie(key=AUTH_COOKIE, path="/")
    return {"detail": "Logged out"}


@router.get("/me", response_model=UserRead)
def me(current_user: User = Depends(require_auth)) -> UserRead:
    return UserRead.model_validate(current_user)
