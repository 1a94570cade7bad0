# src/roomcast/api/v1/endpoints/auth.py
"""Authentication endpoints for the Roomcast API."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request, status

from roomcast.core.security import create_access_token, verify_password
from roomcast.schemas.user import LoginRequest, LoginResponse, SessionResponse
from roomcast.services.broadcast import EVENT_USERS_UPDATE
from roomcast.services.errors import ChatError
from roomcast.services.users import normalize_nickname

from ..dependencies import (
    CoalescerDep,
    CurrentUserDep,
    LoginLimiterDep,
    UsersDep,
    admit,
    http_error,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


def _client_identity(request: Request) -> str:
    return request.client.host if request.client else "unknown"


@router.post("/login", response_model=LoginResponse)
async def login(
    payload: LoginRequest,
    request: Request,
    users: UsersDep,
    limiter: LoginLimiterDep,
    coalescer: CoalescerDep,
) -> dict[str, Any]:
    """Log in with a nickname and the shared password.

    The user is registered on first login. Every successful login refreshes
    the roster on all connected channels.
    """
    admit(limiter, _client_identity(request))

    nickname = normalize_nickname(payload.nickname)
    if not nickname:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Nickname is required")
    if not payload.password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Password is required")
    if not verify_password(payload.password):
        logger.info("Rejected login for %s: wrong password", nickname)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid password")

    try:
        user, _created = users.ensure(nickname)
        roster = users.list_users()
    except ChatError as err:
        raise http_error(err) from err

    logger.info("%s logged in", user.nickname)
    coalescer.publish(EVENT_USERS_UPDATE, {"users": roster})
    return {
        "user": user.to_payload(),
        "users": roster,
        "token": create_access_token(user.nickname),
    }


@router.get("/me", response_model=SessionResponse)
async def me(current_user: CurrentUserDep, users: UsersDep) -> dict[str, Any]:
    """Return the authenticated user together with the roster."""
    user = users.require(current_user)
    return {"user": user.to_payload(), "users": users.list_users()}
