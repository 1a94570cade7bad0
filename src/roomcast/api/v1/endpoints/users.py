# src/roomcast/api/v1/endpoints/users.py
"""User roster endpoint for the Roomcast API."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from ..dependencies import UsersDep

router = APIRouter(prefix="/users", tags=["users"])


@router.get("")
async def list_users(users: UsersDep) -> dict[str, list[dict[str, Any]]]:
    """Return every registered nickname."""
    return {"users": users.list_users()}
