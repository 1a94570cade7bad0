# src/roomcast/api/v1/endpoints/__init__.py
"""API endpoint modules for version 1."""

from .ai import router as ai_router
from .auth import router as auth_router
from .messages import router as messages_router
from .realtime import router as realtime_router
from .users import router as users_router

__all__ = [
    "ai_router",
    "auth_router",
    "messages_router",
    "realtime_router",
    "users_router",
]
