# src/roomcast/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .ai import AiSendRequest
from .message import MessageCreate
from .user import LoginRequest, LoginResponse, SessionResponse

__all__ = [
    "AiSendRequest",
    "LoginRequest", "LoginResponse", "SessionResponse",
    "MessageCreate",
]
