# src/roomcast/services/__init__.py
"""Business logic services for the Roomcast application."""

from .broadcast import BroadcastCoalescer
from .history import HistoryService
from .ingress import MessageIngress
from .message_store import MessageStore
from .realtime import SessionRegistry
from .users import UserDirectory

__all__ = [
    "BroadcastCoalescer",
    "HistoryService",
    "MessageIngress",
    "MessageStore",
    "SessionRegistry",
    "UserDirectory",
]
