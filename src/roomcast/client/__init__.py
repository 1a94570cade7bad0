"""Client-side helpers for consuming a Roomcast server.

These mirror what the browser client does: compute canonical keys locally,
filter live batches, keep unread counters, and resync from history after a
reconnect.
"""

from .api import ChatApiClient, ChatApiError
from .stream import ChatStream
from .tracker import ConversationTracker

__all__ = [
    "ChatApiClient",
    "ChatApiError",
    "ChatStream",
    "ConversationTracker",
]
