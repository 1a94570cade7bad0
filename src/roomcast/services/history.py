"""Paginated conversation history."""

from __future__ import annotations

from typing import Any

from roomcast.services.chat_keys import ChatKind, coerce_provider, parse_kind, resolve
from roomcast.services.errors import InvalidRequestError
from roomcast.services.message_store import MessagePage, MessageStore
from roomcast.services.users import UserDirectory, normalize_nickname


class HistoryService:
    """Answers "give me messages for this conversation" for an actor.

    An empty or never-used conversation yields an empty page, never a
    not-found error.
    """

    def __init__(self, store: MessageStore, users: UserDirectory) -> None:
        self.store = store
        self.users = users

    def conversation_key(self, actor: str, kind: ChatKind | str, target: str | None) -> str:
        """Validate the request shape and resolve its canonical key."""
        kind = parse_kind(kind)
        if kind is ChatKind.GLOBAL or kind is ChatKind.FAVORITE:
            return resolve(kind, actor)
        if kind is ChatKind.DM:
            other = normalize_nickname(target)
            if not other:
                raise InvalidRequestError("target is required")
            return resolve(kind, actor, self.users.canonical_nickname(other))
        if kind is ChatKind.AI:
            return resolve(kind, actor, coerce_provider(target).value)
        raise InvalidRequestError("Invalid type")

    def fetch(
        self,
        actor: str,
        kind: ChatKind | str,
        target: str | None = None,
        before_id: int | None = None,
        limit: Any = None,
    ) -> MessagePage:
        """Return one page of history, oldest first within the page."""
        chat_key = self.conversation_key(actor, kind, target)
        return self.store.get_page(chat_key, before_id=before_id, limit=limit)
