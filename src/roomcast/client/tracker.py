"""Local view of conversations driven by pushed events."""

from __future__ import annotations

import json
import logging
from collections import deque
from collections.abc import Iterable, Mapping
from typing import Any

from roomcast.services.chat_keys import ChatKind, coerce_provider, parse_kind, resolve

logger = logging.getLogger(__name__)

# Deleted ids remembered to suppress a late ``message:new``.
DELETED_IDS_LIMIT = 1000


class ConversationTracker:
    """Tracks the active conversation, its loaded messages and unread counts.

    Unread counters are advisory: deletes never decrement them. The most
    recent ids seen in a ``message:delete`` are remembered so that a
    ``message:new`` for the same id arriving later is ignored.

    Direct-message targets are matched against the roster case-insensitively
    and replaced by the stored spelling, which is what the server uses when it
    builds ``dm`` keys.
    """

    def __init__(
        self,
        me: str,
        kind: ChatKind | str = ChatKind.GLOBAL,
        target: str | None = None,
    ) -> None:
        self.me = me
        self.users: list[dict[str, Any]] = []
        self.messages: list[dict[str, Any]] = []
        self.unread_by_chat_key: dict[str, int] = {}
        self._deleted_ids: set[int] = set()
        self._deleted_order: deque[int] = deque()
        self.active_kind = ChatKind.GLOBAL
        self.active_target: str | None = None
        self.set_active(kind, target)

    def chat_key_for(self, kind: ChatKind | str, target: str | None = None) -> str:
        """Compute the canonical key of a conversation as seen by ``me``."""
        kind = parse_kind(kind)
        if kind is ChatKind.AI:
            target = coerce_provider(target).value
        elif kind is ChatKind.DM:
            target = self.roster_spelling(target)
        return resolve(kind, self.me, target)

    def roster_spelling(self, nickname: str | None) -> str | None:
        """Return the roster's spelling of ``nickname``, or the trimmed input."""
        if nickname is None:
            return None
        wanted = str(nickname).strip()
        for user in self.users:
            known = user.get("nickname")
            if isinstance(known, str) and known.lower() == wanted.lower():
                return known
        return wanted

    @property
    def active_key(self) -> str:
        return self.chat_key_for(self.active_kind, self.active_target)

    def unread_count(self, kind: ChatKind | str, target: str | None = None) -> int:
        return self.unread_by_chat_key.get(self.chat_key_for(kind, target), 0)

    def mark_read(self, kind: ChatKind | str, target: str | None = None) -> None:
        self.unread_by_chat_key.pop(self.chat_key_for(kind, target), None)

    def set_active(self, kind: ChatKind | str, target: str | None = None) -> None:
        """Switch conversations; the caller reloads history afterwards."""
        self.active_kind = parse_kind(kind)
        self.active_target = target
        self.messages = []
        self.mark_read(self.active_kind, target)

    def load_history(self, messages: Iterable[Mapping[str, Any]]) -> None:
        """Replace the active message list with a freshly fetched page."""
        self.messages = [
            dict(message) for message in messages if message.get("id") not in self._deleted_ids
        ]

    def belongs_to_active(self, message: Mapping[str, Any]) -> bool:
        return (
            message.get("chatType") == self.active_kind.value
            and message.get("chatKey") == self.active_key
        )

    def apply_packet(self, raw: str | bytes | Mapping[str, Any]) -> int:
        """Apply a bootstrap frame or a batch frame.

        Returns:
            The number of events applied.
        """
        packet = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
        if "events" in packet:
            events = packet.get("events") or []
        else:
            events = [packet]

        for item in events:
            self.apply_event(item.get("event", ""), item.get("payload") or {})
        return len(events)

    def apply_event(self, event: str, payload: Mapping[str, Any]) -> None:
        if event == "users:update":
            self.users = list(payload.get("users") or [])
        elif event == "message:new":
            message = payload.get("message")
            if message:
                self._on_new(message)
        elif event == "message:delete":
            self._on_delete(payload)
        else:
            logger.debug("Ignoring unknown event %r", event)

    def _on_new(self, message: Mapping[str, Any]) -> None:
        message_id = message.get("id")
        if message_id in self._deleted_ids:
            return

        is_active = self.belongs_to_active(message)
        if not is_active:
            if message.get("sender") != self.me:
                chat_key = message.get("chatKey")
                if chat_key:
                    self.unread_by_chat_key[chat_key] = self.unread_by_chat_key.get(chat_key, 0) + 1
            return

        if all(existing.get("id") != message_id for existing in self.messages):
            self.messages.append(dict(message))

    def _on_delete(self, payload: Mapping[str, Any]) -> None:
        message_id = payload.get("id")
        if message_id is None:
            return
        self._remember_deleted(message_id)
        if self.belongs_to_active(payload):
            self.messages = [item for item in self.messages if item.get("id") != message_id]

    def _remember_deleted(self, message_id: int) -> None:
        if message_id in self._deleted_ids:
            return
        self._deleted_ids.add(message_id)
        self._deleted_order.append(message_id)
        while len(self._deleted_order) > DELETED_IDS_LIMIT:
            self._deleted_ids.discard(self._deleted_order.popleft())
