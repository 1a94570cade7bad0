"""Durable append-only message storage with cursor pagination."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, NoReturn

from sqlalchemy import desc, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from roomcast.core.settings import settings
from roomcast.db.time import isoformat_utc
from roomcast.models import Message
from roomcast.services.errors import MessageNotFoundError, StorageUnavailableError

logger = logging.getLogger(__name__)

FORMAT_PLAIN = "plain"
FORMAT_MARKDOWN = "markdown"


@dataclass(frozen=True)
class StoredMessage:
    """Immutable snapshot of a persisted message row."""

    id: int
    chat_type: str
    chat_key: str
    sender: str
    content: str
    format: str
    meta: Mapping[str, Any] | None
    created_at: datetime

    @classmethod
    def from_row(cls, row: Message) -> StoredMessage:
        return cls(
            id=row.id,
            chat_type=row.chat_type,
            chat_key=row.chat_key,
            sender=row.sender,
            content=row.content,
            format=row.format,
            meta=_decode_meta(row.meta_json),
            created_at=row.created_at,
        )

    def to_payload(self) -> dict[str, Any]:
        """Serialize into the wire representation shared by REST and push."""
        return {
            "id": self.id,
            "chatType": self.chat_type,
            "chatKey": self.chat_key,
            "sender": self.sender,
            "content": self.content,
            "format": self.format,
            "meta": dict(self.meta) if self.meta is not None else None,
            "createdAt": isoformat_utc(self.created_at),
        }


@dataclass(frozen=True)
class MessagePage:
    """A window of messages ordered ascending by id."""

    messages: list[StoredMessage] = field(default_factory=list)
    has_more: bool = False

    def to_payload(self) -> dict[str, Any]:
        return {
            "messages": [message.to_payload() for message in self.messages],
            "hasMore": self.has_more,
        }


def _decode_meta(meta_json: str | None) -> Mapping[str, Any] | None:
    if not meta_json:
        return None
    try:
        decoded = json.loads(meta_json)
    except ValueError:
        logger.warning("Discarding undecodable message metadata")
        return None
    return decoded if isinstance(decoded, dict) else None


def normalize_limit(
    raw: Any,
    *,
    default: int | None = None,
    maximum: int | None = None,
) -> int:
    """Clamp a caller-supplied page size.

    Non-numeric and non-positive input falls back to the default instead of
    failing; anything above the maximum is clamped.
    """
    default = settings.history_limit_default if default is None else default
    maximum = settings.history_limit_max if maximum is None else maximum
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    if value <= 0:
        return default
    return min(value, maximum)


def normalize_cursor(raw: Any) -> int | None:
    """Parse a ``beforeId`` cursor; blank, zero or non-numeric means "latest"."""
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return None
    return value or None


class MessageStore:
    """Persistence gateway for chat messages.

    ``append`` and ``delete_by_id`` are the only mutators. Ids come from the
    database autoincrement sequence, so they are strictly increasing and never
    reused regardless of how many callers append concurrently.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def append(
        self,
        chat_type: str,
        chat_key: str,
        sender: str,
        content: str,
        format: str = FORMAT_PLAIN,
        meta: Mapping[str, Any] | None = None,
    ) -> StoredMessage:
        """Persist a new message and return the stored row."""
        row = Message(
            chat_type=chat_type,
            chat_key=chat_key,
            sender=sender,
            content=content,
            format=format,
            meta_json=json.dumps(dict(meta)) if meta else None,
        )
        try:
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
        except SQLAlchemyError as err:
            self._fail("append", err)

        logger.debug("Stored message %s in %s", row.id, chat_key)
        return StoredMessage.from_row(row)

    def get(self, message_id: int) -> StoredMessage:
        """Return a single message or raise :class:`MessageNotFoundError`."""
        try:
            row = self.db.get(Message, message_id)
        except SQLAlchemyError as err:
            self._fail("get", err)
        if row is None:
            raise MessageNotFoundError("Message not found")
        return StoredMessage.from_row(row)

    def get_page(
        self,
        chat_key: str,
        before_id: int | None = None,
        limit: Any = None,
    ) -> MessagePage:
        """Return up to ``limit`` messages older than ``before_id``.

        Fetches one extra row descending by id to detect whether older
        messages remain, then returns the window in ascending order.
        """
        safe_limit = normalize_limit(limit)
        stmt = select(Message).where(Message.chat_key == chat_key)
        if before_id is not None:
            stmt = stmt.where(Message.id < before_id)
        stmt = stmt.order_by(desc(Message.id)).limit(safe_limit + 1)

        try:
            rows = list(self.db.scalars(stmt))
        except SQLAlchemyError as err:
            self._fail("get_page", err)

        has_more = len(rows) > safe_limit
        window = rows[:safe_limit]
        window.reverse()
        return MessagePage(
            messages=[StoredMessage.from_row(row) for row in window],
            has_more=has_more,
        )

    def delete_by_id(self, message_id: int) -> StoredMessage:
        """Remove one message and return it as it was before removal."""
        try:
            row = self.db.get(Message, message_id)
            if row is None:
                raise MessageNotFoundError("Message not found")
            snapshot = StoredMessage.from_row(row)
            self.db.delete(row)
            self.db.commit()
        except SQLAlchemyError as err:
            self._fail("delete", err)

        logger.debug("Deleted message %s from %s", snapshot.id, snapshot.chat_key)
        return snapshot

    def _fail(self, operation: str, err: SQLAlchemyError) -> NoReturn:
        self.db.rollback()
        logger.error("Message store %s failed", operation, exc_info=True)
        raise StorageUnavailableError("Message storage is unavailable") from err
