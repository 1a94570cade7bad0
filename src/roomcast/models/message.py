# src/roomcast/models/message.py
"""Models describing chat messages."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from roomcast.db.session import Base
from roomcast.db.time import utcnow


class Message(Base):
    """Append-only chat message addressed by its canonical chat key.

    ``id`` is the sole source of chronological order; ``created_at`` is
    advisory. ``sqlite_autoincrement`` keeps ids from being reused after
    deletes.
    """

    __tablename__ = "messages"
    __table_args__ = (
        Index("ix_messages_chat_key_id", "chat_key", "id"),
        {"sqlite_autoincrement": True},
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    chat_type: Mapped[str] = mapped_column(String(16), nullable=False)
    chat_key: Mapped[str] = mapped_column(Text, nullable=False)
    sender: Mapped[str] = mapped_column(String(64), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    format: Mapped[str] = mapped_column(String(16), nullable=False, default="plain")
    # JSON-encoded attachment descriptor and/or AI provider metadata.
    meta_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
