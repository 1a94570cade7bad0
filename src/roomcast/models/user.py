# src/roomcast/models/user.py
"""SQLAlchemy model for chat participants."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from roomcast.db.session import Base
from roomcast.db.time import isoformat_utc, utcnow


class User(Base):
    """Participant identified by a case-insensitively unique nickname.

    Rows are created on first login and never mutated or deleted afterwards.
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nickname: Mapped[str] = mapped_column(
        String(64, collation="NOCASE"),
        unique=True,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def to_payload(self) -> dict[str, str]:
        """Return the roster representation of the user."""
        return {"nickname": self.nickname, "createdAt": isoformat_utc(self.created_at)}
