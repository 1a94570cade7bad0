"""Helpers for the participant directory."""
from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from roomcast.models import User
from roomcast.services.errors import StorageUnavailableError, UnknownRecipientError

__all__ = [
    "UserDirectory",
    "normalize_nickname",
]

logger = logging.getLogger(__name__)


def normalize_nickname(raw: Any) -> str:
    """Return the trimmed nickname, or an empty string for missing input."""
    if raw is None:
        return ""
    return str(raw).strip()


class UserDirectory:
    """Lookup and first-login registration of users."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def find(self, nickname: str) -> User | None:
        """Return the user matching ``nickname`` case-insensitively."""
        nickname = normalize_nickname(nickname)
        if not nickname:
            return None
        stmt = select(User).where(func.lower(User.nickname) == nickname.lower())
        return self.db.scalars(stmt).first()

    def require(self, nickname: str) -> User:
        """Return a known user or raise :class:`UnknownRecipientError`."""
        user = self.find(nickname)
        if user is None:
            raise UnknownRecipientError("User not found")
        return user

    def canonical_nickname(self, nickname: str) -> str:
        """Return the stored spelling of ``nickname`` if the user exists."""
        user = self.find(nickname)
        return user.nickname if user is not None else normalize_nickname(nickname)

    def ensure(self, nickname: str) -> tuple[User, bool]:
        """Create the user on first login. Returns (user, created)."""
        existing = self.find(nickname)
        if existing is not None:
            return existing, False

        user = User(nickname=normalize_nickname(nickname))
        try:
            self.db.add(user)
            self.db.commit()
        except IntegrityError:
            # Lost a race with a concurrent first login for the same nickname.
            self.db.rollback()
            return self.require(nickname), False
        except SQLAlchemyError as err:
            self.db.rollback()
            logger.error("Failed to register user %s", nickname, exc_info=True)
            raise StorageUnavailableError("User storage is unavailable") from err

        self.db.refresh(user)
        logger.info("Registered new user %s", user.nickname)
        return user, True

    def list_users(self) -> list[dict[str, str]]:
        """Return the full roster ordered case-insensitively by nickname."""
        stmt = select(User).order_by(func.lower(User.nickname), User.id)
        return [user.to_payload() for user in self.db.scalars(stmt)]
