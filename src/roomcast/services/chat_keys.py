"""Canonical conversation identity.

Every participant derives the same key for a conversation from its kind and
participants. The web client and :mod:`roomcast.client.tracker` compute these
keys locally to filter live events and count unread messages, so the format
below must stay byte-for-byte stable.
"""

from __future__ import annotations

from enum import Enum

from roomcast.services.errors import InvalidKindError, InvalidRequestError

KEY_SEPARATOR = "::"


class ChatKind(str, Enum):
    """The closed set of conversation kinds."""

    GLOBAL = "global"
    FAVORITE = "favorite"
    DM = "dm"
    AI = "ai"


class AiProvider(str, Enum):
    """AI providers that can back an ``ai`` conversation."""

    OPENAI = "openai"
    GEMINI = "gemini"

    @property
    def sender_name(self) -> str:
        """Reserved sender name used for replies from this provider."""
        return _PROVIDER_SENDERS[self]


_PROVIDER_SENDERS = {
    AiProvider.OPENAI: "ChatGPT",
    AiProvider.GEMINI: "Gemini",
}

DEFAULT_PROVIDER = AiProvider.OPENAI


def parse_kind(raw: ChatKind | str | None) -> ChatKind:
    """Return the :class:`ChatKind` for ``raw`` or raise :class:`InvalidKindError`."""
    if isinstance(raw, ChatKind):
        return raw
    try:
        return ChatKind((raw or "").strip())
    except ValueError as err:
        raise InvalidKindError("Invalid type") from err


def coerce_provider(raw: AiProvider | str | None) -> AiProvider:
    """Map arbitrary input onto a known provider, defaulting to OpenAI."""
    if isinstance(raw, AiProvider):
        return raw
    try:
        return AiProvider((raw or "").strip().lower())
    except ValueError:
        return DEFAULT_PROVIDER


def resolve(kind: ChatKind | str, actor: str, target: str | None = None) -> str:
    """Derive the canonical chat key for a conversation.

    Args:
        kind: Conversation kind.
        actor: Nickname of the participant computing the key.
        target: The other nickname for ``dm``; the provider for ``ai``.

    Returns:
        The canonical key, e.g. ``dm::alice::bob``.

    Raises:
        InvalidKindError: If ``kind`` is unknown.
        InvalidRequestError: If ``dm``/``ai`` is missing its target.
    """
    kind = parse_kind(kind)

    if kind is ChatKind.GLOBAL:
        return ChatKind.GLOBAL.value
    if kind is ChatKind.FAVORITE:
        return KEY_SEPARATOR.join((kind.value, actor))

    if not target:
        raise InvalidRequestError("target is required")

    if kind is ChatKind.DM:
        # Self-DMs resolve to dm::x::x; callers should prefer favorites.
        low, high = sorted((actor, target))
        return KEY_SEPARATOR.join((kind.value, low, high))
    if kind is ChatKind.AI:
        provider = coerce_provider(target)
        return KEY_SEPARATOR.join((kind.value, actor, provider.value))

    raise InvalidKindError("Invalid type")
