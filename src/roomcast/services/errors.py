"""Domain exceptions raised by the messaging services.

Services raise these and never touch HTTP concerns; the API layer maps each
family to a status code.
"""

from __future__ import annotations


class ChatError(RuntimeError):
    """Base exception for all chat service failures.

    The message is meant to be shown to the user as-is.
    """


class ValidationError(ChatError):
    """Raised when caller-supplied input is missing or malformed."""


class InvalidRequestError(ValidationError):
    """Raised when a request is structurally invalid (e.g. missing target)."""


class InvalidKindError(InvalidRequestError):
    """Raised when a conversation kind is not one of the known kinds."""


class EmptyMessageError(ValidationError):
    """Raised when a message carries neither text nor an attachment."""


class InvalidAttachmentError(ValidationError):
    """Raised when an attachment payload cannot be decoded."""


class AttachmentTooLargeError(ValidationError):
    """Raised when an attachment is empty or exceeds the configured ceiling."""


class InvalidProxyUrlError(ValidationError):
    """Raised when an AI proxy override is not a usable http(s) URL."""


class UnauthorizedError(ChatError):
    """Raised when a bearer token cannot be verified."""


class ForbiddenError(ChatError):
    """Raised when the actor does not own the resource it tries to change."""


class NotFoundError(ChatError):
    """Raised when a referenced entity does not exist."""


class MessageNotFoundError(NotFoundError):
    """Raised when a message id does not exist."""


class UnknownRecipientError(NotFoundError):
    """Raised when a direct message targets a nickname nobody registered."""


class RateLimitedError(ChatError):
    """Raised when admission control rejects a request."""


class ProviderError(ChatError):
    """Raised when an AI provider fails, times out or is not configured."""


class StorageUnavailableError(ChatError):
    """Raised when the underlying storage engine faults."""
