"""Decoding and validation of inline (data URL) attachments."""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass
from typing import Any

from roomcast.core.settings import settings
from roomcast.services.errors import AttachmentTooLargeError, InvalidAttachmentError

_DATA_URL_RE = re.compile(r"^data:([^;,]+);base64,(.+)$", re.DOTALL)
_MAX_LABEL_LENGTH = 120
_MEGABYTE = 1024 * 1024
DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class Attachment:
    """Validated attachment descriptor stored under ``meta.attachment``."""

    name: str
    mime_type: str
    size: int
    data_url: str

    def to_meta(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "mimeType": self.mime_type,
            "size": self.size,
            "dataUrl": self.data_url,
        }


def _clip(raw: Any, fallback: str) -> str:
    value = str(raw).strip()[:_MAX_LABEL_LENGTH] if raw is not None else ""
    return value or fallback


def parse_attachment(
    data_url: str | None,
    name: str | None = None,
    mime_type: str | None = None,
    *,
    max_bytes: int | None = None,
    default_name: str = "file",
) -> Attachment | None:
    """Decode and size-check a data URL attachment.

    Validation has no side effects, so callers run it before persisting.

    Args:
        data_url: ``data:<mime>;base64,<payload>`` string, or None/empty for no attachment.
        name: Optional display name (trimmed, 120 chars max).
        mime_type: Optional explicit MIME type; inferred from the data URL otherwise.
        max_bytes: Size ceiling; defaults to the configured attachment limit.
        default_name: Name used when none is supplied.

    Returns:
        The attachment descriptor, or None when no data URL was supplied.

    Raises:
        InvalidAttachmentError: If the data URL is malformed or not valid base64.
        AttachmentTooLargeError: If the payload decodes to zero bytes or exceeds the ceiling.
    """
    if not data_url:
        return None

    match = _DATA_URL_RE.match(str(data_url))
    if match is None:
        raise InvalidAttachmentError("Invalid attachment data")

    inferred_mime, payload = match.group(1), match.group(2)
    try:
        decoded = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as err:
        raise InvalidAttachmentError("Invalid attachment data") from err

    ceiling = settings.max_attachment_bytes if max_bytes is None else max_bytes
    size = len(decoded)
    if not size or size > ceiling:
        max_mb = ceiling // _MEGABYTE
        raise AttachmentTooLargeError(f"Attachment is too large (max {max_mb}MB)")

    return Attachment(
        name=_clip(name, default_name),
        mime_type=_clip(mime_type, inferred_mime or DEFAULT_MIME_TYPE),
        size=size,
        data_url=str(data_url),
    )
