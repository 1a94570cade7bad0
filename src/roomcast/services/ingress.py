"""Validation, persistence and publication of user-authored messages."""

from __future__ import annotations

import logging

from roomcast.services.attachments import parse_attachment
from roomcast.services.broadcast import (
    EVENT_MESSAGE_DELETE,
    EVENT_MESSAGE_NEW,
    BroadcastCoalescer,
)
from roomcast.services.chat_keys import ChatKind, parse_kind, resolve
from roomcast.services.errors import EmptyMessageError, ForbiddenError, InvalidRequestError
from roomcast.services.message_store import FORMAT_PLAIN, MessageStore, StoredMessage
from roomcast.services.users import UserDirectory, normalize_nickname

logger = logging.getLogger(__name__)

ATTACHMENT_PLACEHOLDER = "[attachment]"


class MessageIngress:
    """Accepts sends and deletes from authenticated actors.

    All validation happens before the first write so a rejected request leaves
    no trace in the store or on the push channel.
    """

    def __init__(
        self,
        store: MessageStore,
        users: UserDirectory,
        coalescer: BroadcastCoalescer,
        max_attachment_bytes: int | None = None,
    ) -> None:
        self.store = store
        self.users = users
        self.coalescer = coalescer
        self.max_attachment_bytes = max_attachment_bytes

    def send(
        self,
        sender: str,
        kind: ChatKind | str,
        target: str | None = None,
        content: str | None = None,
        attachment_data_url: str | None = None,
        attachment_name: str | None = None,
        attachment_mime_type: str | None = None,
    ) -> StoredMessage:
        """Persist a message from ``sender`` and publish ``message:new``.

        Raises:
            InvalidKindError: Unknown kind.
            InvalidRequestError: ``ai`` kind, or ``dm`` without a target.
            EmptyMessageError: Neither text nor attachment present.
            InvalidAttachmentError / AttachmentTooLargeError: Bad attachment.
            UnknownRecipientError: ``dm`` target is not a registered user.
        """
        kind = parse_kind(kind)
        if kind is ChatKind.AI:
            raise InvalidRequestError("AI conversations are sent through the AI endpoint")

        text = (content or "").strip()
        attachment = parse_attachment(
            attachment_data_url,
            attachment_name,
            attachment_mime_type,
            max_bytes=self.max_attachment_bytes,
        )
        if not text and attachment is None:
            raise EmptyMessageError("Message text or attachment is required")

        if kind is ChatKind.DM:
            other = normalize_nickname(target)
            if not other:
                raise InvalidRequestError("target is required")
            chat_key = resolve(kind, sender, self.users.require(other).nickname)
        else:
            chat_key = resolve(kind, sender)

        message = self.store.append(
            chat_type=kind.value,
            chat_key=chat_key,
            sender=sender,
            content=text or ATTACHMENT_PLACEHOLDER,
            format=FORMAT_PLAIN,
            meta={"attachment": attachment.to_meta()} if attachment else None,
        )
        self.coalescer.publish(EVENT_MESSAGE_NEW, {"message": message.to_payload()})
        return message

    def delete(self, requester: str, message_id: int) -> StoredMessage:
        """Delete one of the requester's own messages and publish ``message:delete``.

        Raises:
            MessageNotFoundError: No such message.
            ForbiddenError: The requester is not the original sender.
        """
        message = self.store.get(message_id)
        if message.sender != requester:
            raise ForbiddenError("You can delete only your own messages")

        removed = self.store.delete_by_id(message_id)
        logger.info("Message %s deleted by %s", removed.id, requester)
        self.coalescer.publish(
            EVENT_MESSAGE_DELETE,
            {"id": removed.id, "chatType": removed.chat_type, "chatKey": removed.chat_key},
        )
        return removed
