"""Per-user AI assistant conversations."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from roomcast.core.settings import settings
from roomcast.services.ai_providers import (
    AiConnector,
    GenerationRequest,
    GenerationResult,
    normalize_proxy_url,
)
from roomcast.services.attachments import parse_attachment
from roomcast.services.broadcast import EVENT_MESSAGE_NEW, BroadcastCoalescer
from roomcast.services.chat_keys import AiProvider, ChatKind, coerce_provider, resolve
from roomcast.services.errors import EmptyMessageError, ProviderError
from roomcast.services.message_store import (
    FORMAT_MARKDOWN,
    FORMAT_PLAIN,
    MessageStore,
    StoredMessage,
)

logger = logging.getLogger(__name__)

IMAGE_PLACEHOLDER = "[image]"
SYSTEM_SENDER = "System"
DEFAULT_IMAGE_NAME = "image-from-user.png"


@dataclass(frozen=True)
class AiExchange:
    """The persisted prompt and the persisted reply (or failure notice)."""

    user_message: StoredMessage
    ai_message: StoredMessage

    def to_payload(self) -> dict[str, Any]:
        return {
            "userMessage": self.user_message.to_payload(),
            "aiMessage": self.ai_message.to_payload(),
        }


class AiChatService:
    """Stores a prompt, asks the provider, stores the answer.

    The prompt is persisted and published before the provider is called, so a
    provider failure never loses the user's message. The failure itself is
    recorded as a ``System`` message in place of the reply.
    """

    def __init__(
        self,
        store: MessageStore,
        coalescer: BroadcastCoalescer,
        connectors: Mapping[AiProvider, AiConnector],
        deadline_seconds: float | None = None,
    ) -> None:
        self.store = store
        self.coalescer = coalescer
        self.connectors = connectors
        self.deadline_seconds = (
            settings.ai_timeout_seconds if deadline_seconds is None else deadline_seconds
        )

    async def send(
        self,
        actor: str,
        provider: AiProvider | str | None,
        text: str | None = None,
        image_data_url: str | None = None,
        proxy_url: str | None = None,
    ) -> AiExchange:
        """Run one prompt/reply round trip in the actor's AI conversation.

        Raises:
            EmptyMessageError: Neither text nor image supplied.
            InvalidProxyUrlError: Malformed proxy override.
            InvalidAttachmentError / AttachmentTooLargeError: Bad image payload.
        """
        resolved = coerce_provider(provider)
        prompt = text or ""
        proxy = normalize_proxy_url(proxy_url)
        if not prompt.strip() and not image_data_url:
            raise EmptyMessageError("text or image is required")
        image = parse_attachment(image_data_url, DEFAULT_IMAGE_NAME)

        chat_key = resolve(ChatKind.AI, actor, resolved.value)
        user_meta: dict[str, Any] = {"provider": resolved.value, "hasImage": image is not None}
        if image is not None:
            user_meta["attachment"] = image.to_meta()

        user_message = self.store.append(
            chat_type=ChatKind.AI.value,
            chat_key=chat_key,
            sender=actor,
            content=prompt.strip() or IMAGE_PLACEHOLDER,
            format=FORMAT_PLAIN,
            meta=user_meta,
        )
        self.coalescer.publish(EVENT_MESSAGE_NEW, {"message": user_message.to_payload()})

        connector = self.connectors[resolved]
        request = GenerationRequest(text=prompt, image_data_url=image_data_url, proxy_url=proxy)
        try:
            result = await self._generate(connector, request)
        except ProviderError as err:
            logger.warning("AI provider %s failed for %s: %s", resolved.value, actor, err)
            ai_message = self.store.append(
                chat_type=ChatKind.AI.value,
                chat_key=chat_key,
                sender=SYSTEM_SENDER,
                content=str(err),
                format=FORMAT_PLAIN,
                meta={"provider": resolved.value, "error": True},
            )
        else:
            ai_message = self.store.append(
                chat_type=ChatKind.AI.value,
                chat_key=chat_key,
                sender=resolved.sender_name,
                content=result.text,
                format=FORMAT_MARKDOWN,
                meta={"provider": resolved.value, "modelUsed": result.model_id or connector.model},
            )

        self.coalescer.publish(EVENT_MESSAGE_NEW, {"message": ai_message.to_payload()})
        return AiExchange(user_message=user_message, ai_message=ai_message)

    async def _generate(self, connector: AiConnector, request: GenerationRequest) -> GenerationResult:
        try:
            return await asyncio.wait_for(connector.generate(request), self.deadline_seconds)
        except TimeoutError as exc:
            raise ProviderError(f"{connector.label} did not answer in time") from exc
