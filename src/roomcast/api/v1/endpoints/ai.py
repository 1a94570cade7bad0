# src/roomcast/api/v1/endpoints/ai.py
"""AI assistant endpoints for the Roomcast API."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Query, status

from roomcast.schemas.ai import AiSendRequest
from roomcast.services.ai_providers import OpenAIConnector, normalize_proxy_url
from roomcast.services.chat_keys import AiProvider
from roomcast.services.errors import ChatError

from ..dependencies import (
    AiChatDep,
    AiLimiterDep,
    ConnectorsDep,
    CurrentUserDep,
    admit,
    http_error,
)

router = APIRouter(prefix="/ai", tags=["ai"])


@router.post("/send")
async def send_prompt(
    request_data: AiSendRequest,
    current_user: CurrentUserDep,
    limiter: AiLimiterDep,
    ai_chat: AiChatDep,
) -> dict[str, Any]:
    """Send a prompt to the caller's AI conversation and wait for the reply.

    A provider failure is not an HTTP error: it is stored and returned as a
    ``System`` message in place of the reply.
    """
    admit(limiter, current_user)

    try:
        exchange = await ai_chat.send(
            current_user,
            request_data.provider,
            text=request_data.text,
            image_data_url=request_data.image_data_url,
            proxy_url=request_data.proxy_url,
        )
    except ChatError as err:
        raise http_error(err) from err
    return exchange.to_payload()


@router.get("/openai-model")
async def openai_model(
    current_user: CurrentUserDep,
    connectors: ConnectorsDep,
    proxy_url: str | None = Query(None, alias="proxyUrl"),
) -> dict[str, Any]:
    """Report which OpenAI model the server is configured for and whether it answers."""
    try:
        proxy = normalize_proxy_url(proxy_url)
    except ChatError as err:
        raise http_error(err) from err

    connector = connectors[AiProvider.OPENAI]
    if not isinstance(connector, OpenAIConnector):
        raise HTTPException(status_code=status.HTTP_501_NOT_IMPLEMENTED, detail="Not available")
    info = await connector.fetch_model_info(proxy)
    return info.to_payload()
