# src/roomcast/api/v1/endpoints/messages.py
"""Conversation message endpoints for the Roomcast API."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Query, status

from roomcast.schemas.message import MessageCreate
from roomcast.services.errors import ChatError
from roomcast.services.message_store import normalize_cursor

from ..dependencies import CurrentUserDep, HistoryDep, IngressDep, http_error

router = APIRouter(prefix="/messages", tags=["messages"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def send_message(
    message_data: MessageCreate,
    current_user: CurrentUserDep,
    ingress: IngressDep,
) -> dict[str, Any]:
    """Store a message in a global, favorite or direct conversation."""
    try:
        message = ingress.send(
            sender=current_user,
            kind=message_data.type,
            target=message_data.target,
            content=message_data.content,
            attachment_data_url=message_data.attachment_data_url,
            attachment_name=message_data.attachment_name,
            attachment_mime_type=message_data.attachment_mime_type,
        )
    except ChatError as err:
        raise http_error(err) from err
    return {"message": message.to_payload()}


@router.get("/history")
async def get_history(
    current_user: CurrentUserDep,
    history: HistoryDep,
    type: str = Query("", description="Conversation kind"),
    target: str | None = Query(None, description="Other nickname (dm) or provider (ai)"),
    before_id: str | None = Query(
        None, alias="beforeId", description="Return messages older than this id"
    ),
    limit: str | None = Query(None, description="Page size"),
) -> dict[str, Any]:
    """Return one page of a conversation, oldest first within the page."""
    try:
        page = history.fetch(
            current_user,
            type,
            target=target,
            before_id=normalize_cursor(before_id),
            limit=limit,
        )
    except ChatError as err:
        raise http_error(err) from err
    return page.to_payload()


@router.delete("/{message_id}")
async def delete_message(
    message_id: str,
    current_user: CurrentUserDep,
    ingress: IngressDep,
) -> dict[str, bool]:
    """Delete one of the caller's own messages."""
    try:
        parsed_id = int(message_id)
    except ValueError:
        parsed_id = 0
    if parsed_id <= 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid message id")

    try:
        ingress.delete(current_user, parsed_id)
    except ChatError as err:
        raise http_error(err) from err
    return {"ok": True}
