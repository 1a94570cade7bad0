"""Async HTTP client for the Roomcast REST API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


class ChatApiError(RuntimeError):
    """Raised when the server answers with an error status."""

    def __init__(self, status_code: int, detail: str) -> None:
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class ChatApiClient:
    """Thin wrapper over ``httpx.AsyncClient`` that carries the bearer token."""

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.token = token
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    async def __aenter__(self) -> ChatApiClient:
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def login(self, nickname: str, password: str) -> dict[str, Any]:
        """Log in and keep the returned token for later calls."""
        data = await self._request(
            "POST",
            "/auth/login",
            json={"nickname": nickname, "password": password},
            authenticated=False,
        )
        self.token = data["token"]
        return data

    async def me(self) -> dict[str, Any]:
        return await self._request("GET", "/auth/me")

    async def users(self) -> list[dict[str, Any]]:
        data = await self._request("GET", "/users", authenticated=False)
        return list(data.get("users") or [])

    async def history(
        self,
        kind: str,
        target: str | None = None,
        before_id: int | None = None,
        limit: int | None = None,
    ) -> dict[str, Any]:
        """Fetch one page of a conversation: ``{messages, hasMore}``."""
        params: dict[str, Any] = {"type": kind}
        if target:
            params["target"] = target
        if before_id is not None:
            params["beforeId"] = before_id
        if limit is not None:
            params["limit"] = limit
        return await self._request("GET", "/messages/history", params=params)

    async def send(
        self,
        kind: str,
        content: str | None = None,
        target: str | None = None,
        attachment_data_url: str | None = None,
        attachment_name: str | None = None,
        attachment_mime_type: str | None = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"type": kind, "target": target, "content": content}
        if attachment_data_url:
            body.update(
                attachmentDataUrl=attachment_data_url,
                attachmentName=attachment_name,
                attachmentMimeType=attachment_mime_type,
            )
        data = await self._request("POST", "/messages", json=body)
        return data["message"]

    async def delete(self, message_id: int) -> None:
        await self._request("DELETE", f"/messages/{message_id}")

    async def _request(
        self,
        method: str,
        path: str,
        *,
        authenticated: bool = True,
        **kwargs: Any,
    ) -> dict[str, Any]:
        headers: dict[str, str] = {}
        if authenticated and self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        response = await self._client.request(method, f"{API_PREFIX}{path}", headers=headers, **kwargs)
        if response.is_error:
            try:
                detail = str(response.json().get("detail") or response.reason_phrase)
            except ValueError:
                detail = response.text or response.reason_phrase
            logger.debug("%s %s failed: %s %s", method, path, response.status_code, detail)
            raise ChatApiError(response.status_code, detail)
        return response.json()
