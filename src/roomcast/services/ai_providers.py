"""HTTP connectors for the AI providers.

Each connector turns a prompt (text and/or an inline image) into generated
text. Transport failures, timeouts, missing credentials and non-2xx replies
all surface as :class:`ProviderError` with a readable message.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote, urlsplit

import httpx

from roomcast.core.settings import settings
from roomcast.services.chat_keys import AiProvider
from roomcast.services.errors import InvalidProxyUrlError, ProviderError

logger = logging.getLogger(__name__)

_MAX_PROXY_URL_LENGTH = 300
_ERROR_BODY_PREVIEW = 400
_IMAGE_DATA_URL_RE = re.compile(r"^data:(.+?);base64,(.+)$", re.DOTALL)
_DESCRIBE_IMAGE_PROMPT = "Describe the image."
_SYSTEM_PROMPT = (
    "Answer in the user's language and use markdown formatting "
    "(headings, lists, code blocks) where appropriate."
)


@dataclass(frozen=True)
class GenerationRequest:
    """Prompt handed to a connector."""

    text: str = ""
    image_data_url: str | None = None
    proxy_url: str | None = None


@dataclass(frozen=True)
class GenerationResult:
    """Generated reply plus the model that produced it, when reported."""

    text: str
    model_id: str | None = None


@dataclass(frozen=True)
class ModelInfo:
    """Result of probing the configured OpenAI model."""

    configured_model: str
    api_model: str | None
    ok: bool
    error: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "configuredModel": self.configured_model,
            "apiModel": self.api_model,
            "ok": self.ok,
            "error": self.error,
        }


def normalize_proxy_url(value: Any) -> str | None:
    """Validate an optional proxy override and strip it to origin + path.

    Raises:
        InvalidProxyUrlError: If the URL is too long, unparsable or not http(s).
    """
    raw = str(value or "").strip()
    if not raw:
        return None
    if len(raw) > _MAX_PROXY_URL_LENGTH:
        raise InvalidProxyUrlError("Proxy URL is too long")
    try:
        parsed = urlsplit(raw)
    except ValueError as err:
        raise InvalidProxyUrlError("Invalid proxy URL") from err
    if parsed.scheme not in ("http", "https"):
        raise InvalidProxyUrlError("Proxy URL must be http or https")
    if not parsed.netloc:
        raise InvalidProxyUrlError("Invalid proxy URL")
    return f"{parsed.scheme}://{parsed.netloc}{parsed.path.rstrip('/')}"


class AiConnector(ABC):
    """Base class for provider connectors."""

    provider: AiProvider
    label: str

    def __init__(
        self,
        api_key: str | None,
        model: str,
        base_url: str,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = (
            settings.ai_timeout_seconds if timeout_seconds is None else timeout_seconds
        )
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Produce a reply for ``request``."""

    def _client(self, proxy_url: str | None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=proxy_url or self.base_url,
            timeout=httpx.Timeout(self.timeout_seconds),
            transport=self._transport,
        )

    def _require_key(self) -> str:
        if not self.api_key:
            raise ProviderError(f"{self.label} API key is not configured on the server.")
        return self.api_key

    async def _request(
        self,
        method: str,
        path: str,
        *,
        proxy_url: str | None,
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            async with self._client(proxy_url) as client:
                response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("%s request timed out", self.label)
            raise ProviderError(f"{self.label} request timed out") from exc
        except httpx.HTTPError as exc:
            logger.warning("%s request failed: %s", self.label, exc)
            raise ProviderError(f"{self.label} request failed: {exc}") from exc

        if response.is_error:
            logger.warning("%s responded with %s", self.label, response.status_code)
            raise ProviderError(
                f"{self.label} error: {response.status_code}. "
                f"{response.text[:_ERROR_BODY_PREVIEW]}"
            )
        return response

    def _json(self, response: httpx.Response) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError(f"{self.label} returned an unreadable response") from exc
        if not isinstance(data, dict):
            raise ProviderError(f"{self.label} returned an unexpected response")
        return data


class OpenAIConnector(AiConnector):
    """Connector for the OpenAI Responses API."""

    provider = AiProvider.OPENAI
    label = "OpenAI"

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        api_key = self._require_key()

        content: list[dict[str, str]] = []
        if request.text.strip():
            content.append({"type": "input_text", "text": request.text})
        if request.image_data_url:
            content.append({"type": "input_image", "image_url": request.image_data_url})
        if not content:
            content.append({"type": "input_text", "text": _DESCRIBE_IMAGE_PROMPT})

        response = await self._request(
            "POST",
            "/v1/responses",
            proxy_url=request.proxy_url,
            headers={"Authorization": f"Bearer {api_key}"},
            json={
                "model": self.model,
                "input": [
                    {"role": "system", "content": _SYSTEM_PROMPT},
                    {"role": "user", "content": content},
                ],
            },
        )
        data = self._json(response)
        model_id = str(data.get("model") or (data.get("response") or {}).get("model") or "")
        return GenerationResult(
            text=self._extract_text(data) or "Empty response from OpenAI.",
            model_id=model_id or None,
        )

    async def fetch_model_info(self, proxy_url: str | None = None) -> ModelInfo:
        """Ask the API whether the configured model is reachable."""
        if not self.api_key:
            return ModelInfo(self.model, None, False, "OpenAI API key is not configured")
        try:
            response = await self._request(
                "GET",
                f"/v1/models/{quote(self.model, safe='')}",
                proxy_url=proxy_url,
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            data = self._json(response)
        except ProviderError as err:
            return ModelInfo(self.model, None, False, str(err))

        return ModelInfo(self.model, str(data.get("id") or "") or self.model, True, None)

    @staticmethod
    def _extract_text(data: dict[str, Any]) -> str:
        output_text = data.get("output_text")
        if isinstance(output_text, str) and output_text.strip():
            return output_text

        texts = [
            part["text"]
            for item in data.get("output") or []
            for part in item.get("content") or []
            if part.get("type") == "output_text" and part.get("text")
        ]
        return "\n\n".join(texts)


class GeminiConnector(AiConnector):
    """Connector for the Gemini ``generateContent`` API."""

    provider = AiProvider.GEMINI
    label = "Gemini"

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        api_key = self._require_key()

        parts: list[dict[str, Any]] = []
        if request.text.strip():
            parts.append({"text": request.text})
        if request.image_data_url:
            match = _IMAGE_DATA_URL_RE.match(request.image_data_url)
            if match:
                parts.append(
                    {"inline_data": {"mime_type": match.group(1), "data": match.group(2)}}
                )
        if not parts:
            parts.append({"text": _DESCRIBE_IMAGE_PROMPT})

        response = await self._request(
            "POST",
            f"/v1beta/models/{self.model}:generateContent",
            proxy_url=request.proxy_url,
            params={"key": api_key},
            json={"contents": [{"role": "user", "parts": parts}]},
        )
        data = self._json(response)
        candidates = data.get("candidates") or [{}]
        reply_parts = (candidates[0].get("content") or {}).get("parts") or []
        text = "\n\n".join(part["text"] for part in reply_parts if part.get("text"))
        return GenerationResult(text=text or "Empty response from Gemini.", model_id=self.model)


def build_connectors() -> dict[AiProvider, AiConnector]:
    """Create connectors from the global settings."""
    return {
        AiProvider.OPENAI: OpenAIConnector(
            settings.openai_api_key,
            settings.openai_model,
            settings.openai_base_url,
        ),
        AiProvider.GEMINI: GeminiConnector(
            settings.gemini_api_key,
            settings.gemini_model,
            settings.gemini_base_url,
        ),
    }


class _ConnectorsSingleton:
    """Singleton wrapper for the provider connector map."""

    _instance: dict[AiProvider, AiConnector] | None = None

    @classmethod
    def get_instance(cls) -> dict[AiProvider, AiConnector]:
        if cls._instance is None:
            cls._instance = build_connectors()
        return cls._instance


def get_ai_connectors() -> dict[AiProvider, AiConnector]:
    """Return the process-wide connector map."""
    return _ConnectorsSingleton.get_instance()
