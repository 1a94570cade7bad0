"""Tests for the AI provider connectors."""

import json

import httpx
import pytest

from roomcast.services.ai_providers import (
    GeminiConnector,
    GenerationRequest,
    OpenAIConnector,
    normalize_proxy_url,
)
from roomcast.services.errors import InvalidProxyUrlError, ProviderError


def _openai(handler, api_key: str | None = "sk-test") -> OpenAIConnector:
    return OpenAIConnector(
        api_key, "gpt-test", "https://api.example.com", transport=httpx.MockTransport(handler)
    )


def _gemini(handler, api_key: str | None = "g-test") -> GeminiConnector:
    return GeminiConnector(
        api_key, "gemini-test", "https://gemini.example.com", transport=httpx.MockTransport(handler)
    )


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (None, None),
        ("   ", None),
        ("https://proxy.example.com/", "https://proxy.example.com"),
        ("http://proxy.example.com:8080/base//?q=1", "http://proxy.example.com:8080/base"),
    ],
)
def test_normalize_proxy_url(raw, expected) -> None:
    assert normalize_proxy_url(raw) == expected


@pytest.mark.parametrize(
    "raw",
    ["ftp://proxy.example.com", "proxy.example.com", "https://", "https://x.com/" + "a" * 300],
)
def test_normalize_proxy_url_rejects(raw) -> None:
    with pytest.raises(InvalidProxyUrlError):
        normalize_proxy_url(raw)


@pytest.mark.asyncio
async def test_openai_generate_sends_responses_request() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"model": "gpt-test-2024", "output_text": "**hello**"})

    result = await _openai(handler).generate(GenerationRequest(text="hi"))

    assert result.text == "**hello**"
    assert result.model_id == "gpt-test-2024"
    request = seen[0]
    assert request.url == "https://api.example.com/v1/responses"
    assert request.headers["Authorization"] == "Bearer sk-test"
    body = json.loads(request.content)
    assert body["model"] == "gpt-test"
    assert body["input"][1]["content"] == [{"type": "input_text", "text": "hi"}]


@pytest.mark.asyncio
async def test_openai_joins_output_parts_and_uses_proxy() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={
                "output": [
                    {"content": [{"type": "output_text", "text": "one"}]},
                    {"content": [{"type": "refusal"}, {"type": "output_text", "text": "two"}]},
                ]
            },
        )

    result = await _openai(handler).generate(
        GenerationRequest(text="", image_data_url="data:image/png;base64,AAAA", proxy_url="https://proxy.test/p")
    )

    assert result.text == "one\n\ntwo"
    assert result.model_id is None
    assert str(seen[0].url) == "https://proxy.test/p/v1/responses"
    content = json.loads(seen[0].content)["input"][1]["content"]
    assert content == [{"type": "input_image", "image_url": "data:image/png;base64,AAAA"}]


@pytest.mark.asyncio
async def test_openai_error_status_becomes_provider_error() -> None:
    connector = _openai(lambda request: httpx.Response(429, text="slow down"))
    with pytest.raises(ProviderError, match="OpenAI error: 429. slow down"):
        await connector.generate(GenerationRequest(text="hi"))


@pytest.mark.asyncio
async def test_missing_key_is_provider_error() -> None:
    connector = _openai(lambda request: httpx.Response(200), api_key=None)
    with pytest.raises(ProviderError, match="not configured"):
        await connector.generate(GenerationRequest(text="hi"))


@pytest.mark.asyncio
async def test_transport_failure_is_provider_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(ProviderError, match="request failed"):
        await _gemini(handler).generate(GenerationRequest(text="hi"))


@pytest.mark.asyncio
async def test_timeout_is_provider_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    with pytest.raises(ProviderError, match="timed out"):
        await _gemini(handler).generate(GenerationRequest(text="hi"))


@pytest.mark.asyncio
async def test_gemini_generate() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"candidates": [{"content": {"parts": [{"text": "a"}, {"text": "b"}]}}]},
        )

    result = await _gemini(handler).generate(
        GenerationRequest(text="hi", image_data_url="data:image/jpeg;base64,QUJD")
    )

    assert result.text == "a\n\nb"
    assert result.model_id == "gemini-test"
    request = seen[0]
    assert request.url.path == "/v1beta/models/gemini-test:generateContent"
    assert request.url.params["key"] == "g-test"
    parts = json.loads(request.content)["contents"][0]["parts"]
    assert parts == [{"text": "hi"}, {"inline_data": {"mime_type": "image/jpeg", "data": "QUJD"}}]


@pytest.mark.asyncio
async def test_gemini_empty_reply_has_fallback_text() -> None:
    result = await _gemini(lambda request: httpx.Response(200, json={})).generate(
        GenerationRequest(text="hi")
    )
    assert result.text == "Empty response from Gemini."


@pytest.mark.asyncio
async def test_unreadable_body_is_provider_error() -> None:
    connector = _openai(lambda request: httpx.Response(200, text="<html>"))
    with pytest.raises(ProviderError, match="unreadable"):
        await connector.generate(GenerationRequest(text="hi"))


@pytest.mark.asyncio
async def test_fetch_model_info() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/models/gpt-test"
        return httpx.Response(200, json={"id": "gpt-test"})

    info = await _openai(handler).fetch_model_info()
    assert info.to_payload() == {
        "configuredModel": "gpt-test",
        "apiModel": "gpt-test",
        "ok": True,
        "error": None,
    }


@pytest.mark.asyncio
async def test_fetch_model_info_failures() -> None:
    missing_key = await _openai(lambda request: httpx.Response(200), api_key=None).fetch_model_info()
    assert missing_key.ok is False
    assert "not configured" in missing_key.error

    failed = await _openai(lambda request: httpx.Response(404, text="nope")).fetch_model_info()
    assert failed.ok is False
    assert failed.api_model is None
    assert "404" in failed.error
