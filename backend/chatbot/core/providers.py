"""
Model Provider adapters.

A provider turns one linear prompt into an async sequence of text
fragments. Fragments are yielded as soon as the upstream API hands them
over; nothing is buffered beyond the fragment being parsed.
"""
import json
from typing import AsyncIterator, Protocol

import httpx
from loguru import logger

from chatbot.config import Settings, get_settings
from chatbot.exceptions import ProviderError


class ModelProvider(Protocol):
    name: str

    def stream(self, prompt: str) -> AsyncIterator[str]:
        ...


class GeminiProvider:
    """Google Generative Language API, server-sent-events streaming."""

    name = "gemini"

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.api_key = settings.gemini_api_key
        self.model = settings.gemini_model
        self.base_url = settings.gemini_base_url.rstrip("/")
        self.timeout = settings.provider_timeout
        self._transport = transport

    @property
    def url(self) -> str:
        return f"{self.base_url}/v1beta/models/{self.model}:streamGenerateContent"

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        body = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            async with client.stream(
                "POST",
                self.url,
                params={"alt": "sse"},
                headers={"x-goog-api-key": self.api_key},
                json=body,
            ) as resp:
                if resp.status_code != 200:
                    error_body = await resp.aread()
                    logger.error("Gemini error {}: {}", resp.status_code, error_body)
                    raise ProviderError(f"Gemini returned HTTP {resp.status_code}")

                async for line in resp.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    try:
                        chunk = json.loads(line[len("data:"):].strip())
                    except json.JSONDecodeError as e:
                        raise ProviderError("Malformed Gemini stream event") from e

                    text = _gemini_text(chunk)
                    if text:
                        yield text


def _gemini_text(chunk: dict) -> str:
    candidates = chunk.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(p.get("text", "") for p in parts)


class OllamaProvider:
    """Local Ollama server, JSON-lines streaming."""

    name = "ollama"

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = settings.ollama_base_url
        self.model = settings.ollama_model
        self.timeout = settings.provider_timeout
        self._transport = transport

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        body = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "stream": True,
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            async with client.stream("POST", f"{self.base_url}/api/chat", json=body) as resp:
                if resp.status_code != 200:
                    error_body = await resp.aread()
                    logger.error("Ollama error {}: {}", resp.status_code, error_body)
                    raise ProviderError(f"Ollama returned HTTP {resp.status_code}")

                async for line in resp.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        chunk = json.loads(line)
                    except json.JSONDecodeError as e:
                        raise ProviderError("Malformed Ollama stream line") from e

                    token = chunk.get("message", {}).get("content", "")
                    if token:
                        yield token

                    if chunk.get("done"):
                        break


_PROVIDERS = {
    GeminiProvider.name: GeminiProvider,
    OllamaProvider.name: OllamaProvider,
}


def get_provider() -> ModelProvider:
    """FastAPI dependency: the provider selected in settings."""
    settings = get_settings()
    try:
        provider_cls = _PROVIDERS[settings.model_provider]
    except KeyError:
        raise ProviderError(f"Unknown model provider {settings.model_provider!r}") from None
    return provider_cls(settings)
