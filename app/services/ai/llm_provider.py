"""
LLM provider abstraction layer.
Anthropic (primary) and Gemini over plain REST with httpx, no vendor SDKs.

A provider makes exactly one attempt per call. Failures are raised as
ModelClientError subclasses whose `retryable` flag drives the retry policy
in schedule_generator.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

import httpx

from app.core.config import settings


logger = logging.getLogger(__name__)

# Provider-specific output ceilings. Requests above these are capped, never rejected.
MODEL_TOKEN_CEILINGS = {
    "claude-haiku-4-5": 64000,
    "claude-sonnet-4-5": 64000,
    "gemini-2.0-flash": 8192,
}
DEFAULT_TOKEN_CEILING = 8192


class ModelClientError(Exception):
    kind = "Unclassified"
    retryable = False

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ModelTimeout(ModelClientError):
    kind = "Timeout"
    retryable = True


class RateLimited(ModelClientError):
    kind = "RateLimited"
    retryable = True


class ServiceUnavailable(ModelClientError):
    kind = "ServiceUnavailable"
    retryable = True


class ModelNetworkError(ModelClientError):
    kind = "NetworkError"
    retryable = True


class ModelAuthError(ModelClientError):
    kind = "AuthError"


class UnclassifiedModelError(ModelClientError):
    pass


UNAVAILABLE_STATUS_CODES = {500, 502, 503, 504, 529}


def classify_error(exc: Exception) -> ModelClientError:
    """Map an httpx failure onto the retryable / fatal taxonomy."""
    if isinstance(exc, ModelClientError):
        return exc
    if isinstance(exc, httpx.TimeoutException):
        return ModelTimeout(f"Request timed out: {exc}")
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        if code == 429:
            return RateLimited(f"Rate limit exceeded ({code})", status_code=code)
        if code in (401, 403):
            return ModelAuthError(f"Authentication failed ({code})", status_code=code)
        if code == 408:
            return ModelTimeout(f"Request timed out ({code})", status_code=code)
        if code in UNAVAILABLE_STATUS_CODES:
            return ServiceUnavailable(f"Service unavailable ({code})", status_code=code)
        return UnclassifiedModelError(f"Unexpected API error ({code})", status_code=code)
    if isinstance(exc, httpx.TransportError):
        return ModelNetworkError(f"Network error: {exc}")
    return UnclassifiedModelError(str(exc) or exc.__class__.__name__)


@dataclass
class LLMResponse:
    """Standardised response from any LLM provider."""
    raw_text: str
    model_used: str
    max_tokens: int  # effective budget after the provider ceiling


class BaseLLMProvider(ABC):
    """Abstract base for LLM providers."""

    def __init__(
        self,
        model_name: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.model_name = model_name
        self.timeout = timeout if timeout is not None else settings.LLM_TIMEOUT_SECONDS
        self._transport = transport

    @property
    def token_ceiling(self) -> int:
        return MODEL_TOKEN_CEILINGS.get(self.model_name, DEFAULT_TOKEN_CEILING)

    def cap_tokens(self, max_tokens: int) -> int:
        return max(1, min(max_tokens, self.token_ceiling))

    @abstractmethod
    def provider_name(self) -> str:
        ...

    @abstractmethod
    def _build_request(self, system_prompt: str, user_prompt: str, max_tokens: int) -> tuple[str, dict, dict]:
        """Return (url, headers, payload)."""
        ...

    @abstractmethod
    def _extract_text(self, data: dict) -> str:
        ...

    async def generate(self, system_prompt: str, user_prompt: str, max_tokens: int) -> LLMResponse:
        """Single attempt. Raises ModelClientError on any failure."""
        effective = self.cap_tokens(max_tokens)
        if effective < max_tokens:
            logger.info(f"Capping max_tokens {max_tokens} -> {effective} for {self.provider_name()}")

        url, headers, payload = self._build_request(system_prompt, user_prompt, effective)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(url, headers=headers, json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"{self.provider_name()} HTTP error: {e.response.status_code} - {e.response.text[:500]}")
            raise classify_error(e) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"{self.provider_name()} request failed: {e!r}")
            raise classify_error(e) from e

        text = self._extract_text(data)
        return LLMResponse(raw_text=text, model_used=self.provider_name(), max_tokens=effective)


class AnthropicProvider(BaseLLMProvider):
    """Anthropic Messages API."""

    BASE_URL = "https://api.anthropic.com/v1/messages"
    API_VERSION = "2023-06-01"

    def __init__(self, model_name: Optional[str] = None, api_key: Optional[str] = None, **kwargs):
        super().__init__(model_name or settings.LLM_MODEL, **kwargs)
        self.api_key = api_key or settings.ANTHROPIC_API_KEY
        if not self.api_key:
            raise ValueError("ANTHROPIC_API_KEY not set")

    def provider_name(self) -> str:
        return f"anthropic/{self.model_name}"

    def _build_request(self, system_prompt, user_prompt, max_tokens):
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": self.API_VERSION,
            "content-type": "application/json",
        }
        payload = {
            "model": self.model_name,
            "max_tokens": max_tokens,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_prompt}],
        }
        return self.BASE_URL, headers, payload

    def _extract_text(self, data: dict) -> str:
        for block in data.get("content") or []:
            if block.get("type") == "text":
                return block.get("text", "")
        raise UnclassifiedModelError("No text content in model response")


class GeminiProvider(BaseLLMProvider):
    """Google Gemini provider using REST API (no SDK, due to protobuf conflicts)."""

    BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

    def __init__(self, model_name: str = "gemini-2.0-flash", api_key: Optional[str] = None, **kwargs):
        super().__init__(model_name, **kwargs)
        self.api_key = api_key or settings.GEMINI_API_KEY
        if not self.api_key:
            raise ValueError("GEMINI_API_KEY not set")

    def provider_name(self) -> str:
        return f"gemini/{self.model_name}"

    def _build_request(self, system_prompt, user_prompt, max_tokens):
        url = f"{self.BASE_URL}/{self.model_name}:generateContent?key={self.api_key}"
        payload = {
            "contents": [
                {
                    "parts": [{"text": f"{system_prompt}\n\n---\n\n{user_prompt}"}]
                }
            ],
            "generationConfig": {
                "responseMimeType": "application/json",
                "temperature": 0.1,
                "maxOutputTokens": max_tokens,
            },
        }
        return url, {}, payload

    def _extract_text(self, data: dict) -> str:
        try:
            return data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise UnclassifiedModelError(f"Malformed Gemini response: {e}") from e


def get_llm_provider() -> BaseLLMProvider:
    """Factory to get the configured LLM provider."""
    provider_name = settings.LLM_PROVIDER

    if provider_name == "anthropic":
        return AnthropicProvider()
    elif provider_name == "gemini":
        return GeminiProvider()
    else:
        raise ValueError(f"Unknown LLM provider: {provider_name}")
