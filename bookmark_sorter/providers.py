"""Remote classification backends behind one call contract."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from bookmark_sorter.classifier_settings import ProviderConfig, ProviderId
from bookmark_sorter.errors import (
    ConfigurationError,
    MalformedResponse,
    ProviderError,
    ProviderHttpError,
    ProviderTimeout,
)
from bookmark_sorter.settings import S


logger = logging.getLogger(__name__)


CHAT_COMPLETIONS_PATH = "/chat/completions"


def resolve_endpoint(base: str, suffix: str = CHAT_COMPLETIONS_PATH) -> str:
    """Accept either a bare host or a full completion URL and return the full URL."""

    value = (base or "").strip().rstrip("/")
    if not value:
        raise ConfigurationError("endpoint must not be empty")
    normalized_suffix = "/" + suffix.strip("/")
    if value.endswith(normalized_suffix):
        return value
    return f"{value}{normalized_suffix}"


@dataclass
class ProviderRequest:
    url: str
    body: Dict[str, Any]
    headers: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, str] = field(default_factory=dict)


class Provider(ABC):
    provider_id: str
    label: str
    default_model: str

    def model_for(self, config: ProviderConfig) -> str:
        return (config.model or "").strip() or self.default_model

    @abstractmethod
    def build_request(self, prompt: str, config: ProviderConfig) -> ProviderRequest:
        """Return the HTTP request that asks this backend to complete ``prompt``."""

    @abstractmethod
    def extract_text(self, payload: Any) -> str:
        """Return the completion text from the backend's JSON envelope."""


class OpenAIChatProvider(Provider):
    """Backends speaking the OpenAI chat completion dialect."""

    default_endpoint = ""
    honours_override = False

    def endpoint_for(self, config: ProviderConfig) -> str:
        if self.honours_override and config.endpoint_override:
            return resolve_endpoint(config.endpoint_override)
        return resolve_endpoint(self.default_endpoint)

    def auth_headers(self, config: ProviderConfig) -> Dict[str, str]:
        return {"Authorization": f"Bearer {config.api_key or ''}"}

    def build_request(self, prompt: str, config: ProviderConfig) -> ProviderRequest:
        headers = {"Content-Type": "application/json"}
        headers.update(self.auth_headers(config))
        return ProviderRequest(
            url=self.endpoint_for(config),
            body={
                "model": self.model_for(config),
                "messages": [{"role": "user", "content": prompt}],
                "temperature": S.PROVIDER_TEMPERATURE,
            },
            headers=headers,
        )

    def extract_text(self, payload: Any) -> str:
        try:
            content = payload["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise MalformedResponse(f"{self.label} returned an unexpected format") from exc
        if not isinstance(content, str):
            raise MalformedResponse(f"{self.label} returned a non-text completion")
        return content.strip()


class DefaultProvider(OpenAIChatProvider):
    provider_id = ProviderId.DEFAULT.value
    label = "Default"
    default_model = "deepseek-chat"

    def endpoint_for(self, config: ProviderConfig) -> str:
        return resolve_endpoint(S.DEFAULT_PROXY_URL)

    def auth_headers(self, config: ProviderConfig) -> Dict[str, str]:
        # The shared proxy holds the credential.
        return {}


class DeepSeekProvider(OpenAIChatProvider):
    provider_id = ProviderId.DEEPSEEK.value
    label = "DeepSeek"
    default_model = "deepseek-chat"
    default_endpoint = "https://api.deepseek.com/chat/completions"


class ChatGPTProvider(OpenAIChatProvider):
    provider_id = ProviderId.CHATGPT.value
    label = "ChatGPT"
    default_model = "gpt-4o-mini"
    default_endpoint = "https://api.openai.com/v1/chat/completions"
    honours_override = True


class DoubaoProvider(OpenAIChatProvider):
    provider_id = ProviderId.DOUBAO.value
    label = "Doubao"
    default_model = ""
    default_endpoint = "https://ark.cn-beijing.volces.com/api/v3/chat/completions"

    def model_for(self, config: ProviderConfig) -> str:
        model = (config.model or "").strip()
        if not model:
            raise ConfigurationError("Doubao requires a model (endpoint id)")
        return model


class GeminiProvider(Provider):
    provider_id = ProviderId.GEMINI.value
    label = "Gemini"
    default_model = "gemini-1.5-flash"
    base_url = "https://generativelanguage.googleapis.com/v1beta/models"

    def build_request(self, prompt: str, config: ProviderConfig) -> ProviderRequest:
        return ProviderRequest(
            url=f"{self.base_url}/{self.model_for(config)}:generateContent",
            body={"contents": [{"parts": [{"text": prompt}]}]},
            headers={"Content-Type": "application/json"},
            params={"key": config.api_key or ""},
        )

    def extract_text(self, payload: Any) -> str:
        candidates = payload.get("candidates") if isinstance(payload, dict) else None
        if not isinstance(candidates, list) or not candidates:
            raise MalformedResponse("Gemini API returned unexpected format")
        content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
        parts = content.get("parts") if isinstance(content, dict) else None
        if not isinstance(parts, list) or not parts or not isinstance(parts[0], dict):
            raise MalformedResponse("Gemini API returned unexpected format")
        text = parts[0].get("text")
        if not isinstance(text, str):
            raise MalformedResponse("Gemini API returned unexpected format")
        return text.strip()


class OllamaProvider(Provider):
    provider_id = ProviderId.OLLAMA.value
    label = "Ollama"
    default_model = "llama3"

    def build_request(self, prompt: str, config: ProviderConfig) -> ProviderRequest:
        host = config.endpoint_override or S.OLLAMA_HOST
        return ProviderRequest(
            url=resolve_endpoint(host, "/api/generate"),
            body={"model": self.model_for(config), "prompt": prompt, "stream": False},
            headers={"Content-Type": "application/json"},
        )

    def extract_text(self, payload: Any) -> str:
        text = payload.get("response") if isinstance(payload, dict) else None
        if not isinstance(text, str):
            raise MalformedResponse("Ollama returned unexpected format")
        return text.strip()


PROVIDERS: Dict[str, Provider] = {
    provider.provider_id: provider
    for provider in (
        DefaultProvider(),
        DeepSeekProvider(),
        ChatGPTProvider(),
        GeminiProvider(),
        OllamaProvider(),
        DoubaoProvider(),
    )
}


def select_provider(config: ProviderConfig) -> Provider:
    provider_id = (config.provider_id or "").strip().lower() or ProviderId.DEFAULT.value
    provider = PROVIDERS.get(provider_id)
    if provider is None:
        raise ConfigurationError(f"No valid LLM provider configured: {provider_id}")
    return provider


async def _post_once(provider: Provider, request: ProviderRequest) -> str:
    budget = float(S.PROVIDER_TIMEOUT_SECONDS)
    timeout = httpx.Timeout(budget, connect=min(budget, 10.0))
    async with httpx.AsyncClient(timeout=timeout) as client:
        try:
            response = await asyncio.wait_for(
                client.post(request.url, json=request.body, headers=request.headers, params=request.params),
                timeout=budget,
            )
            response.raise_for_status()
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            raise ProviderTimeout(f"{provider.label} did not answer within {budget:.0f}s") from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code if exc.response is not None else None
            detail = (exc.response.text or "")[:200] if exc.response is not None else ""
            raise ProviderHttpError(f"{provider.label} API error: {status} {detail}".strip(), status) from exc
        except httpx.HTTPError as exc:
            raise ProviderHttpError(f"{provider.label} request failed: {exc}") from exc
        try:
            payload = response.json()
        except ValueError as exc:
            raise MalformedResponse(f"{provider.label} returned invalid JSON") from exc
    return provider.extract_text(payload)


async def classify(prompt: str, config: ProviderConfig, *, max_attempts: Optional[int] = None) -> str:
    """Send ``prompt`` to the configured backend and return the raw completion text.

    Timeouts, transport errors and retryable HTTP statuses are retried with a
    linearly growing pause (``attempt * PROVIDER_BACKOFF_SECONDS``). The error of
    the final attempt is raised unchanged, so a slow backend surfaces as
    ``ProviderTimeout``.
    """

    provider = select_provider(config)
    request = provider.build_request(prompt, config)
    attempts = max(1, int(max_attempts if max_attempts is not None else S.PROVIDER_MAX_ATTEMPTS))

    last_error: ProviderError | None = None
    for attempt in range(1, attempts + 1):
        try:
            return await _post_once(provider, request)
        except ProviderHttpError as exc:
            if not exc.retryable:
                raise
            last_error = exc
        except ProviderTimeout as exc:
            last_error = exc
        if attempt < attempts:
            delay = attempt * float(S.PROVIDER_BACKOFF_SECONDS)
            logger.warning(
                "%s attempt %s/%s failed: %s; retrying in %.1fs",
                provider.label,
                attempt,
                attempts,
                last_error,
                delay,
            )
            await asyncio.sleep(delay)

    assert last_error is not None
    logger.warning("%s failed after %s attempts: %s", provider.label, attempts, last_error)
    raise last_error
