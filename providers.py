"""Reasoning providers, one per wire protocol family, and their registry.

Every provider turns a (system prompt, user prompt) pair into the raw reply
text of the model. Transport and envelope failures raise ``ProviderError``;
interpreting the reply text is left to the reasoning bridge.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional

import requests

from config import AgentSettings
from errors import (
    AUTH_FAILED,
    NETWORK_ERROR,
    PROVIDER_ERROR,
    PROVIDER_PROTOCOL_ERROR,
    TIMEOUT,
    UNKNOWN_PROVIDER,
    ProviderConfigurationError,
    ProviderError,
)
from models import ProviderConfig

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_S = 30.0
TEMPERATURE = 0.3
MAX_TOKENS = 1024
ANTHROPIC_VERSION = "2023-06-01"

CHAT_COMPLETIONS = "chat-completions"
ANTHROPIC = "anthropic"
GEMINI = "gemini"

# provider id -> (protocol family, default base url, default model)
PROVIDERS: Dict[str, tuple] = {
    "ollama": (CHAT_COMPLETIONS, "http://localhost:11434", "qwen2.5:3b"),
    "local": (CHAT_COMPLETIONS, "http://localhost:8080", "local"),
    "claude-max": (CHAT_COMPLETIONS, "http://localhost:3456", "claude-sonnet-4-5-20250514"),
    "openai": (CHAT_COMPLETIONS, "https://api.openai.com", "gpt-4o-mini"),
    "groq": (CHAT_COMPLETIONS, "https://api.groq.com/openai", "llama-3.3-70b-versatile"),
    "custom": (CHAT_COMPLETIONS, "", "default"),
    "anthropic": (ANTHROPIC, "https://api.anthropic.com", "claude-sonnet-4-5-20250514"),
    "gemini": (GEMINI, "https://generativelanguage.googleapis.com", "gemini-2.5-flash-lite"),
}

_KEY_REQUIRED = {
    "openai": "openai_api_key",
    "groq": "groq_api_key",
    "anthropic": "anthropic_api_key",
    "gemini": "gemini_api_key",
}

_DISPLAY_NAMES = {
    "openai": "OpenAI",
    "groq": "Groq",
    "anthropic": "Anthropic",
    "gemini": "Gemini",
}


def resolve_provider_config(settings: AgentSettings) -> ProviderConfig:
    provider = settings.reasoning_provider or "ollama"
    if provider not in PROVIDERS:
        raise ProviderConfigurationError(f"Unknown provider: {provider}", code=UNKNOWN_PROVIDER)
    _, base_url, default_model = PROVIDERS[provider]
    model = settings.reasoning_model or default_model
    api_key = ""

    if provider in _KEY_REQUIRED:
        api_key = getattr(settings, _KEY_REQUIRED[provider])
        if not api_key:
            raise ProviderConfigurationError(f"{_DISPLAY_NAMES[provider]} API key not configured")
    elif provider == "ollama":
        base_url = settings.ollama_url or base_url
    elif provider == "local":
        base_url = settings.local_url or base_url
    elif provider == "claude-max":
        base_url = f"http://localhost:{settings.claude_max_proxy_port}"
    elif provider == "custom":
        base_url = settings.custom_endpoint_url
        if not base_url:
            raise ProviderConfigurationError("Custom endpoint URL not configured")
        api_key = settings.openai_api_key

    return ProviderConfig(
        provider=provider,
        base_url=base_url.rstrip("/"),
        model=model,
        api_key=api_key,
    )


def _post_json(
    url: str,
    body: Dict[str, Any],
    headers: Dict[str, str],
    timeout: float,
    params: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """POST a JSON body and return the decoded JSON reply.

    Raises ProviderError for timeouts, connection failures, non-JSON bodies,
    provider error envelopes and non-2xx statuses.
    """
    start = time.monotonic()
    try:
        resp = requests.post(url, json=body, headers=headers, params=params, timeout=timeout)
    except requests.Timeout as exc:
        logger.error("HTTP request timeout after %.0fs", timeout)
        raise ProviderError(f"Request timeout after {timeout:.0f}s", code=TIMEOUT) from exc
    except requests.RequestException as exc:
        logger.error("HTTP request error: %s", exc)
        raise ProviderError(str(exc), code=NETWORK_ERROR) from exc

    elapsed_ms = (time.monotonic() - start) * 1000
    logger.info(
        "HTTP response received in %.0f ms (status: %d, body: %d bytes)",
        elapsed_ms,
        resp.status_code,
        len(resp.content or b""),
    )

    try:
        data = resp.json()
    except ValueError as exc:
        logger.error("Failed to parse response body: %s", (resp.text or "")[:500])
        raise ProviderError(f"Failed to parse response: {exc}", code=PROVIDER_PROTOCOL_ERROR) from exc

    auth_failed = resp.status_code in (401, 403)
    if isinstance(data, dict) and data.get("error"):
        error = data["error"]
        message = error.get("message") if isinstance(error, dict) else None
        logger.error("API error: %s", error)
        raise ProviderError(
            str(message or error),
            code=AUTH_FAILED if auth_failed else PROVIDER_ERROR,
        )
    if not 200 <= resp.status_code < 300:
        raise ProviderError(
            f"HTTP {resp.status_code}",
            code=AUTH_FAILED if auth_failed else PROVIDER_ERROR,
        )
    if not isinstance(data, dict):
        raise ProviderError("Response body is not a JSON object", code=PROVIDER_PROTOCOL_ERROR)
    return data


def _dig(data: Any, *path: Any) -> Any:
    for key in path:
        try:
            data = data[key]
        except (KeyError, IndexError, TypeError):
            return None
    return data


class ChatCompletionsProvider:
    """OpenAI-compatible ``/v1/chat/completions`` endpoint."""

    def __init__(self, config: ProviderConfig, timeout: float = REQUEST_TIMEOUT_S) -> None:
        self.config = config
        self.timeout = timeout

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        url = f"{self.config.base_url}/v1/chat/completions"
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        body = {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": TEMPERATURE,
            "max_tokens": MAX_TOKENS,
        }
        logger.debug("HTTP request -> %s (model: %s)", url, self.config.model)
        data = _post_json(url, body, headers, self.timeout)
        content = _dig(data, "choices", 0, "message", "content")
        return str(content or "")


class AnthropicProvider:
    def __init__(self, config: ProviderConfig, timeout: float = REQUEST_TIMEOUT_S) -> None:
        self.config = config
        self.timeout = timeout

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        url = f"{self.config.base_url}/v1/messages"
        headers = {
            "x-api-key": self.config.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }
        body = {
            "model": self.config.model,
            "max_tokens": MAX_TOKENS,
            "temperature": TEMPERATURE,
            "system": system_prompt,
            "messages": [{"role": "user", "content": user_prompt}],
        }
        data = _post_json(url, body, headers, self.timeout)
        return str(_dig(data, "content", 0, "text") or "")


class GeminiProvider:
    def __init__(self, config: ProviderConfig, timeout: float = REQUEST_TIMEOUT_S) -> None:
        self.config = config
        self.timeout = timeout

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        url = f"{self.config.base_url}/v1beta/models/{self.config.model}:generateContent"
        body = {
            "contents": [{"parts": [{"text": f"{system_prompt}\n\n{user_prompt}"}]}],
            "generationConfig": {"temperature": TEMPERATURE, "maxOutputTokens": MAX_TOKENS},
        }
        data = _post_json(
            url,
            body,
            {"Content-Type": "application/json"},
            self.timeout,
            params={"key": self.config.api_key},
        )
        return str(_dig(data, "candidates", 0, "content", "parts", 0, "text") or "")


PROTOCOLS: Dict[str, Callable[[ProviderConfig], Any]] = {
    CHAT_COMPLETIONS: ChatCompletionsProvider,
    ANTHROPIC: AnthropicProvider,
    GEMINI: GeminiProvider,
}


def build_provider(config: ProviderConfig):
    family = PROVIDERS[config.provider][0]
    return PROTOCOLS[family](config)
