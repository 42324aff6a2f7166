"""Reasoning bridge: transcript in, normalized ReasoningResult out."""

from __future__ import annotations

import json
import logging
import re
import sys
from typing import Callable, Optional

from interfaces import ReasoningProvider, SettingsSource
from models import ActionKind, ProviderConfig, ReasoningResult
from prompts import build_user_prompt, get_system_prompt
from providers import build_provider, resolve_provider_config

logger = logging.getLogger(__name__)

MAX_SPEAK_CHARS = 200
PARSE_FAILED_EXPLANATION = "could not parse"

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*\n?", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\n?```\s*$")

ProviderFactory = Callable[[ProviderConfig], ReasoningProvider]


def strip_code_fences(text: str) -> str:
    clean = text.strip()
    if clean.startswith("```"):
        clean = _FENCE_OPEN.sub("", clean)
        clean = _FENCE_CLOSE.sub("", clean)
    return clean.strip()


def _as_text(value: object) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def parse_response(text: Optional[str], max_speak_chars: int = MAX_SPEAK_CHARS) -> ReasoningResult:
    """Normalize raw model output into a ReasoningResult.

    Output that is not a JSON object degrades to ``respond_only`` with the
    raw text as the spoken reply.
    """
    raw = (text or "").strip()
    try:
        parsed = json.loads(strip_code_fences(raw))
        if not isinstance(parsed, dict):
            raise ValueError(f"expected a JSON object, got {type(parsed).__name__}")
    except ValueError as exc:
        logger.warning("JSON parse failed: %s - treating as spoken reply", exc)
        logger.debug("Failed to parse text: %s", raw[:300])
        return ReasoningResult(
            action=ActionKind.RESPOND_ONLY.value,
            params={},
            speak=raw[:max_speak_chars],
            explanation=PARSE_FAILED_EXPLANATION,
        )

    params = parsed.get("params")
    result = ReasoningResult(
        action=_as_text(parsed.get("action")) or ActionKind.RESPOND_ONLY.value,
        params=params if isinstance(params, dict) else {},
        speak=_as_text(parsed.get("speak")),
        explanation=_as_text(parsed.get("explanation")),
    )
    logger.info("Parsed response -> action: %s, speak: %s", result.action, result.speak)
    return result


class ReasoningBridge:
    def __init__(
        self,
        settings_source: SettingsSource,
        provider_factory: ProviderFactory = build_provider,
        platform: str = sys.platform,
        max_speak_chars: int = MAX_SPEAK_CHARS,
    ) -> None:
        self._settings_source = settings_source
        self._provider_factory = provider_factory
        self._platform = platform
        self._max_speak_chars = max_speak_chars

    def process_command(self, transcript: str) -> ReasoningResult:
        settings = self._settings_source.get_settings()
        config = resolve_provider_config(settings)
        logger.info(
            "Processing command via provider: %s, model: %s",
            config.provider,
            config.model,
        )
        provider = self._provider_factory(config)

        system_prompt = get_system_prompt(settings.custom_system_prompt)
        user_prompt = build_user_prompt(transcript, self._platform)
        logger.debug("User prompt: %s", user_prompt[:200])

        text = provider.complete(system_prompt, user_prompt)
        logger.info("Raw LLM response length: %d", len(text or ""))
        logger.debug("Raw LLM response: %s", (text or "")[:500])
        return parse_response(text, self._max_speak_chars)
