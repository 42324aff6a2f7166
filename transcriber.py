"""Command transcription using DashScope qwen3-asr-flash.

The captured command is already a complete WAV file, so it is sent in a
single streaming call. Partial results are folded into the latest text and
the last one is returned as the transcript.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from errors import ASR_PROTOCOL_ERROR, AUTH_FAILED, NETWORK_ERROR, TranscriptionError
from interfaces import SettingsSource

try:
    import dashscope
except Exception:  # pragma: no cover
    dashscope = None  # type: ignore

logger = logging.getLogger(__name__)


class DashscopeTranscriber:
    def __init__(
        self,
        api_key: str = "",
        model: str = "qwen3-asr-flash",
        request_timeout_s: float = 30.0,
        settings_source: Optional[SettingsSource] = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._request_timeout_s = request_timeout_s
        self._settings_source = settings_source

    def _resolve_api_key(self) -> str:
        """Explicit key, then the current settings, then DASHSCOPE_API_KEY."""
        if self._api_key:
            return self._api_key
        if self._settings_source is not None:
            key = self._settings_source.get_settings().dashscope_api_key
            if key:
                return key
        return os.getenv("DASHSCOPE_API_KEY", "")

    def transcribe(self, path: str, language: str = "en") -> str:
        if dashscope is None:
            raise TranscriptionError("dashscope is not installed", code=ASR_PROTOCOL_ERROR)

        api_key = self._resolve_api_key()
        if not api_key:
            raise TranscriptionError("No API key configured", code=AUTH_FAILED)

        audio_uri = Path(path).resolve().as_uri()
        try:
            response = dashscope.MultiModalConversation.call(
                api_key=api_key,
                model=self._model,
                messages=[
                    {"role": "system", "content": [{"text": ""}]},
                    {"role": "user", "content": [{"audio": audio_uri}]},
                ],
                result_format="message",
                asr_options={"language": language, "enable_itn": False},
                stream=True,
                timeout=self._request_timeout_s,
            )
        except Exception as exc:
            raise transcription_error(exc) from exc

        latest_text = ""
        try:
            for chunk in response:
                text = chunk_text(chunk)
                if text:
                    latest_text = text
        except Exception as exc:
            raise transcription_error(exc) from exc

        logger.info("Transcribed %d characters", len(latest_text))
        return latest_text


_AUTH_MARKERS = ("401", "auth", "api key")
_NETWORK_MARKERS = ("timeout", "network", "connection")


def chunk_text(chunk: object) -> str:
    """Text of one streamed ``MultiModalConversation`` chunk.

    With ``result_format="message"`` each chunk is a dict shaped like
    ``{"output": {"choices": [{"message": {"content": [{"text": ...}]}}]}}``;
    anything else (keep-alives, empty choices) yields "".
    """
    if not isinstance(chunk, dict):
        return ""
    try:
        value = chunk["output"]["choices"][0]["message"]["content"][0]
    except (KeyError, IndexError, TypeError):
        return ""
    return str(value.get("text", "")) if isinstance(value, dict) else ""


def transcription_error(exc: Exception) -> TranscriptionError:
    """Classify an SDK failure by its message; only auth failures are final."""
    message = str(exc)
    low = message.lower()
    if any(marker in low for marker in _AUTH_MARKERS):
        code, retryable = AUTH_FAILED, False
    elif any(marker in low for marker in _NETWORK_MARKERS):
        code, retryable = NETWORK_ERROR, True
    else:
        code, retryable = ASR_PROTOCOL_ERROR, True
    logger.error("Transcription failed (%s): %s", code, message)
    return TranscriptionError(message, code=code, retryable=retryable)
