"""Spoken replies: OpenAI speech played locally, or handed to the host."""

from __future__ import annotations

import io
import logging
import wave
from typing import Optional

import requests

from config import AgentSettings
from events import SPEAK
from interfaces import EventSink

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)

OPENAI_SPEECH_URL = "https://api.openai.com/v1/audio/speech"
OPENAI_TTS = "openai-tts"
REQUEST_TIMEOUT_S = 30.0


def decode_wav(data: bytes):
    """Return (samples, sample_rate) for 16-bit PCM WAV bytes."""
    with wave.open(io.BytesIO(data), "rb") as wf:
        sample_rate = wf.getframerate()
        channels = wf.getnchannels()
        pcm = wf.readframes(wf.getnframes())
    samples = np.frombuffer(pcm, dtype="<i2")
    if channels > 1:
        samples = samples.reshape(-1, channels)
    return samples, sample_rate


class Speaker:
    def __init__(self, events: Optional[EventSink] = None) -> None:
        self._events = events

    def speak(self, text: str, settings: AgentSettings) -> None:
        if not text or not settings.tts_enabled:
            return
        logger.info("TTS speak via %s: %s", settings.tts_provider, text[:100])

        if settings.tts_provider == OPENAI_TTS and settings.openai_api_key:
            try:
                self._speak_openai(text, settings)
                return
            except Exception as exc:
                logger.error("OpenAI TTS error: %s - falling back to host speech", exc)
        self._speak_host(text)

    def _speak_host(self, text: str) -> None:
        if self._events is not None:
            self._events.send_event(SPEAK, {"text": text})

    def _speak_openai(self, text: str, settings: AgentSettings) -> None:
        if sd is None or np is None:
            raise RuntimeError("sounddevice is not installed")
        resp = requests.post(
            OPENAI_SPEECH_URL,
            json={
                "model": "tts-1",
                "input": text,
                "voice": settings.tts_voice or "alloy",
                "response_format": "wav",
            },
            headers={"Authorization": f"Bearer {settings.openai_api_key}"},
            timeout=REQUEST_TIMEOUT_S,
        )
        if resp.status_code >= 400:
            raise RuntimeError(f"OpenAI TTS error: {resp.status_code}")
        samples, sample_rate = decode_wav(resp.content)
        sd.play(samples, sample_rate)
        sd.wait()
