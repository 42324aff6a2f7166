"""Porcupine wake word engine adapter."""

from __future__ import annotations

import logging
from typing import Any

from config import AgentSettings
from errors import ConfigurationError, DeviceError, ResourceReleasedError

try:
    import pvporcupine
except Exception:  # pragma: no cover
    pvporcupine = None  # type: ignore

logger = logging.getLogger(__name__)

DEFAULT_KEYWORD = "jarvis"


class PorcupineWakeWordEngine:
    def __init__(self, porcupine: Any, keyword: str) -> None:
        self._porcupine = porcupine
        self.keyword = keyword
        self.frame_length: int = porcupine.frame_length
        self.sample_rate: int = porcupine.sample_rate

    @classmethod
    def create(cls, settings: AgentSettings) -> "PorcupineWakeWordEngine":
        if not settings.picovoice_access_key:
            raise ConfigurationError(
                "Picovoice access key is required. Get one free at picovoice.ai/console"
            )
        if pvporcupine is None:
            raise DeviceError("pvporcupine is not installed")

        keyword = (settings.wake_keyword or DEFAULT_KEYWORD).lower()
        if keyword not in pvporcupine.KEYWORDS:
            logger.warning("Unknown built-in keyword %r, using %r", keyword, DEFAULT_KEYWORD)
            keyword = DEFAULT_KEYWORD

        logger.info(
            "Creating Porcupine instance (keyword: %s, sensitivity: %.2f)",
            keyword,
            settings.wake_sensitivity,
        )
        porcupine = pvporcupine.create(
            access_key=settings.picovoice_access_key,
            keywords=[keyword],
            sensitivities=[settings.wake_sensitivity],
        )
        return cls(porcupine, keyword)

    def process(self, frame: Any) -> int:
        if self._porcupine is None:
            raise ResourceReleasedError("wake word engine released")
        pcm = frame.tolist() if hasattr(frame, "tolist") else list(frame)
        return int(self._porcupine.process(pcm))

    def release(self) -> None:
        porcupine = self._porcupine
        self._porcupine = None
        if porcupine is not None:
            porcupine.delete()
