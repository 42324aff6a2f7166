"""Protocol interfaces for the agent's external collaborators."""

from __future__ import annotations

from typing import Any, Protocol

import numpy as np

from config import AgentSettings
from models import ProviderConfig


class FrameSource(Protocol):
    def start(self) -> None: ...

    def read(self) -> np.ndarray: ...

    def release(self) -> None: ...


class WakeWordEngine(Protocol):
    frame_length: int
    sample_rate: int

    def process(self, frame: np.ndarray) -> int: ...

    def release(self) -> None: ...


class Transcriber(Protocol):
    def transcribe(self, path: str, language: str = "en") -> str: ...


class Speaker(Protocol):
    def speak(self, text: str, settings: AgentSettings) -> None: ...


class EventSink(Protocol):
    def send_event(self, name: str, payload: dict[str, Any]) -> None: ...


class ReasoningProvider(Protocol):
    config: ProviderConfig

    def complete(self, system_prompt: str, user_prompt: str) -> str: ...


class SettingsSource(Protocol):
    def get_settings(self) -> AgentSettings: ...
