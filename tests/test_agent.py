"""Tests for VoiceAgent turn orchestration."""

from __future__ import annotations

import os
import threading
import time
from dataclasses import replace
from pathlib import Path
from typing import Callable

import numpy as np

from agent import VoiceAgent
from config import AgentSettings
from errors import DeviceError, ProviderError, ResourceReleasedError, TranscriptionError
from events import (
    ALL,
    COMMAND_TRANSCRIBED,
    ERROR,
    STATE_CHANGED,
    TURN_RESULT,
    WAKE_DETECTED,
    EventHub,
)
from executor import ActionExecutor
from models import AgentState, Recording, ReasoningResult
from wav import encode_wav


# ---------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------

class FakeSettingsSource:
    def __init__(self, settings: AgentSettings | None = None) -> None:
        self.settings = settings or AgentSettings(transcription_language="en")

    def get_settings(self) -> AgentSettings:
        return self.settings


class FakeTranscriber:
    def __init__(self, text: str = "open example dot com", error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.paths: list[str] = []
        self.contents: list[bytes] = []
        self.languages: list[str] = []

    def transcribe(self, path: str, language: str = "en") -> str:
        self.paths.append(path)
        self.contents.append(Path(path).read_bytes())
        self.languages.append(language)
        if self.error is not None:
            raise self.error
        return self.text


class FakeBridge:
    def __init__(self, result: ReasoningResult | None = None, error: Exception | None = None) -> None:
        self.result = result or ReasoningResult(
            action="open_url",
            params={"url": "https://example.com"},
            speak="Opening example.com",
            explanation="url",
        )
        self.error = error
        self.transcripts: list[str] = []

    def process_command(self, transcript: str) -> ReasoningResult:
        self.transcripts.append(transcript)
        if self.error is not None:
            raise self.error
        return self.result


class FakeSpeaker:
    def __init__(self) -> None:
        self.spoken: list[str] = []

    def speak(self, text: str, settings: AgentSettings) -> None:
        self.spoken.append(text)


class FakeEngine:
    frame_length = 512
    sample_rate = 16000

    def __init__(self) -> None:
        self.processed = 0
        self.released = False

    def process(self, frame) -> int:  # noqa: ANN001
        self.processed += 1
        return 0 if self.processed == 1 else -1

    def release(self) -> None:
        self.released = True


class FakeSource:
    def __init__(self, frames: list[np.ndarray]) -> None:
        self._frames = list(frames)
        self._released = threading.Event()
        self.reads = 0

    def start(self) -> None:
        pass

    def read(self) -> np.ndarray:
        if self._frames and not self._released.is_set():
            self.reads += 1
            return self._frames.pop(0)
        self._released.wait(timeout=5)
        raise ResourceReleasedError("released")

    def release(self) -> None:
        self._released.set()


class Harness:
    def __init__(
        self,
        transcriber: FakeTranscriber | None = None,
        bridge: FakeBridge | None = None,
        source: FakeSource | None = None,
        tmp_home: Path | None = None,
    ) -> None:
        self.events: list[tuple[str, dict]] = []
        self.opened: list[str] = []
        self.hub = EventHub()
        self.hub.subscribe(ALL, lambda name, payload: self.events.append((name, payload)))
        self.transcriber = transcriber or FakeTranscriber()
        self.bridge = bridge or FakeBridge()
        self.speaker = FakeSpeaker()
        self.engine = FakeEngine()
        self.source = source or FakeSource([])
        self.agent = VoiceAgent(
            settings_source=FakeSettingsSource(),
            engine_factory=lambda settings: self.engine,
            source_factory=lambda length, rate: self.source,
            transcriber=self.transcriber,
            bridge=self.bridge,  # type: ignore[arg-type]
            executor=ActionExecutor(
                home_dir=str(tmp_home) if tmp_home else None,
                open_url=self._open,
            ),
            events=self.hub,
            speaker=self.speaker,
        )

    def _open(self, url: str) -> bool:
        self.opened.append(url)
        return True

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


def _recording() -> Recording:
    frames = [np.full(512, 500, dtype=np.int16) for _ in range(10)]
    return Recording(wav_bytes=encode_wav(frames, 16000), sample_rate=16000, frame_count=10, duration_s=0.32)


def _wait_for(predicate: Callable[[], bool], *, timeout: float = 3.0) -> None:
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return
        time.sleep(0.01)
    raise AssertionError("condition not met in time")


# ---------------------------------------------------------------
# run_turn
# ---------------------------------------------------------------

def test_turn_transcribes_reasons_executes_and_speaks() -> None:
    h = Harness()
    recording = _recording()

    result = h.agent.run_turn(recording)

    assert result is not None
    assert h.transcriber.contents == [recording.wav_bytes]
    assert h.transcriber.languages == ["en"]
    assert h.bridge.transcripts == ["open example dot com"]
    assert h.opened == ["https://example.com"]
    assert h.speaker.spoken == ["Opening example.com"]
    assert h.names() == [COMMAND_TRANSCRIBED, TURN_RESULT]
    assert h.events[0][1] == {"text": "open example dot com"}
    assert h.events[1][1] == {
        "transcript": "open example dot com",
        "action": "open_url",
        "speak": "Opening example.com",
        "explanation": "url",
        "result": {"success": True, "output": "Opened https://example.com"},
    }


def test_temp_file_is_removed_after_turn() -> None:
    h = Harness()
    h.agent.run_turn(_recording())
    assert not os.path.exists(h.transcriber.paths[0])


def test_temp_file_is_removed_after_failure() -> None:
    h = Harness(transcriber=FakeTranscriber(error=TranscriptionError("No API key configured", code="AUTH_FAILED")))
    h.agent.run_turn(_recording())
    assert not os.path.exists(h.transcriber.paths[0])


def test_empty_transcript_skips_reasoning() -> None:
    h = Harness(transcriber=FakeTranscriber(text="   "))

    assert h.agent.run_turn(_recording()) is None

    assert h.bridge.transcripts == []
    assert h.events == []


def test_transcription_error_is_reported() -> None:
    h = Harness(transcriber=FakeTranscriber(error=TranscriptionError("No API key configured", code="AUTH_FAILED")))

    assert h.agent.run_turn(_recording()) is None

    assert h.events == [(ERROR, {"code": "AUTH_FAILED", "error": "No API key configured"})]


def test_provider_error_is_reported() -> None:
    h = Harness(bridge=FakeBridge(error=ProviderError("Request timeout after 30s", code="TIMEOUT")))

    h.agent.run_turn(_recording())

    assert h.names() == [COMMAND_TRANSCRIBED, ERROR]
    assert h.events[-1][1] == {"code": "TIMEOUT", "error": "Request timeout after 30s"}
    assert h.speaker.spoken == []


def test_unexpected_error_is_reported_as_turn_failure() -> None:
    h = Harness(bridge=FakeBridge(error=KeyError("boom")))

    h.agent.run_turn(_recording())

    assert h.events[-1][0] == ERROR
    assert h.events[-1][1]["code"] == "TURN_FAILED"


def test_failed_action_is_still_reported_and_spoken(tmp_path: Path) -> None:
    bridge = FakeBridge(
        ReasoningResult(action="shell_command", params={"command": "rm"}, speak="Deleting", explanation="")
    )
    h = Harness(bridge=bridge, tmp_home=tmp_path)

    result = h.agent.run_turn(_recording())

    assert result is not None
    assert result.execution.success is False
    assert h.events[-1][1]["result"] == {"success": False, "error": "Blocked dangerous command: rm"}
    assert h.speaker.spoken == ["Deleting"]


def test_respond_only_without_speak_is_silent() -> None:
    h = Harness(bridge=FakeBridge(ReasoningResult(action="respond_only", speak="")))
    h.agent.run_turn(_recording())
    assert h.speaker.spoken == []


def test_capture_resumes_after_every_turn(monkeypatch) -> None:  # noqa: ANN001
    recording = replace(_recording(), session_id=7)
    for transcriber in (
        FakeTranscriber(),
        FakeTranscriber(text=""),
        FakeTranscriber(error=RuntimeError("disk full")),
    ):
        h = Harness(transcriber=transcriber)
        resumed: list[int | None] = []
        monkeypatch.setattr(h.agent.capture, "resume", lambda session_id=None: resumed.append(session_id))

        h.agent.run_turn(recording)

        assert resumed == [7]


# ---------------------------------------------------------------
# Capture callbacks and the full cycle
# ---------------------------------------------------------------

def test_capture_error_becomes_error_event() -> None:
    h = Harness()
    h.agent._on_capture_error(DeviceError("microphone read failed: gone"))
    assert h.events == [(ERROR, {"code": "DEVICE_ERROR", "error": "microphone read failed: gone"})]


def test_wake_to_turn_and_back_to_listening() -> None:
    frames = [np.full(512, 1000, dtype=np.int16)] + [np.zeros(512, dtype=np.int16) for _ in range(47)]
    h = Harness(source=FakeSource(frames))

    h.agent.start()
    _wait_for(lambda: TURN_RESULT in h.names())
    _wait_for(lambda: h.agent.get_state() == AgentState.LISTENING)

    states = [payload["state"] for name, payload in h.events if name == STATE_CHANGED]
    assert states == ["listening", "capturing", "processing", "listening"]
    assert h.names().index(WAKE_DETECTED) < h.names().index(COMMAND_TRANSCRIBED)
    assert h.opened == ["https://example.com"]

    h.agent.stop()
    assert h.agent.is_running() is False
    assert h.engine.released is True
