"""Voice agent: wake word -> command capture -> transcript -> action.

Turns run on the capture worker thread while the machine is PROCESSING, so
the microphone stays paused until the turn is over. Whatever happens during
a turn, capture is resumed in ``finally``.
"""

from __future__ import annotations

import logging
import os
import tempfile
from typing import Optional

from capture import CaptureStateMachine, EngineFactory, SourceFactory
from config import AgentSettings
from errors import TURN_FAILED, AgentError
from events import (
    COMMAND_TRANSCRIBED,
    ERROR,
    STATE_CHANGED,
    TURN_RESULT,
    WAKE_DETECTED,
)
from executor import ActionExecutor
from interfaces import EventSink, SettingsSource, Speaker, Transcriber
from models import AgentState, Recording, TurnResult
from reasoning import ReasoningBridge

logger = logging.getLogger(__name__)


class VoiceAgent:
    def __init__(
        self,
        settings_source: SettingsSource,
        engine_factory: EngineFactory,
        source_factory: SourceFactory,
        transcriber: Transcriber,
        bridge: ReasoningBridge,
        executor: ActionExecutor,
        events: EventSink,
        speaker: Optional[Speaker] = None,
    ) -> None:
        self._settings_source = settings_source
        self._transcriber = transcriber
        self._bridge = bridge
        self._executor = executor
        self._events = events
        self._speaker = speaker
        self._settings = AgentSettings()
        self.capture = CaptureStateMachine(
            engine_factory=engine_factory,
            source_factory=source_factory,
            on_state_change=self._on_state_change,
            on_wake=self._on_wake,
            on_recording=self._on_recording,
            on_error=self._on_capture_error,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        self._settings = self._settings_source.get_settings()
        logger.info(
            "Starting with provider: %s, model: %s",
            self._settings.reasoning_provider,
            self._settings.reasoning_model,
        )
        self.capture.start(self._settings)

    def stop(self) -> None:
        self.capture.stop()

    def is_running(self) -> bool:
        return self.capture.is_running()

    def get_state(self) -> AgentState:
        return self.capture.get_state()

    # ------------------------------------------------------------------
    # Turn
    # ------------------------------------------------------------------

    def run_turn(self, recording: Recording) -> Optional[TurnResult]:
        """Transcribe, reason, execute and speak. Never raises."""
        tmp_path = ""
        try:
            fd, tmp_path = tempfile.mkstemp(prefix="voice-cmd-", suffix=".wav")
            with os.fdopen(fd, "wb") as fh:
                fh.write(recording.wav_bytes)

            transcript = self._transcriber.transcribe(
                tmp_path, language=self._settings.transcription_language
            ).strip()
            if not transcript:
                logger.info("Empty transcript, skipping turn")
                return None

            logger.info("Command transcribed: %s", transcript)
            self._events.send_event(COMMAND_TRANSCRIBED, {"text": transcript})

            reasoning = self._bridge.process_command(transcript)
            execution = self._executor.execute(reasoning.action, reasoning.params)
            logger.info("Action result: %s", execution.to_dict())

            result = TurnResult(transcript=transcript, reasoning=reasoning, execution=execution)
            self._events.send_event(TURN_RESULT, result.to_dict())

            if self._speaker is not None and reasoning.speak:
                self._speaker.speak(reasoning.speak, self._settings)
            return result
        except AgentError as exc:
            logger.error("Command processing error (%s): %s", exc.code, exc.message)
            self._events.send_event(ERROR, {"code": exc.code, "error": exc.message})
        except Exception as exc:
            logger.exception("Command processing error")
            self._events.send_event(ERROR, {"code": TURN_FAILED, "error": str(exc)})
        finally:
            if tmp_path:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
            self.capture.resume(recording.session_id)
        return None

    # ------------------------------------------------------------------
    # Capture callbacks
    # ------------------------------------------------------------------

    def _on_state_change(self, from_state: AgentState, to_state: AgentState) -> None:
        self._events.send_event(STATE_CHANGED, {"state": to_state.value})

    def _on_wake(self) -> None:
        self._events.send_event(WAKE_DETECTED, {})

    def _on_recording(self, recording: Recording) -> None:
        self.run_turn(recording)

    def _on_capture_error(self, error: AgentError) -> None:
        logger.error("Manager error: %s", error.message)
        self._events.send_event(ERROR, {"code": error.code, "error": error.message})
