"""Wake-word gated capture state machine.

A single worker thread pulls one frame at a time from the frame source
while the machine is LISTENING or CAPTURING. Once a command has been
captured the machine moves to PROCESSING, hands the finished recording to
``on_recording`` and the worker exits; nothing is read from the microphone
until ``resume()`` is called.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

import numpy as np

from config import AgentSettings
from errors import AgentError, ConfigurationError, DeviceError, ResourceReleasedError
from interfaces import FrameSource, WakeWordEngine
from models import AgentState, CaptureSession, Recording
from wav import encode_wav

logger = logging.getLogger(__name__)

# Mean absolute sample value below which a frame counts as silence.
SILENCE_THRESHOLD = 100.0
MAX_CAPTURE_SECONDS = 30.0
# Silence never ends a capture shorter than this many frames.
MIN_CAPTURE_FRAMES = 6

EngineFactory = Callable[[AgentSettings], WakeWordEngine]
SourceFactory = Callable[[int, int], FrameSource]
StateCallback = Callable[[AgentState, AgentState], None]
RecordingCallback = Callable[[Recording], None]
ErrorCallback = Callable[[AgentError], None]

_ACTIVE_STATES = (AgentState.LISTENING, AgentState.CAPTURING)


def frame_energy(frame: np.ndarray) -> float:
    """Mean absolute sample value of one frame."""
    samples = np.asarray(frame, dtype=np.int32)
    if samples.size == 0:
        return 0.0
    return float(np.abs(samples).mean())


class CaptureStateMachine:
    def __init__(
        self,
        engine_factory: EngineFactory,
        source_factory: SourceFactory,
        silence_threshold: float = SILENCE_THRESHOLD,
        max_capture_s: float = MAX_CAPTURE_SECONDS,
        on_state_change: Optional[StateCallback] = None,
        on_wake: Optional[Callable[[], None]] = None,
        on_recording: Optional[RecordingCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._engine_factory = engine_factory
        self._source_factory = source_factory
        self.silence_threshold = silence_threshold
        self.max_capture_s = max_capture_s
        self._on_state_change = on_state_change
        self._on_wake = on_wake
        self._on_recording = on_recording
        self._on_error = on_error

        self._lock = threading.RLock()
        self._state = AgentState.IDLE
        self._settings = AgentSettings()
        self._engine: Optional[WakeWordEngine] = None
        self._source: Optional[FrameSource] = None
        self._session = CaptureSession()
        self._generation = 0
        self._thread: Optional[threading.Thread] = None

    @property
    def state(self) -> AgentState:
        return self._state

    def get_state(self) -> AgentState:
        return self._state

    def is_running(self) -> bool:
        return self._state != AgentState.IDLE

    @property
    def session(self) -> CaptureSession:
        return self._session

    @property
    def frame_seconds(self) -> float:
        engine = self._engine
        if engine is None or not engine.sample_rate:
            return 0.0
        return engine.frame_length / engine.sample_rate

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, settings: AgentSettings) -> None:
        if self._state != AgentState.IDLE:
            self.stop()

        with self._lock:
            self._settings = settings
            engine: Optional[WakeWordEngine] = None
            source: Optional[FrameSource] = None
            try:
                engine = self._engine_factory(settings)
                logger.info(
                    "Wake word engine ready (frame_length=%d, sample_rate=%d)",
                    engine.frame_length,
                    engine.sample_rate,
                )
                source = self._source_factory(engine.frame_length, engine.sample_rate)
                source.start()
            except ConfigurationError:
                self._safe_release(source, engine)
                raise
            except Exception as exc:
                logger.error("Failed to initialize wake word detection: %s", exc)
                self._safe_release(source, engine)
                raise DeviceError(f"Failed to initialize wake word detection: {exc}") from exc

            self._engine = engine
            self._source = source
            self._session.clear()
            self._transition(AgentState.LISTENING)
            self._spawn_worker()
        logger.info("Wake word detection started (keyword: %s)", settings.wake_keyword)

    def stop(self) -> None:
        with self._lock:
            self._generation += 1
            source, engine = self._source, self._engine
            self._source = None
            self._engine = None
            self._safe_release(source, engine)
            self._session.clear()
            self._transition(AgentState.IDLE)
            thread = self._thread
            self._thread = None

        if thread is not None and thread is not threading.current_thread() and thread.is_alive():
            thread.join(timeout=0.5)
        logger.info("Wake word detection stopped")

    def resume(self, session_id: Optional[int] = None) -> None:
        """Go back to LISTENING after a turn.

        ``session_id`` is the ``Recording.session_id`` of the finished turn.
        A turn that outlived a stop()/start() carries a stale id and is
        ignored, so it cannot resume a newer session.
        """
        with self._lock:
            if self._state != AgentState.PROCESSING or self._source is None or self._engine is None:
                logger.debug("resume() ignored in state %s", self._state.value)
                return
            if session_id is not None and session_id != self._generation:
                logger.debug("resume() ignored for stale session %d", session_id)
                return
            logger.info("Resuming wake word listening")
            self._transition(AgentState.LISTENING)
            self._spawn_worker()

    # ------------------------------------------------------------------
    # Frame processing
    # ------------------------------------------------------------------

    def process_frame(self, frame: np.ndarray) -> Optional[Recording]:
        """Apply one frame to the current state.

        Returns the finished recording when this frame ended a capture.
        Frames offered while IDLE or PROCESSING are ignored.
        """
        with self._lock:
            if self._state == AgentState.LISTENING:
                if self._engine is None:
                    return None
                keyword_index = self._engine.process(frame)
                if keyword_index >= 0:
                    logger.info("Wake word detected (keyword_index=%d)", keyword_index)
                    self._start_capturing()
                return None
            if self._state == AgentState.CAPTURING:
                return self._capture_frame(frame)
            return None

    def _capture_frame(self, frame: np.ndarray) -> Optional[Recording]:
        session = self._session
        session.append(frame)

        if frame_energy(frame) < self.silence_threshold:
            session.silence_frames += 1
        else:
            session.silence_frames = 0

        frame_s = self.frame_seconds
        silence_s = session.silence_frames * frame_s
        total_s = len(session) * frame_s

        if total_s >= self.max_capture_s:
            logger.warning("Max capture duration (%.0fs) reached, stopping capture", self.max_capture_s)
            return self._finish_capturing()
        if silence_s >= self._settings.silence_timeout and len(session) >= MIN_CAPTURE_FRAMES:
            logger.info(
                "Silence detected after %.1fs, stopping capture (%d frames)",
                silence_s,
                len(session),
            )
            return self._finish_capturing()
        return None

    def _start_capturing(self) -> None:
        self._session.clear()
        self._transition(AgentState.CAPTURING)
        if self._on_wake:
            self._on_wake()

    def _finish_capturing(self) -> Recording:
        sample_rate = self._engine.sample_rate if self._engine is not None else 16000
        frame_count = len(self._session)
        recording = Recording(
            wav_bytes=encode_wav(self._session.frames, sample_rate),
            sample_rate=sample_rate,
            frame_count=frame_count,
            duration_s=frame_count * self.frame_seconds,
            session_id=self._generation,
        )
        self._session.clear()
        self._transition(AgentState.PROCESSING)
        logger.info("Audio captured: %.1f KB WAV", len(recording.wav_bytes) / 1024)
        return recording

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _spawn_worker(self) -> None:
        self._generation += 1
        self._thread = threading.Thread(
            target=self._worker,
            args=(self._generation,),
            daemon=True,
        )
        self._thread.start()

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and self._state in _ACTIVE_STATES

    def _worker(self, generation: int) -> None:
        while True:
            with self._lock:
                if not self._is_current(generation) or self._source is None:
                    return
                source = self._source

            try:
                frame = source.read()
                with self._lock:
                    if not self._is_current(generation):
                        return
                    recording = self.process_frame(frame)
            except Exception as exc:
                self._handle_frame_error(exc, generation)
                return

            if recording is not None:
                if self._on_recording:
                    self._on_recording(recording)
                return

    def _handle_frame_error(self, exc: Exception, generation: int) -> None:
        with self._lock:
            if isinstance(exc, ResourceReleasedError) or not self._is_current(generation):
                logger.debug("Frame error after release ignored: %s", exc)
                return
            logger.error("Audio frame error: %s", exc)
            error = exc if isinstance(exc, DeviceError) else DeviceError(f"Audio frame error: {exc}")
            self._generation += 1
            source, engine = self._source, self._engine
            self._source = None
            self._engine = None
            self._safe_release(source, engine)
            self._session.clear()
            self._transition(AgentState.IDLE)
            self._thread = None
        if self._on_error:
            self._on_error(error)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _safe_release(self, source: Optional[FrameSource], engine: Optional[WakeWordEngine]) -> None:
        if source is not None:
            try:
                source.release()
            except Exception as exc:
                logger.debug("Frame source already released: %s", exc)
        if engine is not None:
            try:
                engine.release()
            except Exception as exc:
                logger.debug("Wake word engine already released: %s", exc)

    def _transition(self, to_state: AgentState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        logger.debug("State %s -> %s", from_state.value, to_state.value)
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
