"""Microphone frame source adapter."""

from __future__ import annotations

import threading
from typing import Any

from errors import DeviceError, ResourceReleasedError

try:
    import numpy as np
except Exception:  # pragma: no cover
    np = None  # type: ignore

try:
    import sounddevice as sd
except Exception:  # pragma: no cover
    sd = None  # type: ignore


class SoundDeviceFrameSource:
    """Blocking reader of fixed-length int16 mono frames."""

    def __init__(
        self,
        frame_length: int = 512,
        sample_rate: int = 16000,
        channels: int = 1,
        device: Any = None,
    ) -> None:
        self.frame_length = frame_length
        self.sample_rate = sample_rate
        self.channels = channels
        self.device = device
        self._stream: Any = None
        self._running = False
        self._released = False
        self._lock = threading.Lock()
        self.overflows = 0

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            if sd is None:
                raise DeviceError("sounddevice is not installed")
            self._stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                blocksize=self.frame_length,
                device=self.device,
            )
            self._stream.start()
            self._running = True
            self._released = False

    def read(self) -> Any:
        stream = self._stream
        if self._released or stream is None:
            raise ResourceReleasedError("frame source released")
        try:
            data, overflowed = stream.read(self.frame_length)
        except Exception as exc:
            if self._released:
                raise ResourceReleasedError(f"frame source released: {exc}") from exc
            raise DeviceError(f"microphone read failed: {exc}") from exc
        if overflowed:
            self.overflows += 1
        return np.asarray(data, dtype=np.int16).reshape(-1)

    def release(self) -> None:
        with self._lock:
            self._released = True
            if not self._running:
                return
            self._running = False
            if self._stream is not None:
                self._stream.stop()
                self._stream.close()
                self._stream = None


def sounddevice_source_factory(frame_length: int, sample_rate: int) -> SoundDeviceFrameSource:
    return SoundDeviceFrameSource(frame_length=frame_length, sample_rate=sample_rate)
