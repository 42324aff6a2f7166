"""PCM16 mono frames to a canonical 44-byte-header WAV container."""

from __future__ import annotations

import io
import wave
from typing import Iterable, Union

import numpy as np

PcmFrame = Union[bytes, bytearray, np.ndarray]

CHANNELS = 1
SAMPLE_WIDTH = 2
HEADER_SIZE = 44


def frame_to_bytes(frame: PcmFrame) -> bytes:
    if isinstance(frame, (bytes, bytearray)):
        return bytes(frame)
    return np.asarray(frame, dtype="<i2").tobytes()


def encode_wav(frames: Iterable[PcmFrame], sample_rate: int) -> bytes:
    pcm = b"".join(frame_to_bytes(f) for f in frames)
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(CHANNELS)
        wf.setsampwidth(SAMPLE_WIDTH)
        wf.setframerate(sample_rate)
        wf.writeframes(pcm)
    return buf.getvalue()
