"""
Shared audio utilities: the AudioClip payload, PCM conversion, resampling and WAV encoding.
The local engine needs 16 kHz mono float32; the remote service takes a WAV file.
"""

from __future__ import annotations

import io
import logging
import wave
from dataclasses import dataclass

import numpy as np

logger = logging.getLogger(__name__)

INT16_MAX = 32767
TARGET_SAMPLE_RATE = 16000


@dataclass(frozen=True)
class AudioClip:
    """
    Mono float32 samples in [-1, 1] at sample_rate.
    Multi-channel input is down-mixed on construction via from_pcm16 / from_float32.
    """

    samples: np.ndarray
    sample_rate: int

    @classmethod
    def from_pcm16(cls, audio_bytes: bytes, sample_rate: int, channels: int = 1) -> AudioClip:
        """Build from int16 little-endian PCM (interleaved if channels > 1)."""
        samples = pcm16_to_float32(audio_bytes)
        return cls.from_float32(samples, sample_rate, channels)

    @classmethod
    def from_float32(
        cls, samples: np.ndarray, sample_rate: int, channels: int = 1
    ) -> AudioClip:
        data = np.asarray(samples, dtype=np.float32)
        if channels > 1 and data.size:
            data = data[: data.size - data.size % channels].reshape(-1, channels).mean(axis=1)
        return cls(samples=np.ascontiguousarray(data, dtype=np.float32), sample_rate=sample_rate)

    @classmethod
    def from_wav(cls, data: bytes) -> AudioClip:
        """Decode a 16-bit PCM WAV file."""
        with wave.open(io.BytesIO(data), "rb") as wf:
            if wf.getsampwidth() != 2:
                raise ValueError(f"Unsupported WAV sample width: {wf.getsampwidth() * 8} bit")
            frames = wf.readframes(wf.getnframes())
            return cls.from_pcm16(frames, wf.getframerate(), wf.getnchannels())

    @property
    def duration_sec(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return len(self.samples) / self.sample_rate

    def is_empty(self) -> bool:
        return len(self.samples) == 0

    def to_whisper_input(self) -> np.ndarray:
        """16 kHz mono float32, contiguous, as the native engine expects."""
        return resample_float32(self.samples, self.sample_rate, TARGET_SAMPLE_RATE)

    def to_wav_bytes(self) -> bytes:
        """Encode as 16-bit mono PCM WAV at the clip's own sample rate."""
        buf = io.BytesIO()
        with wave.open(buf, "wb") as wf:
            wf.setnchannels(1)
            wf.setsampwidth(2)
            wf.setframerate(self.sample_rate)
            wf.writeframes(float32_to_pcm16(self.samples))
        return buf.getvalue()


def pcm16_to_float32(audio_bytes: bytes) -> np.ndarray:
    """int16 LE -> float32 [-1, 1]; a trailing odd byte is ignored."""
    n = len(audio_bytes) // 2
    if n == 0:
        return np.zeros(0, dtype=np.float32)
    ints = np.frombuffer(audio_bytes[: n * 2], dtype="<i2")
    return ints.astype(np.float32) / 32768.0


def float32_to_pcm16(samples: np.ndarray) -> bytes:
    clipped = np.clip(np.asarray(samples, dtype=np.float32), -1.0, 1.0)
    return (clipped * INT16_MAX).astype("<i2").tobytes()


def resample_float32(samples: np.ndarray, rate_in: int, rate_out: int) -> np.ndarray:
    """
    Resample mono float32 from rate_in to rate_out with linear interpolation.
    Returns an empty array for invalid rates or empty input.
    """
    data = np.asarray(samples, dtype=np.float32)
    if rate_in <= 0 or rate_out <= 0:
        logger.warning("resample_float32: invalid rates %s -> %s", rate_in, rate_out)
        return np.zeros(0, dtype=np.float32)
    if rate_in == rate_out or data.size == 0:
        return np.ascontiguousarray(data)
    n = data.size
    num_out = int(round(n * rate_out / rate_in))
    if num_out == 0:
        return np.zeros(0, dtype=np.float32)
    x_old = np.arange(n, dtype=np.float64)
    x_new = np.linspace(0, n - 1, num_out, dtype=np.float64)
    resampled = np.interp(x_new, x_old, data.astype(np.float64))
    return np.ascontiguousarray(resampled.astype(np.float32))


__all__ = [
    "INT16_MAX",
    "TARGET_SAMPLE_RATE",
    "AudioClip",
    "float32_to_pcm16",
    "pcm16_to_float32",
    "resample_float32",
]
