"""
Remote transcription service client that implements the RemoteTranscriber abstraction.
"""

from __future__ import annotations

import time
from typing import Callable

from sdk import AudioClip, Provider, RemoteTranscriber, TranscriptionResult, get_logger
from sdk.errors import RemoteTranscriptionError
from remote.client import ApiClient

logger = get_logger("remote")

MAX_AUDIO_BYTES = 25 * 1024 * 1024
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY_SEC = 1.0


def _clamp_confidence(value: object) -> float | None:
    if value is None:
        return None
    try:
        return max(0.0, min(1.0, float(value)))
    except (TypeError, ValueError):
        return None


class RemoteSTTClient(RemoteTranscriber):
    """
    POST /stt/transcribe with base64 WAV. Retryable failures (network, 5xx, 429) are retried
    with exponential backoff (1 s, 2 s, ...) up to max_retries attempts in total.
    """

    def __init__(
        self,
        client: ApiClient,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay_sec: float = DEFAULT_RETRY_BASE_DELAY_SEC,
        language: str | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self._max_retries = max(1, max_retries)
        self._retry_base_delay_sec = retry_base_delay_sec
        self._language = language
        self._sleep = sleep

    def transcribe(self, audio: AudioClip) -> TranscriptionResult:
        if audio.is_empty():
            raise RemoteTranscriptionError("Audio is empty; nothing to transcribe")
        wav = audio.to_wav_bytes()
        if len(wav) > MAX_AUDIO_BYTES:
            raise RemoteTranscriptionError(
                f"Audio is too large for remote transcription "
                f"({len(wav) / (1024 * 1024):.1f} MB, limit {MAX_AUDIO_BYTES // (1024 * 1024)} MB)"
            )
        payload: dict[str, object] = {
            "audio_base64": self._client._encode_audio(wav),
            "format": "wav",
            "sample_rate": audio.sample_rate,
        }
        if self._language:
            payload["language"] = self._language

        started = time.monotonic()
        attempt = 1
        while True:
            try:
                response = self._client._request("POST", "/stt/transcribe", json_data=payload)
                break
            except RemoteTranscriptionError as e:
                if not e.retryable or attempt >= self._max_retries:
                    logger.warning("Remote transcription failed after %d attempt(s): %s", attempt, e)
                    raise
                delay = self._retry_base_delay_sec * (2 ** (attempt - 1))
                logger.info(
                    "Remote transcription attempt %d failed (%s); retrying in %.1fs", attempt, e, delay
                )
                self._sleep(delay)
                attempt += 1

        return TranscriptionResult(
            text=str(response.get("text") or "").strip(),
            duration_ms=int((time.monotonic() - started) * 1000),
            provider_used=Provider.REMOTE,
            confidence=_clamp_confidence(response.get("confidence")),
        )

    def close(self) -> None:
        self._client.close()

    def is_available(self) -> bool:
        try:
            response = self._client._request("GET", "/health", timeout=5.0)
        except RemoteTranscriptionError as e:
            logger.debug("Remote transcription service unavailable: %s", e)
            return False
        return str(response.get("status", "ok")).lower() in ("ok", "healthy")


__all__ = ["MAX_AUDIO_BYTES", "RemoteSTTClient"]
