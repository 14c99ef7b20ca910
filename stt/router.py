"""
Routes a transcription to the local queue or the remote service per the current settings,
falling back to remote when local fails and fallback is enabled.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from sdk.abstractions import Provider, RemoteTranscriber, TranscriptionResult
from sdk.audio_utils import AudioClip
from sdk.errors import TranscriptionFailed
from stt.catalog import ModelVariant
from stt.request_queue import TranscriptionQueue
from stt.store import ModelStore

logger = logging.getLogger(__name__)

MAX_FALLBACK_HISTORY = 50


@dataclass(frozen=True)
class TranscriptionSettings:
    """Read-only view of the user's transcription preferences."""

    method: Provider = Provider.REMOTE
    local_variant: ModelVariant = ModelVariant.SMALL
    enable_fallback: bool = True
    storage_directory: str = "data/models"


@dataclass(frozen=True)
class FallbackEvent:
    reason: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    from_provider: Provider = Provider.LOCAL
    to_provider: Provider = Provider.REMOTE


SettingsProvider = Callable[[], TranscriptionSettings]
FallbackListener = Callable[[FallbackEvent], None]


def _reason(error: BaseException) -> str:
    return str(error).strip() or type(error).__name__


class TranscriptionRouter:
    """
    Callers get a TranscriptionResult regardless of provider. Settings are read on every
    call, so a change takes effect on the next transcription.
    """

    def __init__(
        self,
        settings_provider: SettingsProvider,
        queue: TranscriptionQueue,
        remote: RemoteTranscriber,
        store: ModelStore | None = None,
        history_size: int = MAX_FALLBACK_HISTORY,
    ) -> None:
        self._settings_provider = settings_provider
        self._queue = queue
        self._remote = remote
        self._store = store
        self._listeners: list[FallbackListener] = []
        self._history: deque[FallbackEvent] = deque(maxlen=history_size)

    @property
    def fallback_events(self) -> list[FallbackEvent]:
        """Most recent fallback events, oldest first."""
        return list(self._history)

    def subscribe(self, listener: FallbackListener) -> Callable[[], None]:
        """Register a fallback listener; returns a function that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def transcribe(self, audio: AudioClip) -> TranscriptionResult:
        settings = self._settings_provider()
        if settings.method != Provider.LOCAL:
            return await self._transcribe_remote(audio)

        try:
            return await self._transcribe_local(audio, settings.local_variant)
        except Exception as local_error:
            if not settings.enable_fallback:
                raise
            event = FallbackEvent(reason=_reason(local_error))
            self._emit(event)
            try:
                return await self._transcribe_remote(audio)
            except Exception as remote_error:
                logger.error("Remote fallback failed as well: %s", remote_error)
                raise TranscriptionFailed(local_error, remote_error) from remote_error

    async def _transcribe_local(
        self, audio: AudioClip, variant: ModelVariant
    ) -> TranscriptionResult:
        started = time.monotonic()
        text = await self._queue.enqueue(audio, variant)
        return TranscriptionResult(
            text=text.strip(),
            duration_ms=int((time.monotonic() - started) * 1000),
            provider_used=Provider.LOCAL,
        )

    async def _transcribe_remote(self, audio: AudioClip) -> TranscriptionResult:
        started = time.monotonic()
        result = await asyncio.to_thread(self._remote.transcribe, audio)
        duration_ms = result.duration_ms or int((time.monotonic() - started) * 1000)
        return TranscriptionResult(
            text=result.text,
            duration_ms=duration_ms,
            provider_used=Provider.REMOTE,
            confidence=result.confidence,
        )

    def _emit(self, event: FallbackEvent) -> None:
        logger.warning(
            "Local transcription failed, falling back to %s: %s (at %s)",
            event.to_provider,
            event.reason,
            event.timestamp.isoformat(),
        )
        self._history.append(event)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.debug("Fallback listener failed: %s", e)

    async def is_provider_available(self, provider: Provider | str) -> bool:
        """Local: the selected variant is downloaded and valid. Remote: the service reports available."""
        provider = Provider(provider)
        if provider == Provider.LOCAL:
            if self._store is None:
                return False
            return await self._store.is_downloaded(self._settings_provider().local_variant)
        try:
            return bool(await asyncio.to_thread(self._remote.is_available))
        except Exception as e:
            logger.debug("Remote availability check failed: %s", e)
            return False

    def status(self) -> dict[str, Any]:
        settings = self._settings_provider()
        last = self._history[-1] if self._history else None
        return {
            "method": settings.method.value,
            "local_variant": settings.local_variant.value,
            "enable_fallback": settings.enable_fallback,
            "queue_length": self._queue.queue_length(),
            "is_processing": self._queue.is_processing(),
            "fallback_count": len(self._history),
            "last_fallback": (
                {"reason": last.reason, "timestamp": last.timestamp.isoformat()} if last else None
            ),
        }


__all__ = [
    "FallbackEvent",
    "FallbackListener",
    "MAX_FALLBACK_HISTORY",
    "SettingsProvider",
    "TranscriptionRouter",
    "TranscriptionSettings",
]
