"""
FIFO queue that serializes local transcriptions onto the one loaded model.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field

from sdk.abstractions import StageCallback
from sdk.audio_utils import AudioClip
from sdk.errors import InferenceFailure
from stt.catalog import ModelVariant
from stt.lifecycle import ModelLifecycleManager

logger = logging.getLogger(__name__)


@dataclass
class QueueEntry:
    audio: AudioClip
    variant: ModelVariant
    future: asyncio.Future
    on_progress: StageCallback | None = None
    enqueued_at: float = field(default_factory=time.monotonic)


class TranscriptionQueue:
    """
    One worker task drains entries in enqueue order; the engine never runs two at once.
    A failed entry fails only its own future.
    Cancelling the awaiting caller skips an entry that has not started; one already
    running natively finishes and its result is dropped.
    """

    def __init__(
        self,
        lifecycle: ModelLifecycleManager,
        default_variant: ModelVariant = ModelVariant.SMALL,
    ) -> None:
        self._lifecycle = lifecycle
        self._default_variant = ModelVariant(default_variant)
        self._pending: deque[QueueEntry] = deque()
        self._current: QueueEntry | None = None
        self._worker: asyncio.Task | None = None

    def queue_length(self) -> int:
        """Entries waiting to start (the one in flight is not counted)."""
        return sum(1 for e in self._pending if not e.future.done())

    def is_processing(self) -> bool:
        return self._current is not None

    async def enqueue(
        self,
        audio: AudioClip,
        variant: ModelVariant | None = None,
        on_progress: StageCallback | None = None,
    ) -> str:
        """Queue audio for local transcription and wait for its text."""
        loop = asyncio.get_running_loop()
        entry = QueueEntry(
            audio=audio,
            variant=ModelVariant(variant) if variant is not None else self._default_variant,
            future=loop.create_future(),
            on_progress=on_progress,
        )
        self._pending.append(entry)
        logger.debug("Enqueued transcription (%s); %d waiting", entry.variant, len(self._pending))
        if self._worker is None or self._worker.done():
            self._worker = loop.create_task(self._drain())
        return await entry.future

    async def _drain(self) -> None:
        while self._pending:
            entry = self._pending.popleft()
            if entry.future.done():
                logger.debug("Skipping cancelled transcription request")
                continue
            self._current = entry
            try:
                text = await self._process(entry)
            except Exception as e:
                if not entry.future.done():
                    entry.future.set_exception(e)
            else:
                if not entry.future.done():
                    entry.future.set_result(text)
            finally:
                self._current = None

    async def _process(self, entry: QueueEntry) -> str:
        started = time.monotonic()
        handle = await self._lifecycle.ensure_loaded(entry.variant)
        samples = await asyncio.to_thread(entry.audio.to_whisper_input)
        try:
            text = await self._lifecycle.infer(handle, samples, entry.on_progress)
        except InferenceFailure:
            # Drop a model that failed mid-inference rather than keep reusing it.
            await self._lifecycle.unload()
            raise
        self._lifecycle.reset_idle_timer()
        logger.info(
            "Local transcription (%s) finished in %.2fs (waited %.2fs)",
            entry.variant,
            time.monotonic() - started,
            started - entry.enqueued_at,
        )
        return text

    async def close(self) -> None:
        """Cancel waiting entries and stop the worker once the in-flight entry finishes."""
        while self._pending:
            entry = self._pending.popleft()
            if not entry.future.done():
                entry.future.cancel()
        worker = self._worker
        if worker is not None and not worker.done():
            await asyncio.gather(worker, return_exceptions=True)


__all__ = ["QueueEntry", "TranscriptionQueue"]
