"""
Owns the single loaded native model: load on demand, switch variants, evict when idle.
The native handle never leaves this module; callers get a LoadedModelHandle snapshot
and go through infer() to use it.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable

import numpy as np

from sdk.abstractions import InferenceEngine, StageCallback, StageProgress
from sdk.errors import CorruptedFile, InferenceFailure, ModelLoadFailure, ModelNotDownloaded
from stt.catalog import ModelVariant
from stt.io_utils import remove_file
from stt.store import ModelStore

logger = logging.getLogger(__name__)

DEFAULT_IDLE_TIMEOUT_SEC = 300.0


class LifecycleState(str, Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    LOADED = "loaded"
    UNLOADING = "unloading"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class LoadedModelHandle:
    """Snapshot of the loaded model. generation changes on every load."""

    variant: ModelVariant
    generation: int
    loaded_at: float
    last_used_at: float


class ModelLifecycleManager:
    """
    At most one model is loaded at a time. Load, infer and unload are serialized by one
    lock, so an unload (idle expiry, variant switch, delete) waits for a running inference.
    """

    def __init__(
        self,
        store: ModelStore,
        engine: InferenceEngine,
        thread_count: int | None = None,
        idle_timeout_sec: float = DEFAULT_IDLE_TIMEOUT_SEC,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._engine = engine
        self._thread_count = thread_count or os.cpu_count() or 1
        self._idle_timeout_sec = idle_timeout_sec
        self._clock = clock
        self._lock = asyncio.Lock()
        self._state = LifecycleState.UNLOADED
        self._handle: LoadedModelHandle | None = None
        self._native: Any = None
        self._generation = 0
        self._idle_task: asyncio.Task | None = None

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def handle(self) -> LoadedModelHandle | None:
        return self._handle

    @property
    def loaded_variant(self) -> ModelVariant | None:
        return self._handle.variant if self._handle is not None else None

    @property
    def idle_timeout_sec(self) -> float:
        return self._idle_timeout_sec

    def status(self) -> dict[str, Any]:
        h = self._handle
        return {
            "state": self._state.value,
            "variant": h.variant.value if h else None,
            "loaded_at": h.loaded_at if h else None,
            "last_used_at": h.last_used_at if h else None,
            "idle_timeout_sec": self._idle_timeout_sec,
            "thread_count": self._thread_count,
            "idle_timer_pending": self._idle_task is not None and not self._idle_task.done(),
        }

    async def ensure_loaded(self, variant: ModelVariant) -> LoadedModelHandle:
        """
        Return a handle for variant, loading it (and unloading any other variant) if needed.
        Raises ModelNotDownloaded, CorruptedFile or ModelLoadFailure; never downloads.
        """
        variant = ModelVariant(variant)
        async with self._lock:
            if self._handle is not None and self._handle.variant == variant:
                self._handle = replace(self._handle, last_used_at=self._clock())
                self._schedule_idle()
                return self._handle
            if self._handle is not None:
                logger.info("Switching model %s -> %s", self._handle.variant, variant)
                await self._unload_locked()
            handle = await self._load_locked(variant)
            self._schedule_idle()
            return handle

    async def _load_locked(self, variant: ModelVariant) -> LoadedModelHandle:
        state = await self._store.file_state(variant)
        if not state.exists:
            raise ModelNotDownloaded(variant.value)
        if not state.checksum_valid:
            logger.warning("Model %s failed validation at load time; removing %s", variant, state.path)
            try:
                await asyncio.to_thread(remove_file, state.path)
            except OSError as e:
                logger.warning("Could not remove corrupted model %s: %s", state.path, e)
            raise CorruptedFile(variant.value, str(state.path))

        self._state = LifecycleState.LOADING
        started = time.monotonic()
        try:
            native = await asyncio.to_thread(self._engine.load, state.path)
        except Exception as e:
            self._state = LifecycleState.UNLOADED
            logger.error("Failed to load model %s: %s", variant, e)
            raise ModelLoadFailure(variant.value, e) from e
        except BaseException:
            self._state = LifecycleState.UNLOADED
            raise

        now = self._clock()
        self._generation += 1
        self._native = native
        self._handle = LoadedModelHandle(
            variant=variant, generation=self._generation, loaded_at=now, last_used_at=now
        )
        self._state = LifecycleState.LOADED
        logger.info("Loaded model %s in %.2fs", variant, time.monotonic() - started)
        return self._handle

    async def infer(
        self,
        handle: LoadedModelHandle,
        samples: np.ndarray,
        on_stage_progress: StageCallback | None = None,
    ) -> str:
        """
        Run the native engine on 16 kHz mono float32 samples with the loaded model.
        handle must be the current one; a handle from an earlier load raises InferenceFailure.
        """
        async with self._lock:
            current = self._handle
            if current is None or current.generation != handle.generation:
                raise InferenceFailure(
                    handle.variant.value, RuntimeError("model is no longer loaded")
                )
            self._handle = replace(current, last_used_at=self._clock())
            callback = _on_loop(on_stage_progress)
            try:
                text = await asyncio.to_thread(
                    self._engine.infer, self._native, samples, self._thread_count, callback
                )
            except Exception as e:
                logger.warning("Inference failed on %s: %s", current.variant, e)
                raise InferenceFailure(current.variant.value, e) from e
            if self._handle is not None and self._handle.generation == current.generation:
                self._handle = replace(self._handle, last_used_at=self._clock())
            return text

    def reset_idle_timer(self) -> None:
        """Cancel any pending idle eviction and start a fresh countdown. Needs a running loop."""
        self._schedule_idle()

    def _schedule_idle(self) -> None:
        self._cancel_idle_timer()
        if self._handle is None:
            return
        self._idle_task = asyncio.get_running_loop().create_task(self._idle_countdown())

    def _cancel_idle_timer(self) -> None:
        task = self._idle_task
        self._idle_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _idle_countdown(self) -> None:
        await asyncio.sleep(self._idle_timeout_sec)
        async with self._lock:
            if self._idle_task is not asyncio.current_task():
                return
            self._idle_task = None
            if self._handle is not None:
                logger.info(
                    "Model %s idle for %.0fs; unloading", self._handle.variant, self._idle_timeout_sec
                )
                await self._unload_locked()

    async def unload(self) -> None:
        """Release the loaded model, if any, and cancel the idle timer. Idempotent."""
        async with self._lock:
            await self._unload_locked()

    async def unload_if_loaded(self, variant: ModelVariant) -> bool:
        """Unload only if variant is the loaded one; returns True if it was."""
        variant = ModelVariant(variant)
        async with self._lock:
            if self._handle is None or self._handle.variant != variant:
                return False
            await self._unload_locked()
            return True

    async def _unload_locked(self) -> None:
        self._cancel_idle_timer()
        if self._handle is None:
            return
        handle, native = self._handle, self._native
        self._state = LifecycleState.UNLOADING
        try:
            await asyncio.to_thread(self._engine.unload, native)
        except Exception as e:
            logger.warning("Error releasing model %s: %s", handle.variant, e)
        finally:
            self._handle = None
            self._native = None
            self._state = LifecycleState.UNLOADED
        logger.info("Unloaded model %s", handle.variant)

    async def shutdown(self) -> None:
        await self.unload()

    async def __aenter__(self) -> ModelLifecycleManager:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()


def _on_loop(callback: StageCallback | None) -> StageCallback | None:
    """Wrap callback so reports from the engine thread are delivered on the event loop in order."""
    if callback is None:
        return None
    loop = asyncio.get_running_loop()

    def deliver(progress: StageProgress) -> None:
        try:
            callback(progress)
        except Exception as e:
            logger.debug("Stage progress callback failed: %s", e)

    def report(progress: StageProgress) -> None:
        loop.call_soon_threadsafe(deliver, progress)

    return report


__all__ = [
    "DEFAULT_IDLE_TIMEOUT_SEC",
    "LifecycleState",
    "LoadedModelHandle",
    "ModelLifecycleManager",
]
