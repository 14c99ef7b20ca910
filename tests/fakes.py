"""Test doubles shared by the test modules: engine, remote, HTTP session, small catalog."""

from __future__ import annotations

import hashlib
import threading
import time
from pathlib import Path
from typing import Any, Callable, Iterator

import numpy as np
import requests

from sdk.abstractions import (
    STAGE_COMPLETE,
    STAGE_PROCESSING_AUDIO,
    InferenceEngine,
    Provider,
    RemoteTranscriber,
    StageProgress,
    TranscriptionResult,
)
from sdk.audio_utils import AudioClip
from sdk.errors import RemoteTranscriptionError
from stt.catalog import ModelMetadata, ModelVariant
from stt.store import ModelStore

MODEL_BYTES: dict[ModelVariant, bytes] = {
    v: (v.value.encode() + b"-weights-") * (64 * (i + 1)) for i, v in enumerate(ModelVariant)
}


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def small_catalog(variant: ModelVariant) -> ModelMetadata:
    """Catalog whose checksums match MODEL_BYTES; sizes are the real byte counts."""
    variant = ModelVariant(variant)
    data = MODEL_BYTES[variant]
    return ModelMetadata(
        variant=variant,
        size_bytes=len(data),
        checksum=sha256_hex(data),
        source_url=f"https://models.example/{variant.value}.bin",
        accuracy_tier="good",
        speed_tier="fast",
    )


def make_store(models_dir: Path, **kwargs: Any) -> ModelStore:
    return ModelStore(models_dir, catalog=small_catalog, **kwargs)


def install_model(store: ModelStore, variant: ModelVariant, data: bytes | None = None) -> Path:
    """Write a model file directly (valid by default; pass other bytes for a corrupted one)."""
    path = store.model_path(variant)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(MODEL_BYTES[variant] if data is None else data)
    return path


def speech_clip(seconds: float = 0.5, sample_rate: int = 16000) -> AudioClip:
    t = np.arange(int(seconds * sample_rate), dtype=np.float32) / sample_rate
    return AudioClip(samples=(0.2 * np.sin(2 * np.pi * 440 * t)).astype(np.float32), sample_rate=sample_rate)


class FakeEngine(InferenceEngine):
    """
    Records load/infer/unload calls. texts is consumed in order (last one repeats).
    Detects overlapping infer calls via max_concurrent.
    """

    def __init__(
        self,
        texts: list[str] | None = None,
        fail_load: bool = False,
        fail_infer: Callable[[int], bool] | None = None,
        infer_delay: float = 0.0,
    ) -> None:
        self.texts = list(texts or ["hello world"])
        self.fail_load = fail_load
        self.fail_infer = fail_infer
        self.infer_delay = infer_delay
        self.loaded: list[str] = []
        self.unloaded: list[Any] = []
        self.infer_calls = 0
        self.thread_counts: list[int] = []
        self.active = 0
        self.max_concurrent = 0
        self._lock = threading.Lock()

    def load(self, path: Path) -> Any:
        if self.fail_load:
            raise RuntimeError("bad model file")
        self.loaded.append(Path(path).name)
        return {"path": str(path), "id": len(self.loaded)}

    def infer(self, handle, samples, thread_count, on_stage_progress=None) -> str:
        with self._lock:
            self.active += 1
            self.max_concurrent = max(self.max_concurrent, self.active)
            self.infer_calls += 1
            call = self.infer_calls
            self.thread_counts.append(thread_count)
        try:
            if on_stage_progress is not None:
                on_stage_progress(StageProgress(STAGE_PROCESSING_AUDIO, 0.33))
            if self.infer_delay:
                time.sleep(self.infer_delay)
            if self.fail_infer is not None and self.fail_infer(call):
                raise RuntimeError(f"inference crashed on call {call}")
            if on_stage_progress is not None:
                on_stage_progress(StageProgress(STAGE_COMPLETE, 1.0))
            return self.texts[min(call - 1, len(self.texts) - 1)]
        finally:
            with self._lock:
                self.active -= 1

    def unload(self, handle: Any) -> None:
        self.unloaded.append(handle)


class FakeRemote(RemoteTranscriber):
    def __init__(self, text: str = "remote text", fail: bool = False, available: bool = True) -> None:
        self.text = text
        self.fail = fail
        self.available = available
        self.calls = 0
        self.closed = False

    def transcribe(self, audio: AudioClip) -> TranscriptionResult:
        self.calls += 1
        if self.fail:
            raise RemoteTranscriptionError("service unavailable", status_code=503, retryable=True)
        return TranscriptionResult(
            text=self.text, duration_ms=12, provider_used=Provider.REMOTE, confidence=0.9
        )

    def is_available(self) -> bool:
        return self.available

    def close(self) -> None:
        self.closed = True


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        chunks: list[bytes] | None = None,
        error_after: int | None = None,
        error: Exception | None = None,
    ) -> None:
        self.status_code = status_code
        self.chunks = chunks or []
        self.error_after = error_after
        self.error = error
        self.closed = False

    def iter_content(self, chunk_size: int = 1) -> Iterator[bytes]:
        for i, chunk in enumerate(self.chunks):
            if self.error_after is not None and i == self.error_after:
                raise self.error or requests.ConnectionError("connection reset")
            yield chunk

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """Stands in for requests.Session in download tests; responses keyed by URL."""

    def __init__(
        self,
        responses: dict[str, FakeResponse] | None = None,
        raise_on_get: Exception | None = None,
        gate: threading.Event | None = None,
    ) -> None:
        self.responses = responses or {}
        self.raise_on_get = raise_on_get
        self.gate = gate
        self.headers: dict[str, str] = {}
        self.requested: list[str] = []
        self.request_kwargs: list[dict[str, Any]] = []
        self.closed = False

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.requested.append(url)
        self.request_kwargs.append(kwargs)
        if self.gate is not None:
            self.gate.wait(5)
        if self.raise_on_get is not None:
            raise self.raise_on_get
        return self.responses[url]

    def close(self) -> None:
        self.closed = True


def chunked(data: bytes, size: int) -> list[bytes]:
    return [data[i : i + size] for i in range(0, len(data), size)]


def ok_response(variant: ModelVariant, chunk_size: int = 100) -> FakeResponse:
    return FakeResponse(200, chunked(MODEL_BYTES[variant], chunk_size))
