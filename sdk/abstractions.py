"""
Collaborator interfaces for the transcription core: native inference engine and
remote transcription service, plus the result types they share.
Concrete implementations live in stt.whisper_engine and remote.speech_client.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from sdk.errors import RemoteTranscriptionError

if TYPE_CHECKING:
    import numpy as np

    from sdk.audio_utils import AudioClip


class Provider(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class TranscriptionResult:
    """Provider-independent result; callers never branch on which provider produced it."""

    text: str
    duration_ms: int
    provider_used: Provider
    confidence: float | None = None


@dataclass(frozen=True)
class StageProgress:
    """Inference stage report: loading_model, processing_audio, finalizing, complete."""

    stage: str
    progress: float  # 0.0--1.0


StageCallback = Callable[[StageProgress], None]

STAGE_LOADING_MODEL = "loading_model"
STAGE_PROCESSING_AUDIO = "processing_audio"
STAGE_FINALIZING = "finalizing"
STAGE_COMPLETE = "complete"


class InferenceEngine(ABC):
    """
    Native speech model binding. Handles are opaque and owned by whoever called load();
    in this codebase that is only the lifecycle manager.
    All methods are blocking and are called from a worker thread.
    """

    @abstractmethod
    def load(self, path: Path) -> Any:
        """Open the model file and return an opaque handle. Raise on failure."""
        ...

    @abstractmethod
    def infer(
        self,
        handle: Any,
        samples: np.ndarray,
        thread_count: int,
        on_stage_progress: StageCallback | None = None,
    ) -> str:
        """
        Transcribe 16 kHz mono float32 samples with the loaded model.
        Stage progress is reported in order and never decreases.
        """
        ...

    @abstractmethod
    def unload(self, handle: Any) -> None:
        """Release the native resources behind handle."""
        ...


class RemoteTranscriber(ABC):
    """Remote speech-to-text service."""

    @abstractmethod
    def transcribe(self, audio: AudioClip) -> TranscriptionResult:
        """Transcribe audio; raise RemoteTranscriptionError on failure."""
        ...

    def is_available(self) -> bool:
        """Whether the service is reachable/configured. True by default."""
        return True

    def close(self) -> None:
        """Release connections held by the client. Nothing to release by default."""


# --- No-op implementations (used when no remote service is configured) ---


class NoOpRemoteTranscriber(RemoteTranscriber):
    """Remote that is never available; transcribe always fails."""

    def transcribe(self, audio: AudioClip) -> TranscriptionResult:
        raise RemoteTranscriptionError("No remote transcription service configured")

    def is_available(self) -> bool:
        return False


__all__ = [
    "STAGE_COMPLETE",
    "STAGE_FINALIZING",
    "STAGE_LOADING_MODEL",
    "STAGE_PROCESSING_AUDIO",
    "InferenceEngine",
    "NoOpRemoteTranscriber",
    "Provider",
    "RemoteTranscriber",
    "StageCallback",
    "StageProgress",
    "TranscriptionResult",
]
