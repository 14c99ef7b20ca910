"""
localscribe SDK: shared library for the transcription core, its bindings and the CLI.

Provides a single public surface for config section access, collaborator abstractions,
the error taxonomy, audio utilities, and logging. Import from this package only;
do not depend on stt, remote or app from within the SDK.

Example:
    from sdk import get_transcription_section, get_download_section
    cfg = get_download_section(raw_config)

    from sdk import InferenceEngine, RemoteTranscriber, TranscriptionResult
    from sdk import AudioClip, ScribeError
    from sdk import get_logger
"""

from __future__ import annotations

from sdk.abstractions import (
    InferenceEngine,
    NoOpRemoteTranscriber,
    Provider,
    RemoteTranscriber,
    StageCallback,
    StageProgress,
    TranscriptionResult,
)
from sdk.audio_utils import INT16_MAX, TARGET_SAMPLE_RATE, AudioClip, resample_float32
from sdk.config import (
    get_download_section,
    get_lifecycle_section,
    get_remote_section,
    get_section,
    get_transcription_section,
)
from sdk.errors import (
    ChecksumMismatch,
    CorruptedFile,
    DiskWriteError,
    DownloadError,
    DownloadTimeout,
    InferenceFailure,
    InsufficientDiskSpace,
    ModelError,
    ModelLoadFailure,
    ModelNotDownloaded,
    NetworkError,
    RemoteTranscriptionError,
    ScribeError,
    TranscriptionError,
    TranscriptionFailed,
)
from sdk.logging import get_logger

__version__ = "0.1.0"

__all__ = [
    "INT16_MAX",
    "TARGET_SAMPLE_RATE",
    "AudioClip",
    "ChecksumMismatch",
    "CorruptedFile",
    "DiskWriteError",
    "DownloadError",
    "DownloadTimeout",
    "InferenceEngine",
    "InferenceFailure",
    "InsufficientDiskSpace",
    "ModelError",
    "ModelLoadFailure",
    "ModelNotDownloaded",
    "NetworkError",
    "NoOpRemoteTranscriber",
    "Provider",
    "RemoteTranscriber",
    "RemoteTranscriptionError",
    "ScribeError",
    "StageCallback",
    "StageProgress",
    "TranscriptionError",
    "TranscriptionFailed",
    "TranscriptionResult",
    "get_download_section",
    "get_lifecycle_section",
    "get_logger",
    "get_remote_section",
    "get_section",
    "get_transcription_section",
    "resample_float32",
]
