"""
Error taxonomy for model management and transcription.
Every error carries the fields a caller needs to render an actionable message.
"""

from __future__ import annotations


class ScribeError(Exception):
    """Base class for all errors raised by the transcription core."""


# --- Download ---


class DownloadError(ScribeError):
    """A model download failed; the temporary file has already been removed."""

    def __init__(
        self,
        message: str,
        variant: str | None = None,
        bytes_transferred: int = 0,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.variant = variant
        self.bytes_transferred = bytes_transferred
        self.cause = cause


class NetworkError(DownloadError):
    """Connection failure, HTTP error status, or interrupted stream."""

    def __init__(
        self,
        message: str,
        variant: str | None = None,
        bytes_transferred: int = 0,
        cause: BaseException | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, variant, bytes_transferred, cause)
        self.status_code = status_code


class DownloadTimeout(NetworkError):
    """Transfer exceeded the configured total time ceiling."""

    def __init__(
        self,
        variant: str | None,
        timeout_sec: float,
        bytes_transferred: int = 0,
    ) -> None:
        super().__init__(
            f"Download of {variant} timed out after {timeout_sec:.0f}s "
            f"({bytes_transferred} bytes received). Check your connection and retry.",
            variant,
            bytes_transferred,
        )
        self.timeout_sec = timeout_sec


class DiskWriteError(DownloadError):
    """Writing the temporary file failed (permissions, disk full)."""


class ChecksumMismatch(DownloadError):
    """Downloaded bytes do not hash to the catalog checksum."""

    def __init__(
        self,
        variant: str | None,
        expected: str,
        actual: str,
        bytes_transferred: int = 0,
    ) -> None:
        super().__init__(
            f"Checksum mismatch for {variant}: expected {expected}, got {actual}. "
            "The file was discarded; retry the download.",
            variant,
            bytes_transferred,
        )
        self.expected = expected
        self.actual = actual


class InsufficientDiskSpace(DownloadError):
    """Not enough free space in the models directory for the model file."""

    def __init__(self, variant: str | None, required: int, available: int) -> None:
        super().__init__(
            f"Not enough disk space for {variant}: {required} bytes required, "
            f"{available} bytes available.",
            variant,
        )
        self.required = required
        self.available = available


# --- Model ---


class ModelError(ScribeError):
    """Base for errors about a local model variant."""

    def __init__(self, message: str, variant: str | None = None) -> None:
        super().__init__(message)
        self.variant = variant


class ModelNotDownloaded(ModelError):
    """The requested variant is not present (or not valid) on disk."""

    def __init__(self, variant: str | None) -> None:
        super().__init__(
            f"Model {variant} is not downloaded. Download it before using local transcription.",
            variant,
        )


class ModelLoadFailure(ModelError):
    """The native engine could not open the model file."""

    def __init__(self, variant: str | None, cause: BaseException | None = None) -> None:
        super().__init__(f"Failed to load model {variant}: {cause}", variant)
        self.cause = cause


class CorruptedFile(ModelError):
    """A model file exists but fails checksum validation; it has been removed."""

    def __init__(self, variant: str | None, path: str | None = None) -> None:
        super().__init__(
            f"Model file for {variant} is corrupted and was removed. Download it again.",
            variant,
        )
        self.path = path


# --- Transcription ---


class TranscriptionError(ScribeError):
    """Base for failures while producing text."""


class InferenceFailure(TranscriptionError):
    """The native engine failed while transcribing."""

    def __init__(self, variant: str | None, cause: BaseException | None = None) -> None:
        super().__init__(f"Local transcription failed ({variant}): {cause}")
        self.variant = variant
        self.cause = cause


class RemoteTranscriptionError(TranscriptionError):
    """The remote transcription service failed or rejected the audio."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class TranscriptionFailed(TranscriptionError):
    """Local transcription failed and the remote fallback failed as well."""

    def __init__(self, local_error: BaseException, remote_error: BaseException) -> None:
        super().__init__(
            f"Local transcription failed ({local_error}); "
            f"remote fallback also failed ({remote_error})"
        )
        self.local_error = local_error
        self.remote_error = remote_error


__all__ = [
    "ChecksumMismatch",
    "CorruptedFile",
    "DiskWriteError",
    "DownloadError",
    "DownloadTimeout",
    "InferenceFailure",
    "InsufficientDiskSpace",
    "ModelError",
    "ModelLoadFailure",
    "ModelNotDownloaded",
    "NetworkError",
    "RemoteTranscriptionError",
    "ScribeError",
    "TranscriptionError",
    "TranscriptionFailed",
]
