"""
Model download: stream to <final>.tmp, hash, then commit atomically or clean up.
The final path only ever receives a file that already passed checksum validation.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable

import requests
from urllib3.exceptions import ReadTimeoutError

from sdk.errors import (
    ChecksumMismatch,
    DiskWriteError,
    DownloadError,
    DownloadTimeout,
    InsufficientDiskSpace,
    NetworkError,
)
from stt.catalog import ModelVariant
from stt.io_utils import checksums_match, commit_file, discard_file, ensure_dir, sha256_file
from stt.store import ModelStore

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SEC = 300.0
DEFAULT_CONNECT_TIMEOUT_SEC = 30.0
DEFAULT_READ_TIMEOUT_SEC = 60.0
DEFAULT_CHUNK_SIZE = 65536
# Only a committed download may report 100%.
_MAX_PENDING_PERCENTAGE = 99.9


class DownloadStatus(str, Enum):
    STARTING = "starting"
    DOWNLOADING = "downloading"
    VALIDATING = "validating"
    COMPLETED = "completed"
    ERROR = "error"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class DownloadProgress:
    variant: ModelVariant
    bytes_downloaded: int
    total_bytes: int
    percentage: float
    status: DownloadStatus


ProgressCallback = Callable[[DownloadProgress], None]


class _ProgressReporter:
    """
    Fans progress out to every subscriber of one transfer.
    Percentage never decreases and stays below 100 until the file is committed.
    """

    def __init__(self, variant: ModelVariant, total_bytes: int) -> None:
        self.variant = variant
        self.total_bytes = total_bytes
        self._last_percentage = 0.0
        self._listeners: list[ProgressCallback] = []
        self.last: DownloadProgress | None = None

    def subscribe(self, callback: ProgressCallback | None) -> None:
        if callback is not None:
            self._listeners.append(callback)

    def emit(self, status: DownloadStatus, bytes_downloaded: int) -> None:
        if status == DownloadStatus.COMPLETED:
            pct = 100.0
        elif self.total_bytes > 0:
            pct = min(_MAX_PENDING_PERCENTAGE, bytes_downloaded / self.total_bytes * 100.0)
        else:
            pct = 0.0
        pct = max(self._last_percentage, pct)
        self._last_percentage = pct
        progress = DownloadProgress(
            variant=self.variant,
            bytes_downloaded=bytes_downloaded,
            total_bytes=self.total_bytes,
            percentage=pct,
            status=status,
        )
        self.last = progress
        for callback in list(self._listeners):
            try:
                callback(progress)
            except Exception as e:
                logger.debug("Download progress callback failed: %s", e)


class DownloadPipeline:
    """
    Downloads catalog models into the store's directory.
    Concurrent requests for the same variant share one transfer; the later caller's
    progress callback is subscribed to it and both get the same outcome.

    timeout_sec caps the whole transfer and is checked between chunks; a single read
    that stalls fails after read_timeout_sec, so a download ends no later than
    timeout_sec + read_timeout_sec. Either way it raises DownloadTimeout.
    """

    def __init__(
        self,
        store: ModelStore,
        session: requests.Session | None = None,
        timeout_sec: float = DEFAULT_TIMEOUT_SEC,
        connect_timeout_sec: float = DEFAULT_CONNECT_TIMEOUT_SEC,
        read_timeout_sec: float = DEFAULT_READ_TIMEOUT_SEC,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        check_disk_space: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._owns_session = session is None
        if session is None:
            session = requests.Session()
            session.headers.setdefault("User-Agent", "localscribe/0.1 (model downloader)")
        self._session = session
        self._timeout_sec = timeout_sec
        self._connect_timeout_sec = connect_timeout_sec
        self._read_timeout_sec = min(read_timeout_sec, timeout_sec)
        self._chunk_size = chunk_size
        self._check_disk_space = check_disk_space
        self._clock = clock
        self._inflight: dict[ModelVariant, tuple[asyncio.Task, _ProgressReporter]] = {}

    def is_downloading(self, variant: ModelVariant) -> bool:
        return ModelVariant(variant) in self._inflight

    def close(self) -> None:
        """Close the HTTP session if this pipeline created it."""
        if self._owns_session:
            self._session.close()

    async def download(
        self, variant: ModelVariant, on_progress: ProgressCallback | None = None
    ) -> Path:
        """
        Download, verify and commit variant; return the final path.
        Raises a DownloadError subclass; on any failure no temp or unverified file remains.
        """
        variant = ModelVariant(variant)
        existing = self._inflight.get(variant)
        if existing is not None:
            task, reporter = existing
            logger.info("Download of %s already in progress; joining it", variant)
            reporter.subscribe(on_progress)
            return await asyncio.shield(task)

        reporter = _ProgressReporter(variant, self._store.metadata(variant).size_bytes)
        reporter.subscribe(on_progress)
        task = asyncio.get_running_loop().create_task(self._run(variant, reporter))
        self._inflight[variant] = (task, reporter)
        task.add_done_callback(lambda t: self._forget(variant, t))
        return await asyncio.shield(task)

    def _forget(self, variant: ModelVariant, task: asyncio.Task) -> None:
        current = self._inflight.get(variant)
        if current is not None and current[0] is task:
            del self._inflight[variant]
        if not task.cancelled():
            task.exception()  # mark retrieved when every caller stopped waiting

    async def _run(self, variant: ModelVariant, reporter: _ProgressReporter) -> Path:
        meta = self._store.metadata(variant)
        final = self._store.model_path(variant)
        tmp = self._store.temp_path(variant)
        stop = threading.Event()
        transferred = 0

        reporter.emit(DownloadStatus.STARTING, 0)
        logger.info("Downloading %s from %s", variant, meta.source_url)
        loop = asyncio.get_running_loop()

        def on_bytes(n: int) -> None:
            nonlocal transferred
            transferred = n
            loop.call_soon_threadsafe(reporter.emit, DownloadStatus.DOWNLOADING, n)

        try:
            await asyncio.to_thread(ensure_dir, self._store.models_dir)
            if self._check_disk_space:
                available = await asyncio.to_thread(self._store.available_disk_space)
                if available < meta.size_bytes:
                    raise InsufficientDiskSpace(variant.value, meta.size_bytes, available)
            transferred = await asyncio.to_thread(
                self._transfer, variant, meta.source_url, tmp, on_bytes, stop
            )
            reporter.emit(DownloadStatus.VALIDATING, transferred)
            actual = await asyncio.to_thread(sha256_file, tmp)
            if not checksums_match(meta.checksum, actual):
                raise ChecksumMismatch(variant.value, meta.checksum, actual, transferred)
            await asyncio.to_thread(commit_file, tmp, final)
        except BaseException as e:
            stop.set()
            discard_file(tmp)
            reporter.emit(DownloadStatus.ERROR, transferred)
            if isinstance(e, DownloadError):
                logger.warning("Download of %s failed: %s", variant, e)
                raise
            if isinstance(e, OSError):
                logger.warning("Download of %s failed writing to disk: %s", variant, e)
                raise DiskWriteError(
                    f"Could not write model file for {variant}: {e}. Check disk space and permissions.",
                    variant.value,
                    transferred,
                    e,
                ) from e
            raise

        reporter.emit(DownloadStatus.COMPLETED, transferred)
        logger.info("Downloaded %s (%d bytes) -> %s", variant, transferred, final)
        return final

    def _transfer(
        self,
        variant: ModelVariant,
        url: str,
        tmp: Path,
        on_bytes: Callable[[int], None],
        stop: threading.Event,
    ) -> int:
        """Blocking stream of url into tmp; runs in a worker thread. Returns bytes written."""
        deadline = self._clock() + self._timeout_sec
        transferred = 0
        try:
            response = self._session.get(
                url,
                stream=True,
                allow_redirects=True,
                timeout=(self._connect_timeout_sec, self._read_timeout_sec),
            )
        except requests.Timeout as e:
            raise DownloadTimeout(variant.value, self._timeout_sec, 0) from e
        except requests.RequestException as e:
            raise NetworkError(
                f"Download request for {variant} failed: {e}. Please check your internet connection.",
                variant.value,
                0,
                e,
            ) from e

        try:
            if response.status_code >= 400:
                raise NetworkError(
                    f"Download of {variant} failed with HTTP status {response.status_code}. "
                    "The model file may not be available.",
                    variant.value,
                    0,
                    status_code=response.status_code,
                )
            try:
                f = open(tmp, "wb")
            except OSError as e:
                raise DiskWriteError(
                    f"Could not create {tmp}: {e}. Check disk permissions.",
                    variant.value,
                    0,
                    e,
                ) from e
            with f:
                for chunk in response.iter_content(chunk_size=self._chunk_size):
                    if stop.is_set():
                        raise DownloadError(f"Download of {variant} aborted", variant.value, transferred)
                    if self._clock() > deadline:
                        raise DownloadTimeout(variant.value, self._timeout_sec, transferred)
                    if not chunk:
                        continue
                    try:
                        f.write(chunk)
                    except OSError as e:
                        raise DiskWriteError(
                            f"Failed to write to disk after {transferred} bytes: {e}. Check available disk space.",
                            variant.value,
                            transferred,
                            e,
                        ) from e
                    transferred += len(chunk)
                    on_bytes(transferred)
        except requests.RequestException as e:
            if _is_read_timeout(e):
                raise DownloadTimeout(variant.value, self._timeout_sec, transferred) from e
            raise NetworkError(
                f"Download of {variant} interrupted after {transferred} bytes: {e}",
                variant.value,
                transferred,
                e,
            ) from e
        finally:
            response.close()
        return transferred


def _is_read_timeout(error: requests.RequestException) -> bool:
    """A read timeout while streaming surfaces as ConnectionError(ReadTimeoutError)."""
    return isinstance(error, requests.Timeout) or any(
        isinstance(arg, ReadTimeoutError) for arg in error.args
    )


__all__ = [
    "DEFAULT_READ_TIMEOUT_SEC",
    "DEFAULT_TIMEOUT_SEC",
    "DownloadPipeline",
    "DownloadProgress",
    "DownloadStatus",
    "ProgressCallback",
]
