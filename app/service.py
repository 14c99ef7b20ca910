"""
TranscriptionCore: the consumer-facing surface over store, downloads, lifecycle, queue,
router and advisor. create_core() wires them from AppConfig.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import requests

from config import AppConfig
from sdk import (
    AudioClip,
    InferenceEngine,
    NoOpRemoteTranscriber,
    RemoteTranscriber,
    TranscriptionResult,
)
from stt.advisor import Recommendation, ResourceAdvisor, probe_system
from stt.catalog import ModelVariant, all_metadata
from stt.download import DownloadPipeline, ProgressCallback
from stt.lifecycle import ModelLifecycleManager
from stt.request_queue import TranscriptionQueue
from stt.router import (
    FallbackListener,
    SettingsProvider,
    TranscriptionRouter,
    TranscriptionSettings,
)
from stt.store import ModelStore, StartupValidation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelInfo:
    """Catalog entry joined with its on-disk state."""

    variant: ModelVariant
    size_bytes: int
    accuracy_tier: str
    speed_tier: str
    downloaded: bool
    corrupted: bool
    loaded: bool


class TranscriptionCore:
    """
    Owns one instance of each service. Deleting a model unloads it first if it is loaded.
    Use as an async context manager, or call shutdown() when done.
    """

    def __init__(
        self,
        settings_provider: SettingsProvider,
        store: ModelStore,
        downloads: DownloadPipeline,
        lifecycle: ModelLifecycleManager,
        queue: TranscriptionQueue,
        router: TranscriptionRouter,
        advisor: ResourceAdvisor | None = None,
        remote: RemoteTranscriber | None = None,
    ) -> None:
        self._settings_provider = settings_provider
        self.store = store
        self.downloads = downloads
        self.lifecycle = lifecycle
        self.queue = queue
        self.router = router
        self.advisor = advisor or ResourceAdvisor()
        self.remote = remote
        store.set_before_delete(self._release_before_delete)

    async def _release_before_delete(self, variant: ModelVariant) -> None:
        if await self.lifecycle.unload_if_loaded(variant):
            logger.info("Unloaded %s before deleting its file", variant)

    @property
    def settings(self) -> TranscriptionSettings:
        return self._settings_provider()

    async def transcribe(self, audio: AudioClip) -> TranscriptionResult:
        return await self.router.transcribe(audio)

    async def download_model(
        self, variant: ModelVariant, on_progress: ProgressCallback | None = None
    ) -> Path:
        return await self.downloads.download(variant, on_progress)

    async def delete_model(self, variant: ModelVariant) -> bool:
        return await self.store.delete_model(variant)

    async def is_model_downloaded(self, variant: ModelVariant) -> bool:
        return await self.store.is_downloaded(variant)

    async def is_model_corrupted(self, variant: ModelVariant) -> bool:
        return await self.store.is_corrupted(variant)

    async def validate_all_on_startup(self) -> list[StartupValidation]:
        return await self.store.validate_all_on_startup()

    async def list_models(self) -> list[ModelInfo]:
        out: list[ModelInfo] = []
        loaded = self.lifecycle.loaded_variant
        for meta in all_metadata():
            try:
                state = await self.store.file_state(meta.variant)
                downloaded = state.exists and state.checksum_valid
                corrupted = state.exists and not state.checksum_valid
            except OSError as e:
                logger.warning("Could not check %s: %s", meta.variant, e)
                downloaded = corrupted = False
            out.append(
                ModelInfo(
                    variant=meta.variant,
                    size_bytes=meta.size_bytes,
                    accuracy_tier=meta.accuracy_tier,
                    speed_tier=meta.speed_tier,
                    downloaded=downloaded,
                    corrupted=corrupted,
                    loaded=loaded == meta.variant,
                )
            )
        return out

    def recommend(self, available_memory_bytes: int, available_disk_bytes: int) -> Recommendation:
        return self.advisor.recommend(available_memory_bytes, available_disk_bytes)

    async def recommend_for_system(self) -> Recommendation:
        """Probe memory and free disk under the models directory, then recommend."""
        resources = await asyncio.to_thread(probe_system, self.store.models_dir)
        return self.advisor.recommend_for_system(resources)

    def queue_length(self) -> int:
        return self.queue.queue_length()

    def is_processing(self) -> bool:
        return self.queue.is_processing()

    def lifecycle_status(self) -> dict[str, Any]:
        return self.lifecycle.status()

    def status(self) -> dict[str, Any]:
        return {"router": self.router.status(), "lifecycle": self.lifecycle.status()}

    def subscribe_fallback(self, listener: FallbackListener) -> Callable[[], None]:
        return self.router.subscribe(listener)

    async def shutdown(self) -> None:
        await self.queue.close()
        await self.lifecycle.shutdown()
        self.downloads.close()
        if self.remote is not None:
            self.remote.close()
        logger.info("Transcription core shut down")

    async def __aenter__(self) -> TranscriptionCore:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()


def _default_engine() -> InferenceEngine:
    from stt.whisper_engine import WhisperCppEngine

    return WhisperCppEngine()


def _default_remote(remote_cfg: dict) -> RemoteTranscriber:
    if not remote_cfg.get("base_url"):
        logger.info("No remote transcription service configured")
        return NoOpRemoteTranscriber()
    from remote.client import ApiClient
    from remote.speech_client import RemoteSTTClient

    client = ApiClient(
        remote_cfg["base_url"],
        api_key=remote_cfg.get("api_key"),
        timeout_sec=remote_cfg["timeout_sec"],
    )
    return RemoteSTTClient(
        client,
        max_retries=remote_cfg["max_retries"],
        retry_base_delay_sec=remote_cfg["retry_base_delay_sec"],
        language=remote_cfg.get("language"),
    )


def create_core(
    config: AppConfig,
    engine: InferenceEngine | None = None,
    remote: RemoteTranscriber | None = None,
    session: requests.Session | None = None,
    settings_provider: SettingsProvider | None = None,
) -> TranscriptionCore:
    """
    Build a TranscriptionCore from config. engine/remote/session/settings_provider override
    the config-derived collaborators (tests, embedding applications).
    """
    settings_provider = settings_provider or config.get_transcription_settings
    settings = settings_provider()
    download_cfg = config.get_download_config()
    lifecycle_cfg = config.get_lifecycle_config()

    store = ModelStore(Path(settings.storage_directory))
    downloads = DownloadPipeline(
        store,
        session=session,
        timeout_sec=download_cfg["timeout_sec"],
        connect_timeout_sec=download_cfg["connect_timeout_sec"],
        read_timeout_sec=download_cfg["read_timeout_sec"],
        chunk_size=download_cfg["chunk_size"],
        check_disk_space=download_cfg["check_disk_space"],
    )
    lifecycle = ModelLifecycleManager(
        store,
        engine or _default_engine(),
        thread_count=lifecycle_cfg["thread_count"],
        idle_timeout_sec=lifecycle_cfg["idle_timeout_sec"],
    )
    queue = TranscriptionQueue(lifecycle, default_variant=settings.local_variant)
    remote = remote or _default_remote(config.get_remote_config())
    router = TranscriptionRouter(settings_provider, queue, remote, store=store)
    logger.info(
        "Transcription core ready: method=%s variant=%s fallback=%s models=%s",
        settings.method,
        settings.local_variant,
        settings.enable_fallback,
        store.models_dir,
    )
    return TranscriptionCore(
        settings_provider, store, downloads, lifecycle, queue, router, ResourceAdvisor(), remote
    )


__all__ = ["ModelInfo", "TranscriptionCore", "create_core"]
