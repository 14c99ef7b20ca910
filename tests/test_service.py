"""Tests for app.service: TranscriptionCore surface and create_core wiring."""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import patch

from app.service import TranscriptionCore, create_core
from config import AppConfig
from fakes import FakeEngine, FakeRemote, install_model, make_store, speech_clip
from remote.speech_client import RemoteSTTClient
from sdk import NoOpRemoteTranscriber, Provider
from stt.catalog import ModelVariant
from stt.download import DownloadPipeline
from stt.lifecycle import LifecycleState, ModelLifecycleManager
from stt.request_queue import TranscriptionQueue
from stt.router import TranscriptionRouter, TranscriptionSettings

TINY = ModelVariant.TINY
GB = 1024**3


def _core(tmp_path: Path, engine: FakeEngine | None = None, remote: FakeRemote | None = None):
    engine = engine or FakeEngine(texts=["hello there"])
    remote = remote or FakeRemote()
    settings = TranscriptionSettings(method=Provider.LOCAL, local_variant=TINY)
    store = make_store(tmp_path)
    lifecycle = ModelLifecycleManager(store, engine, thread_count=1, idle_timeout_sec=60)
    queue = TranscriptionQueue(lifecycle, default_variant=TINY)
    router = TranscriptionRouter(lambda: settings, queue, remote, store=store)
    core = TranscriptionCore(
        lambda: settings, store, DownloadPipeline(store), lifecycle, queue, router, remote=remote
    )
    return core, store, engine


def test_shutdown_closes_download_session_and_remote(tmp_path: Path) -> None:
    remote = FakeRemote()
    with patch("stt.download.requests.Session") as session_cls:
        core, _, _ = _core(tmp_path, remote=remote)
    asyncio.run(core.shutdown())
    session_cls.return_value.close.assert_called_once()
    assert remote.closed is True


def test_transcribe_local_and_status(tmp_path: Path) -> None:
    core, store, engine = _core(tmp_path)
    install_model(store, TINY)

    async def scenario():
        async with core:
            result = await core.transcribe(speech_clip())
            return result, core.status(), core.queue_length(), core.is_processing()

    result, status, length, processing = asyncio.run(scenario())
    assert result.text == "hello there"
    assert result.provider_used == Provider.LOCAL
    assert status["router"]["method"] == "local"
    assert status["lifecycle"]["variant"] == "tiny"
    assert length == 0
    assert processing is False
    assert core.lifecycle.state == LifecycleState.UNLOADED


def test_delete_model_unloads_loaded_variant_first(tmp_path: Path) -> None:
    core, store, engine = _core(tmp_path)
    install_model(store, TINY)

    async def scenario():
        await core.lifecycle.ensure_loaded(TINY)
        removed = await core.delete_model(TINY)
        state = core.lifecycle.state
        downloaded = await core.is_model_downloaded(TINY)
        await core.shutdown()
        return removed, state, downloaded

    removed, state, downloaded = asyncio.run(scenario())
    assert removed is True
    assert state == LifecycleState.UNLOADED
    assert downloaded is False
    assert len(engine.unloaded) == 1


def test_delete_other_variant_keeps_loaded_model(tmp_path: Path) -> None:
    core, store, engine = _core(tmp_path)
    install_model(store, TINY)
    install_model(store, ModelVariant.BASE)

    async def scenario():
        await core.lifecycle.ensure_loaded(TINY)
        await core.delete_model(ModelVariant.BASE)
        variant = core.lifecycle.loaded_variant
        await core.shutdown()
        return variant

    assert asyncio.run(scenario()) == TINY
    assert len(engine.unloaded) == 1


def test_list_models_reports_state(tmp_path: Path) -> None:
    core, store, _ = _core(tmp_path)
    install_model(store, TINY)
    install_model(store, ModelVariant.BASE, data=b"truncated")

    async def scenario():
        await core.lifecycle.ensure_loaded(TINY)
        models = await core.list_models()
        await core.shutdown()
        return {m.variant: m for m in models}

    models = asyncio.run(scenario())
    assert list(models) == list(ModelVariant)
    assert models[TINY].downloaded and models[TINY].loaded
    assert models[ModelVariant.BASE].corrupted and not models[ModelVariant.BASE].downloaded
    assert not models[ModelVariant.SMALL].downloaded and not models[ModelVariant.SMALL].corrupted
    assert models[ModelVariant.LARGE].size_bytes > models[TINY].size_bytes


def test_validate_all_on_startup_removes_corrupted(tmp_path: Path) -> None:
    core, store, _ = _core(tmp_path)
    install_model(store, TINY)
    bad = install_model(store, ModelVariant.BASE, data=b"junk")

    results = asyncio.run(core.validate_all_on_startup())
    by_variant = {r.variant: r for r in results}
    assert by_variant[TINY].valid
    assert by_variant[ModelVariant.BASE].removed
    assert not bad.exists()


def test_recommend_delegates_to_advisor(tmp_path: Path) -> None:
    core, _, _ = _core(tmp_path)
    rec = core.recommend(16 * GB, 100 * GB)
    assert rec.variant == ModelVariant.SMALL
    assert rec.can_use_local


def test_subscribe_fallback_receives_events(tmp_path: Path) -> None:
    core, _, _ = _core(tmp_path)
    events = []
    core.subscribe_fallback(events.append)

    async def scenario():
        async with core:
            return await core.transcribe(speech_clip())

    result = asyncio.run(scenario())
    assert result.provider_used == Provider.REMOTE
    assert len(events) == 1


def _config(tmp_path: Path, **remote) -> AppConfig:
    return AppConfig(
        {
            "transcription": {
                "method": "local",
                "local_variant": "tiny",
                "storage_directory": str(tmp_path / "models"),
            },
            "lifecycle": {"idle_timeout_sec": 30, "thread_count": 2},
            "remote": remote,
        }
    )


def test_create_core_wires_config(tmp_path: Path) -> None:
    core = create_core(_config(tmp_path), engine=FakeEngine())
    assert core.store.models_dir == tmp_path / "models"
    assert core.settings.local_variant == TINY
    assert core.lifecycle.idle_timeout_sec == 30
    assert core.lifecycle_status()["thread_count"] == 2
    assert isinstance(core.router._remote, NoOpRemoteTranscriber)


def test_create_core_builds_remote_client_when_configured(tmp_path: Path) -> None:
    core = create_core(
        _config(tmp_path, base_url="http://stt.local", max_retries=2), engine=FakeEngine()
    )
    assert isinstance(core.router._remote, RemoteSTTClient)
    assert core.remote is core.router._remote
    with patch.object(core.remote._client, "close") as close:
        asyncio.run(core.shutdown())
    close.assert_called_once()
