"""Tests for stt.lifecycle: single loaded model, variant switching, idle eviction, failures."""

from __future__ import annotations

import asyncio
from pathlib import Path

import numpy as np
import pytest

from fakes import FakeEngine, install_model, make_store
from sdk.abstractions import StageProgress
from sdk.errors import CorruptedFile, InferenceFailure, ModelLoadFailure, ModelNotDownloaded
from stt.catalog import ModelVariant
from stt.lifecycle import LifecycleState, ModelLifecycleManager

TINY = ModelVariant.TINY
BASE = ModelVariant.BASE
SAMPLES = np.zeros(1600, dtype=np.float32)


def _manager(tmp_path: Path, engine: FakeEngine, **kwargs) -> ModelLifecycleManager:
    store = make_store(tmp_path)
    for v in (TINY, BASE):
        install_model(store, v)
    return ModelLifecycleManager(store, engine, thread_count=2, **kwargs)


def test_ensure_loaded_loads_once_and_reuses_handle(tmp_path: Path) -> None:
    engine = FakeEngine()
    manager = _manager(tmp_path, engine)

    async def scenario():
        h1 = await manager.ensure_loaded(TINY)
        h2 = await manager.ensure_loaded(TINY)
        await manager.shutdown()
        return h1, h2

    h1, h2 = asyncio.run(scenario())
    assert engine.loaded == ["ggml-tiny.bin"]
    assert h1.generation == h2.generation
    assert h2.last_used_at >= h1.last_used_at


def test_switching_variant_unloads_previous_first(tmp_path: Path) -> None:
    engine = FakeEngine()
    manager = _manager(tmp_path, engine)

    async def scenario():
        await manager.ensure_loaded(TINY)
        handle = await manager.ensure_loaded(BASE)
        state = manager.state
        variant = manager.loaded_variant
        await manager.shutdown()
        return handle, state, variant

    handle, state, variant = asyncio.run(scenario())
    assert engine.loaded == ["ggml-tiny.bin", "ggml-base.bin"]
    assert len(engine.unloaded) == 2
    assert engine.unloaded[0]["path"].endswith("ggml-tiny.bin")
    assert handle.variant == BASE
    assert state == LifecycleState.LOADED
    assert variant == BASE


def test_concurrent_ensure_loaded_never_holds_two_models(tmp_path: Path) -> None:
    engine = FakeEngine()
    manager = _manager(tmp_path, engine)

    async def scenario():
        await asyncio.gather(
            manager.ensure_loaded(TINY),
            manager.ensure_loaded(BASE),
            manager.ensure_loaded(TINY),
        )
        await manager.shutdown()

    asyncio.run(scenario())
    # every load except the last was followed by an unload before the next load
    assert len(engine.loaded) - len(engine.unloaded) == 0
    assert engine.loaded == ["ggml-tiny.bin", "ggml-base.bin", "ggml-tiny.bin"]


def test_ensure_loaded_not_downloaded_raises(tmp_path: Path) -> None:
    engine = FakeEngine()
    manager = _manager(tmp_path, engine)

    with pytest.raises(ModelNotDownloaded) as exc:
        asyncio.run(manager.ensure_loaded(ModelVariant.LARGE))
    assert exc.value.variant == "large"
    assert engine.loaded == []
    assert manager.state == LifecycleState.UNLOADED


def test_ensure_loaded_corrupted_file_is_removed_and_reported(tmp_path: Path) -> None:
    engine = FakeEngine()
    manager = _manager(tmp_path, engine)
    path = install_model(manager._store, ModelVariant.SMALL, b"bitrot")

    with pytest.raises(CorruptedFile):
        asyncio.run(manager.ensure_loaded(ModelVariant.SMALL))
    assert not path.exists()
    assert engine.loaded == []


def test_load_failure_returns_to_unloaded(tmp_path: Path) -> None:
    engine = FakeEngine(fail_load=True)
    manager = _manager(tmp_path, engine)

    with pytest.raises(ModelLoadFailure) as exc:
        asyncio.run(manager.ensure_loaded(TINY))
    assert isinstance(exc.value.cause, RuntimeError)
    assert manager.state == LifecycleState.UNLOADED
    assert manager.handle is None


def test_infer_uses_configured_threads_and_reports_stages(tmp_path: Path) -> None:
    engine = FakeEngine(texts=["hi there"])
    manager = _manager(tmp_path, engine)
    stages: list[StageProgress] = []

    async def scenario() -> str:
        async with manager:
            handle = await manager.ensure_loaded(TINY)
            return await manager.infer(handle, SAMPLES, stages.append)

    assert asyncio.run(scenario()) == "hi there"
    assert engine.thread_counts == [2]
    assert [s.progress for s in stages] == [0.33, 1.0]
    assert manager.state == LifecycleState.UNLOADED


def test_infer_wraps_engine_error(tmp_path: Path) -> None:
    engine = FakeEngine(fail_infer=lambda call: True)
    manager = _manager(tmp_path, engine)

    async def scenario() -> None:
        async with manager:
            handle = await manager.ensure_loaded(TINY)
            await manager.infer(handle, SAMPLES)

    with pytest.raises(InferenceFailure) as exc:
        asyncio.run(scenario())
    assert exc.value.variant == "tiny"


def test_infer_with_stale_handle_fails(tmp_path: Path) -> None:
    engine = FakeEngine()
    manager = _manager(tmp_path, engine)

    async def scenario() -> None:
        async with manager:
            old = await manager.ensure_loaded(TINY)
            await manager.unload()
            await manager.infer(old, SAMPLES)

    with pytest.raises(InferenceFailure):
        asyncio.run(scenario())
    assert engine.infer_calls == 0


def test_idle_timer_unloads_after_timeout(tmp_path: Path) -> None:
    engine = FakeEngine()
    manager = _manager(tmp_path, engine, idle_timeout_sec=0.05)

    async def scenario() -> LifecycleState:
        await manager.ensure_loaded(TINY)
        manager.reset_idle_timer()
        await asyncio.sleep(0.3)
        return manager.state

    assert asyncio.run(scenario()) == LifecycleState.UNLOADED
    assert len(engine.unloaded) == 1


def test_reset_idle_timer_supersedes_pending_timer(tmp_path: Path) -> None:
    engine = FakeEngine()
    manager = _manager(tmp_path, engine, idle_timeout_sec=0.2)

    async def scenario() -> tuple[LifecycleState, LifecycleState]:
        await manager.ensure_loaded(TINY)
        await asyncio.sleep(0.12)
        manager.reset_idle_timer()
        await asyncio.sleep(0.12)
        mid = manager.state
        await asyncio.sleep(0.3)
        return mid, manager.state

    mid, end = asyncio.run(scenario())
    assert mid == LifecycleState.LOADED
    assert end == LifecycleState.UNLOADED
    assert len(engine.unloaded) == 1


def test_unload_is_idempotent(tmp_path: Path) -> None:
    engine = FakeEngine()
    manager = _manager(tmp_path, engine)

    async def scenario() -> None:
        await manager.ensure_loaded(TINY)
        await manager.unload()
        await manager.unload()

    asyncio.run(scenario())
    assert len(engine.unloaded) == 1
    assert manager.status()["state"] == "unloaded"
    assert manager.status()["idle_timer_pending"] is False


def test_unload_if_loaded_only_matches_loaded_variant(tmp_path: Path) -> None:
    engine = FakeEngine()
    manager = _manager(tmp_path, engine)

    async def scenario() -> tuple[bool, bool]:
        await manager.ensure_loaded(TINY)
        other = await manager.unload_if_loaded(BASE)
        same = await manager.unload_if_loaded(TINY)
        return other, same

    assert asyncio.run(scenario()) == (False, True)
    assert manager.loaded_variant is None


def test_status_reports_loaded_variant(tmp_path: Path) -> None:
    engine = FakeEngine()
    manager = _manager(tmp_path, engine, idle_timeout_sec=120)

    async def scenario() -> dict:
        await manager.ensure_loaded(BASE)
        status = manager.status()
        await manager.shutdown()
        return status

    status = asyncio.run(scenario())
    assert status["state"] == "loaded"
    assert status["variant"] == "base"
    assert status["idle_timeout_sec"] == 120
    assert status["idle_timer_pending"] is True
