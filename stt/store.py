"""
Filesystem-backed record of which model variants are present and valid.
State is derived on every call (exists + SHA-256); nothing is cached because
files can change on disk outside this process.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable

from stt.catalog import ModelMetadata, ModelVariant, metadata, model_filename
from stt.io_utils import checksums_match, ensure_dir, remove_file, sha256_file

logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".tmp"


@dataclass(frozen=True)
class ModelFileState:
    variant: ModelVariant
    path: Path
    exists: bool
    checksum_valid: bool


@dataclass(frozen=True)
class StartupValidation:
    """Per-variant outcome of validate_all_on_startup. error is set when the check itself failed."""

    variant: ModelVariant
    existed: bool
    valid: bool
    removed: bool
    error: str | None = None


class ModelStore:
    """
    One file per variant in models_dir, named like the upstream whisper.cpp file
    (ggml-<variant>.bin). A file is "downloaded" only if it exists and its
    checksum matches the catalog; one that exists but mismatches is corrupted.
    """

    def __init__(
        self,
        models_dir: Path | str,
        before_delete: Callable[[ModelVariant], Awaitable[None]] | None = None,
        catalog: Callable[[ModelVariant], ModelMetadata] | None = None,
    ) -> None:
        self.models_dir = Path(models_dir)
        self._before_delete = before_delete
        self._catalog = catalog or metadata

    def set_before_delete(
        self, hook: Callable[[ModelVariant], Awaitable[None]] | None
    ) -> None:
        """Register a coroutine run before a model file is deleted (e.g. unload if loaded)."""
        self._before_delete = hook

    def metadata(self, variant: ModelVariant) -> ModelMetadata:
        return self._catalog(ModelVariant(variant))

    def model_path(self, variant: ModelVariant) -> Path:
        return self.models_dir / model_filename(variant)

    def temp_path(self, variant: ModelVariant) -> Path:
        path = self.model_path(variant)
        return path.with_name(path.name + TEMP_SUFFIX)

    def _check(self, variant: ModelVariant) -> ModelFileState:
        path = self.model_path(variant)
        if not path.is_file():
            return ModelFileState(variant, path, exists=False, checksum_valid=False)
        actual = sha256_file(path)
        valid = checksums_match(self.metadata(variant).checksum, actual)
        if not valid:
            logger.debug("Checksum mismatch for %s: %s", variant, actual)
        return ModelFileState(variant, path, exists=True, checksum_valid=valid)

    async def file_state(self, variant: ModelVariant) -> ModelFileState:
        """Scan and hash the variant's file off the event loop."""
        return await asyncio.to_thread(self._check, ModelVariant(variant))

    async def is_downloaded(self, variant: ModelVariant) -> bool:
        try:
            state = await self.file_state(variant)
        except OSError as e:
            logger.warning("Could not validate %s: %s", variant, e)
            return False
        return state.exists and state.checksum_valid

    async def is_corrupted(self, variant: ModelVariant) -> bool:
        try:
            state = await self.file_state(variant)
        except OSError as e:
            logger.warning("Could not validate %s: %s", variant, e)
            return False
        return state.exists and not state.checksum_valid

    async def delete_model(self, variant: ModelVariant) -> bool:
        """
        Remove the variant's file; returns True if a file was removed.
        Runs the before_delete hook first so a loaded model is released before its file goes.
        """
        variant = ModelVariant(variant)
        if self._before_delete is not None:
            await self._before_delete(variant)
        removed = await asyncio.to_thread(remove_file, self.model_path(variant))
        if removed:
            logger.info("Deleted model %s", variant)
        return removed

    async def validate_all_on_startup(self) -> list[StartupValidation]:
        """
        Check every catalog variant; delete files that exist but fail validation.
        A failure on one variant is reported in its entry and the scan continues.
        """
        results: list[StartupValidation] = []
        for variant in ModelVariant:
            results.append(await self._validate_one(variant))
        removed = [r.variant.value for r in results if r.removed]
        valid = [r.variant.value for r in results if r.valid]
        logger.info(
            "Startup model validation: valid=%s removed=%s",
            ",".join(valid) or "-",
            ",".join(removed) or "-",
        )
        return results

    async def _validate_one(self, variant: ModelVariant) -> StartupValidation:
        try:
            await asyncio.to_thread(remove_file, self.temp_path(variant))
        except OSError as e:
            logger.warning("Could not remove stale temp file for %s: %s", variant, e)
        existed = False
        try:
            state = await self.file_state(variant)
            existed = state.exists
            if not state.exists:
                return StartupValidation(variant, existed=False, valid=False, removed=False)
            if state.checksum_valid:
                return StartupValidation(variant, existed=True, valid=True, removed=False)
            logger.warning("Model %s is corrupted, removing", variant)
            await self.delete_model(variant)
            return StartupValidation(variant, existed=True, valid=False, removed=True)
        except OSError as e:
            logger.error("Error validating model %s: %s", variant, e)
            return StartupValidation(
                variant, existed=existed, valid=False, removed=False, error=str(e)
            )

    def available_disk_space(self) -> int:
        """Free bytes on the filesystem holding models_dir (created if missing)."""
        ensure_dir(self.models_dir)
        return shutil.disk_usage(self.models_dir).free

    def can_model_fit(self, variant: ModelVariant) -> bool:
        return self.available_disk_space() >= self.metadata(variant).size_bytes


__all__ = ["ModelFileState", "ModelStore", "StartupValidation", "TEMP_SUFFIX"]
