"""
Recommends a model variant (or the remote service) from available memory and disk.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable

import psutil

from stt.catalog import ModelMetadata, ModelVariant, all_metadata, memory_requirement
from stt.io_utils import ensure_dir

logger = logging.getLogger(__name__)

_GIB = 1024 * 1024 * 1024

CRITICAL_MEMORY_BYTES = 2 * _GIB
LOW_MEMORY_BYTES = 4 * _GIB

# Best accuracy/speed trade-off first.
BALANCED_PREFERENCE: tuple[ModelVariant, ...] = (
    ModelVariant.SMALL,
    ModelVariant.BASE,
    ModelVariant.MEDIUM,
    ModelVariant.TINY,
    ModelVariant.LARGE,
)


class MemoryStatus(str, Enum):
    SUFFICIENT = "sufficient"
    LOW = "low"
    CRITICAL = "critical"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Recommendation:
    """variant is None when use_remote is True."""

    variant: ModelVariant | None
    use_remote: bool
    reason: str
    memory_status: MemoryStatus
    available_disk_bytes: int
    alternatives: list[ModelVariant] = field(default_factory=list)
    warning: str | None = None

    @property
    def can_use_local(self) -> bool:
        return not self.use_remote


@dataclass(frozen=True)
class SystemResources:
    available_memory_bytes: int | None
    available_disk_bytes: int


def memory_status(available_memory_bytes: int) -> MemoryStatus:
    if available_memory_bytes < CRITICAL_MEMORY_BYTES:
        return MemoryStatus.CRITICAL
    if available_memory_bytes < LOW_MEMORY_BYTES:
        return MemoryStatus.LOW
    return MemoryStatus.SUFFICIENT


def memory_warning(status: MemoryStatus, available_memory_bytes: int) -> str | None:
    """User-facing warning for low/critical memory; None when memory is sufficient."""
    if status == MemoryStatus.CRITICAL:
        return (
            f"Critical: only {format_gb(available_memory_bytes)} of memory available. "
            "Local transcription may fail; consider remote transcription or closing other applications."
        )
    if status == MemoryStatus.LOW:
        return (
            f"Warning: only {format_gb(available_memory_bytes)} of memory available. "
            "Local transcription may be slow; consider a smaller model or remote transcription."
        )
    return None


def format_gb(num_bytes: int) -> str:
    return f"{num_bytes / _GIB:.1f} GB"


def probe_system(models_dir: Path | str) -> SystemResources:
    """Available memory via psutil (None if it cannot be read) and free disk under models_dir."""
    try:
        available_memory: int | None = int(psutil.virtual_memory().available)
    except (OSError, RuntimeError) as e:
        logger.warning("Could not read system memory: %s", e)
        available_memory = None
    path = Path(models_dir)
    ensure_dir(path)
    free = shutil.disk_usage(path).free
    logger.debug(
        "System resources: memory=%s disk=%s",
        format_gb(available_memory) if available_memory is not None else "unknown",
        format_gb(free),
    )
    return SystemResources(available_memory_bytes=available_memory, available_disk_bytes=free)


class ResourceAdvisor:
    """Pure decision logic over the catalog; the catalog source is injectable for tests."""

    def __init__(
        self,
        catalog: Callable[[], list[ModelMetadata]] = all_metadata,
        memory_requirements: Callable[[ModelVariant], int] = memory_requirement,
    ) -> None:
        self._catalog = catalog
        self._memory_requirement = memory_requirements

    def _fits_disk(self, available_disk_bytes: int) -> list[ModelVariant]:
        """Variants whose file fits on disk, smallest first."""
        by_size = sorted(self._catalog(), key=lambda m: list(ModelVariant).index(m.variant))
        return [m.variant for m in by_size if m.size_bytes <= available_disk_bytes]

    def suitable_variants(
        self, available_memory_bytes: int, available_disk_bytes: int
    ) -> list[ModelVariant]:
        """Variants that fit both in memory and on disk, smallest first."""
        return [
            v
            for v in self._fits_disk(available_disk_bytes)
            if self._memory_requirement(v) <= available_memory_bytes
        ]

    @staticmethod
    def balanced_variant(suitable: list[ModelVariant]) -> ModelVariant:
        for preferred in BALANCED_PREFERENCE:
            if preferred in suitable:
                return preferred
        return suitable[0]

    def recommend(
        self, available_memory_bytes: int, available_disk_bytes: int
    ) -> Recommendation:
        status = memory_status(available_memory_bytes)
        mem = format_gb(available_memory_bytes)
        warning = memory_warning(status, available_memory_bytes)

        if status == MemoryStatus.CRITICAL:
            return Recommendation(
                variant=None,
                use_remote=True,
                reason=(
                    f"Critical memory situation ({mem} available). "
                    "Remote transcription is recommended to avoid system instability."
                ),
                memory_status=status,
                available_disk_bytes=available_disk_bytes,
                warning=warning,
            )

        suitable = self.suitable_variants(available_memory_bytes, available_disk_bytes)
        if not suitable:
            if status == MemoryStatus.LOW:
                reason = (
                    f"Low memory ({mem} available) and insufficient disk space. "
                    "Remote transcription is recommended."
                )
            else:
                reason = (
                    f"Insufficient disk space ({format_gb(available_disk_bytes)} available). "
                    "Remote transcription is recommended."
                )
            return Recommendation(
                variant=None,
                use_remote=True,
                reason=reason,
                memory_status=status,
                available_disk_bytes=available_disk_bytes,
                warning=warning,
            )

        if status == MemoryStatus.LOW:
            chosen = suitable[0]
            return Recommendation(
                variant=chosen,
                use_remote=False,
                reason=(
                    f'Low memory ({mem} available). The "{chosen}" model is recommended '
                    "for best performance with limited resources."
                ),
                memory_status=status,
                available_disk_bytes=available_disk_bytes,
                warning=warning,
                alternatives=suitable[1:],
            )

        chosen = self.balanced_variant(suitable)
        return Recommendation(
            variant=chosen,
            use_remote=False,
            reason=(
                f'System resources are sufficient. The "{chosen}" model offers a good '
                "balance of accuracy and performance."
            ),
            memory_status=status,
            available_disk_bytes=available_disk_bytes,
            warning=warning,
            alternatives=[v for v in suitable if v != chosen],
        )

    def recommend_for_disk(self, available_disk_bytes: int) -> Recommendation:
        """Recommendation when memory cannot be read; memory is assumed sufficient."""
        suitable = self._fits_disk(available_disk_bytes)
        if not suitable:
            return Recommendation(
                variant=None,
                use_remote=True,
                reason=(
                    f"Insufficient disk space ({format_gb(available_disk_bytes)} available). "
                    "Remote transcription is recommended."
                ),
                memory_status=MemoryStatus.SUFFICIENT,
                available_disk_bytes=available_disk_bytes,
            )
        chosen = self.balanced_variant(suitable)
        return Recommendation(
            variant=chosen,
            use_remote=False,
            reason=f'The "{chosen}" model is recommended based on available disk space.',
            memory_status=MemoryStatus.SUFFICIENT,
            available_disk_bytes=available_disk_bytes,
            alternatives=[v for v in suitable if v != chosen],
        )

    def recommend_for_system(self, resources: SystemResources) -> Recommendation:
        if resources.available_memory_bytes is None:
            return self.recommend_for_disk(resources.available_disk_bytes)
        return self.recommend(resources.available_memory_bytes, resources.available_disk_bytes)

    def is_variant_recommended(
        self, variant: ModelVariant, available_memory_bytes: int, available_disk_bytes: int
    ) -> bool:
        rec = self.recommend(available_memory_bytes, available_disk_bytes)
        if rec.use_remote:
            return False
        return rec.variant == variant or variant in rec.alternatives


__all__ = [
    "BALANCED_PREFERENCE",
    "CRITICAL_MEMORY_BYTES",
    "LOW_MEMORY_BYTES",
    "MemoryStatus",
    "Recommendation",
    "ResourceAdvisor",
    "SystemResources",
    "format_gb",
    "memory_status",
    "memory_warning",
    "probe_system",
]
