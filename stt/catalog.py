"""
Static registry of whisper.cpp (GGML) model variants: size, checksum, source URL, tiers.
Pure lookup; loaded once at import and never mutated.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

_MB = 1024 * 1024
_GB = 1024 * _MB

# Sizes and checksums are the Git LFS size and sha-256 of each file in this repository.
_HF_BASE = "https://huggingface.co/ggerganov/whisper.cpp/resolve/main"


class ModelVariant(str, Enum):
    """Model sizes, smallest first. The value is the name used in config and on disk."""

    TINY = "tiny"
    BASE = "base"
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ModelMetadata:
    variant: ModelVariant
    size_bytes: int
    checksum: str  # sha-256 hex
    source_url: str
    accuracy_tier: str  # good | better | best
    speed_tier: str  # fast | medium | slow


_CATALOG: dict[ModelVariant, ModelMetadata] = {
    ModelVariant.TINY: ModelMetadata(
        variant=ModelVariant.TINY,
        size_bytes=77_691_713,
        checksum="be07e048e1e599ad46341c8d2a135645097a538221678b7acdd1b1919c6e1b21",
        source_url=f"{_HF_BASE}/ggml-tiny.bin",
        accuracy_tier="good",
        speed_tier="fast",
    ),
    ModelVariant.BASE: ModelMetadata(
        variant=ModelVariant.BASE,
        size_bytes=147_951_465,
        checksum="60ed5bc3dd14eea856493d334349b405782ddcaf0028d4b5df4088345fba2efe",
        source_url=f"{_HF_BASE}/ggml-base.bin",
        accuracy_tier="better",
        speed_tier="fast",
    ),
    ModelVariant.SMALL: ModelMetadata(
        variant=ModelVariant.SMALL,
        size_bytes=487_601_967,
        checksum="1be3a9b2063867b937e64e2ec7483364a79917e157fa98c5d94b5c1fffea987b",
        source_url=f"{_HF_BASE}/ggml-small.bin",
        accuracy_tier="better",
        speed_tier="medium",
    ),
    ModelVariant.MEDIUM: ModelMetadata(
        variant=ModelVariant.MEDIUM,
        size_bytes=1_533_763_059,
        checksum="6c14d5adee5f86394037b4e4e8b59f1673b6cee10e3cf0b11bbdbee79c156208",
        source_url=f"{_HF_BASE}/ggml-medium.bin",
        accuracy_tier="best",
        speed_tier="slow",
    ),
    ModelVariant.LARGE: ModelMetadata(
        variant=ModelVariant.LARGE,
        size_bytes=3_095_033_483,
        checksum="64d182b440b98d5203c4f9bd541544d84c605196c4f7b845dfa11fb23594d1e2",
        source_url=f"{_HF_BASE}/ggml-large-v3.bin",
        accuracy_tier="best",
        speed_tier="slow",
    ),
}

_FILENAMES: dict[ModelVariant, str] = {
    ModelVariant.TINY: "ggml-tiny.bin",
    ModelVariant.BASE: "ggml-base.bin",
    ModelVariant.SMALL: "ggml-small.bin",
    ModelVariant.MEDIUM: "ggml-medium.bin",
    ModelVariant.LARGE: "ggml-large-v3.bin",
}

# Approximate resident memory while loaded (model + inference overhead).
_MEMORY_REQUIREMENTS: dict[ModelVariant, int] = {
    ModelVariant.TINY: 500 * _MB,
    ModelVariant.BASE: 800 * _MB,
    ModelVariant.SMALL: int(1.5 * _GB),
    ModelVariant.MEDIUM: 3 * _GB,
    ModelVariant.LARGE: 5 * _GB,
}


def metadata(variant: ModelVariant) -> ModelMetadata:
    """Return catalog metadata for variant. KeyError for anything outside the enum."""
    try:
        return _CATALOG[ModelVariant(variant)]
    except ValueError:
        raise KeyError(variant) from None


def all_metadata() -> list[ModelMetadata]:
    """All variants, smallest first."""
    return [_CATALOG[v] for v in ModelVariant]


def memory_requirement(variant: ModelVariant) -> int:
    return _MEMORY_REQUIREMENTS[ModelVariant(variant)]


def model_filename(variant: ModelVariant) -> str:
    """File name under the models directory; same as the upstream whisper.cpp name."""
    return _FILENAMES[ModelVariant(variant)]


def parse_variant(value: str | ModelVariant) -> ModelVariant:
    """
    Parse a variant name from config or CLI (case-insensitive, surrounding whitespace ignored).
    Raises ValueError for unknown names.
    """
    if isinstance(value, ModelVariant):
        return value
    name = (value or "").strip().lower()
    try:
        return ModelVariant(name)
    except ValueError:
        choices = ", ".join(v.value for v in ModelVariant)
        raise ValueError(f"Unknown model variant {value!r} (choose from: {choices})") from None


__all__ = [
    "ModelMetadata",
    "ModelVariant",
    "all_metadata",
    "memory_requirement",
    "metadata",
    "model_filename",
    "parse_variant",
]
