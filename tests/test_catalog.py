"""Tests for stt.catalog: metadata lookup, ordering, file names, variant parsing."""

from __future__ import annotations

import re

import pytest

from stt.catalog import (
    ModelVariant,
    all_metadata,
    memory_requirement,
    metadata,
    model_filename,
    parse_variant,
)


def test_metadata_returns_entry_for_every_variant() -> None:
    for v in ModelVariant:
        meta = metadata(v)
        assert meta.variant == v
        assert meta.size_bytes > 0
        assert len(meta.checksum) == 64
        assert meta.source_url.startswith("https://")
        assert meta.accuracy_tier in ("good", "better", "best")
        assert meta.speed_tier in ("fast", "medium", "slow")


def test_metadata_accepts_string_value() -> None:
    assert metadata("tiny").variant == ModelVariant.TINY


def test_metadata_unknown_variant_raises_key_error() -> None:
    with pytest.raises(KeyError):
        metadata("huge")


def test_all_metadata_ordered_smallest_first() -> None:
    entries = all_metadata()
    assert [m.variant for m in entries] == list(ModelVariant)
    sizes = [m.size_bytes for m in entries]
    assert sizes == sorted(sizes)


def test_tiny_and_base_declared_sizes() -> None:
    assert metadata(ModelVariant.TINY).size_bytes == 77_691_713
    assert metadata(ModelVariant.BASE).size_bytes == 147_951_465


def test_checksums_are_distinct_sha256_digests() -> None:
    checksums = [m.checksum for m in all_metadata()]
    for checksum in checksums:
        assert re.fullmatch(r"[0-9a-f]{64}", checksum), checksum
    assert len({c[:16] for c in checksums}) == len(checksums)
    assert len({c[-24:] for c in checksums}) == len(checksums)


def test_tiny_checksum_is_pinned_digest() -> None:
    assert metadata(ModelVariant.TINY).checksum == (
        "be07e048e1e599ad46341c8d2a135645097a538221678b7acdd1b1919c6e1b21"
    )


def test_model_filename_matches_upstream_names() -> None:
    assert model_filename(ModelVariant.TINY) == "ggml-tiny.bin"
    assert model_filename(ModelVariant.SMALL) == "ggml-small.bin"
    assert model_filename(ModelVariant.LARGE) == "ggml-large-v3.bin"


def test_source_url_ends_with_file_name() -> None:
    for v in ModelVariant:
        assert metadata(v).source_url.endswith("/" + model_filename(v))


def test_memory_requirement_grows_with_size() -> None:
    reqs = [memory_requirement(v) for v in ModelVariant]
    assert reqs == sorted(reqs)
    assert memory_requirement(ModelVariant.TINY) == 500 * 1024 * 1024


def test_parse_variant_case_insensitive_and_trimmed() -> None:
    assert parse_variant(" Small ") == ModelVariant.SMALL
    assert parse_variant("LARGE") == ModelVariant.LARGE
    assert parse_variant(ModelVariant.BASE) == ModelVariant.BASE


def test_parse_variant_unknown_lists_choices() -> None:
    with pytest.raises(ValueError) as exc:
        parse_variant("xl")
    assert "tiny" in str(exc.value)
    assert "large" in str(exc.value)


def test_variant_str_is_value() -> None:
    assert str(ModelVariant.MEDIUM) == "medium"
