"""
Normalized config section access for localscribe.
Provides get_section() and section-specific getters (transcription, download, lifecycle, remote)
so config normalization lives in one place; the app and the CLI use these instead of duplicating logic.
"""

from __future__ import annotations

import os
from typing import Any, Callable

VALID_METHODS = ("local", "remote")
VALID_VARIANTS = ("tiny", "base", "small", "medium", "large")


def _clamp_int(value: Any, low: int, high: int, default: int) -> int:
    """Parse value to int and clamp to [low, high]; return default if value is None or invalid."""
    if value is None:
        return default
    try:
        return max(low, min(high, int(value)))
    except (TypeError, ValueError):
        return default


def _parse_float(value: Any, low: float, high: float, default: float) -> float:
    """Parse value to float and clamp to [low, high]; return default if value is None or parsing fails."""
    if value is None:
        return default
    try:
        return max(low, min(high, float(value)))
    except (TypeError, ValueError):
        return default


def _parse_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        s = value.strip().lower()
        if s in ("1", "true", "yes", "on"):
            return True
        if s in ("0", "false", "no", "off"):
            return False
        return default
    return bool(value)


def _choice(value: Any, choices: tuple[str, ...], default: str) -> str:
    s = str(value or "").strip().lower()
    return s if s in choices else default


def get_section(
    raw_config: dict,
    section: str,
    defaults: dict[str, Any],
    validators: dict[str, Callable[[Any], Any]] | None = None,
) -> dict[str, Any]:
    """
    Return a normalized config section by merging raw section with defaults and applying validators.

    Args:
        raw_config: Full merged config dict (e.g. from load_config()).
        section: Top-level key (e.g. "download", "remote").
        defaults: Default values for the section; merged with raw_config.get(section, {}).
        validators: Optional dict mapping section key -> callable(value) -> value (e.g. clamp int).

    Returns:
        New dict with all keys from defaults, overridden by raw section, then validated.
        Keys not present in defaults are dropped.
    """
    validators = validators or {}
    raw_section = dict(raw_config.get(section) or {})
    out = dict(defaults)
    for k, v in raw_section.items():
        if k in defaults:
            out[k] = v
    for k, validator in validators.items():
        if k in out:
            try:
                out[k] = validator(out[k])
            except (TypeError, ValueError):
                out[k] = defaults.get(k)
    return out


def get_transcription_section(raw_config: dict) -> dict[str, Any]:
    """
    Return normalized transcription settings: method, local_variant, enable_fallback, storage_directory.
    Unknown method/variant values fall back to the defaults (remote, small).
    """
    t = raw_config.get("transcription") or {}
    storage = str(t.get("storage_directory") or "").strip() or "data/models"
    return {
        "method": _choice(t.get("method"), VALID_METHODS, "remote"),
        "local_variant": _choice(t.get("local_variant"), VALID_VARIANTS, "small"),
        "enable_fallback": _parse_bool(t.get("enable_fallback"), True),
        "storage_directory": storage,
    }


def get_download_section(raw_config: dict) -> dict[str, Any]:
    """Return normalized download config (timeouts in seconds, chunk size in bytes)."""
    return get_section(
        raw_config,
        "download",
        {
            "timeout_sec": 300.0,
            "connect_timeout_sec": 30.0,
            "read_timeout_sec": 60.0,
            "chunk_size": 65536,
            "check_disk_space": True,
        },
        {
            "timeout_sec": lambda v: _parse_float(v, 5.0, 86400.0, 300.0),
            "connect_timeout_sec": lambda v: _parse_float(v, 1.0, 600.0, 30.0),
            "read_timeout_sec": lambda v: _parse_float(v, 1.0, 3600.0, 60.0),
            "chunk_size": lambda v: _clamp_int(v, 1024, 16 * 1024 * 1024, 65536),
            "check_disk_space": lambda v: _parse_bool(v, True),
        },
    )


def get_lifecycle_section(raw_config: dict) -> dict[str, Any]:
    """
    Return normalized model lifecycle config.
    thread_count 0 or missing means one thread per CPU.
    """
    cpus = os.cpu_count() or 1
    section = get_section(
        raw_config,
        "lifecycle",
        {"idle_timeout_sec": 300.0, "thread_count": 0},
        {
            "idle_timeout_sec": lambda v: _parse_float(v, 1.0, 86400.0, 300.0),
            "thread_count": lambda v: _clamp_int(v, 0, 256, 0),
        },
    )
    if section["thread_count"] <= 0:
        section["thread_count"] = cpus
    return section


def get_remote_section(raw_config: dict) -> dict[str, Any]:
    """
    Return normalized remote transcription config.
    base_url is None when not configured (remote provider unavailable).
    """
    r = raw_config.get("remote") or {}
    base_url = str(r.get("base_url") or "").strip().rstrip("/") or None
    api_key = str(r.get("api_key") or "").strip() or os.environ.get("LOCALSCRIBE_API_KEY") or None
    return {
        "base_url": base_url,
        "api_key": api_key,
        "timeout_sec": _parse_float(r.get("timeout_sec"), 1.0, 600.0, 30.0),
        "max_retries": _clamp_int(r.get("max_retries"), 1, 10, 3),
        "retry_base_delay_sec": _parse_float(r.get("retry_base_delay_sec"), 0.0, 60.0, 1.0),
        "language": str(r.get("language") or "").strip() or None,
    }


__all__ = [
    "VALID_METHODS",
    "VALID_VARIANTS",
    "get_download_section",
    "get_lifecycle_section",
    "get_remote_section",
    "get_section",
    "get_transcription_section",
]
