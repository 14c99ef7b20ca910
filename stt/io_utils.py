"""File hashing, atomic commit, and directory helpers for model files."""

from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

HASH_CHUNK_SIZE = 1024 * 1024


def sha256_file(path: Path) -> str:
    """Compute SHA-256 hex digest of a file (lowercase)."""
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(HASH_CHUNK_SIZE), b""):
            h.update(chunk)
    return h.hexdigest()


def checksums_match(expected: str, actual: str) -> bool:
    """Compare two hex digests case-insensitively."""
    return (expected or "").strip().lower() == (actual or "").strip().lower()


def commit_file(tmp: Path, dest: Path) -> None:
    """Move a fully written temp file onto dest atomically (same filesystem)."""
    os.replace(tmp, dest)


def remove_file(path: Path) -> bool:
    """
    Delete path if it exists. Returns True if a file was removed.
    Errors other than "not found" propagate.
    """
    try:
        Path(path).unlink()
        return True
    except FileNotFoundError:
        return False


def discard_file(path: Path) -> None:
    """Best-effort cleanup on an error path: never raises, logs failures."""
    try:
        remove_file(path)
    except OSError as e:
        logger.warning("Could not remove %s: %s", path, e)


def ensure_dir(path: Path) -> Path:
    """Create directory and parents if needed; return path."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


__all__ = [
    "HASH_CHUNK_SIZE",
    "checksums_match",
    "commit_file",
    "discard_file",
    "ensure_dir",
    "remove_file",
    "sha256_file",
]
