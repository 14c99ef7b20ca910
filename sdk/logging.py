"""
Logging helper for localscribe collaborators: consistent logger names (localscribe.<name>).
"""

from __future__ import annotations

import logging

LOGGER_PREFIX = "localscribe"


def get_logger(component: str) -> logging.Logger:
    """
    Return a logger with a consistent name for the given component.
    Use in engine/remote bindings so logs appear under localscribe.<component>.

    Args:
        component: Short name of the component (e.g. "whisper", "remote", "downloads").

    Returns:
        logging.Logger with name "localscribe." + component.
    """
    name = (component or "").strip() or "core"
    return logging.getLogger(f"{LOGGER_PREFIX}.{name}")


__all__ = ["LOGGER_PREFIX", "get_logger"]
