"""One-shot garbage collector controls."""

from __future__ import annotations

import gc
import logging

logger = logging.getLogger(__name__)


def collect() -> int:
    """Run a full collection and return the number of unreachable objects found."""
    found = gc.collect()
    logger.info("Forced garbage collection: unreachable=%d", found)
    return found


def set_enabled(enabled: bool) -> bool:
    """Toggle automatic collection; returns the previous setting."""
    previous = gc.isenabled()
    if enabled:
        gc.enable()
    else:
        gc.disable()
    if previous != enabled:
        logger.info("Automatic garbage collection %s", "enabled" if enabled else "disabled")
    return previous


def is_enabled() -> bool:
    return gc.isenabled()
