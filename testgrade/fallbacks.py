"""Debug logging for degradations the analysis recovers from."""

from __future__ import annotations

import logging


def log_best_effort_failure(
    logger: logging.Logger, action: str, exc: Exception
) -> None:
    """Log a recovered failure (a raising rule, unreadable source) at debug level.

    The caller's result carries the degraded state; this only leaves a trace.
    """
    logger.debug("Analysis degraded while trying to %s: %s: %s", action, type(exc).__name__, exc)


__all__ = ["log_best_effort_failure"]
