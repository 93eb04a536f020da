"""Shared runtime exception policy helpers."""

from __future__ import annotations

import logging
from typing import TypeAlias

from psdrun.api.errors import RenderBridgeError, ResolutionMiss

# Explicitly bounded set tolerated at action and event seams.
RecoverableRuntimeErrors: TypeAlias = tuple[type[BaseException], ...]
RECOVERABLE_RUNTIME_ERRORS: RecoverableRuntimeErrors = (
    RenderBridgeError,
    ResolutionMiss,
    RuntimeError,
    OSError,
    ValueError,
    TypeError,
    KeyError,
    AttributeError,
)


def log_recoverable(
    logger: logging.Logger,
    message: str,
    *,
    level: int = logging.DEBUG,
) -> None:
    """Emit structured observability for tolerated recoverable exceptions."""
    logger.log(level, message, exc_info=True)


def log_resolution_miss(logger: logging.Logger, miss: ResolutionMiss) -> None:
    """Unresolved references are fail-open: note them and move on."""
    logger.debug("resolution_miss kind=%s reference=%r", miss.kind, miss.reference)
