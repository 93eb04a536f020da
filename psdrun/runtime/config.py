"""Runtime configuration sourced from environment."""

from __future__ import annotations

import os
from dataclasses import dataclass

_TRUE_WORDS = frozenset({"1", "true", "yes", "on"})
_FALSE_WORDS = frozenset({"0", "false", "no", "off"})


def _flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE_WORDS:
        return True
    if value in _FALSE_WORDS:
        return False
    return default


def _float(name: str, default: float, *, minimum: float = 0.0) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    if value < minimum:
        return default
    return value


def _text(name: str) -> str | None:
    raw = os.getenv(name)
    if raw is None:
        return None
    cleaned = raw.strip()
    return cleaned or None


@dataclass(frozen=True, slots=True)
class RuntimeConfig:
    """Immutable runtime configuration."""

    log_level: str = "INFO"
    log_format: str = "text"
    log_file: str | None = None
    clock_interval_seconds: float = 1.0
    clock_start_delay_seconds: float = 0.1
    timer_default_delay_seconds: float = 5.0
    scheduler_tick_seconds: float = 0.05
    drop_stale_renders: bool = True
    hints_path: str | None = None


def resolve_log_level_name(default: str = "INFO") -> str:
    """Resolve log level with package-prefixed override."""
    value = os.getenv("PSDRUN_LOG_LEVEL")
    if value is None:
        value = os.getenv("LOG_LEVEL", default)
    return value.strip().upper()


def load_runtime_config() -> RuntimeConfig:
    """Load immutable runtime configuration from env vars."""
    log_format = (_text("PSDRUN_LOG_FORMAT") or "text").lower()
    if log_format not in {"text", "json"}:
        log_format = "text"
    return RuntimeConfig(
        log_level=resolve_log_level_name(),
        log_format=log_format,
        log_file=_text("PSDRUN_LOG_FILE"),
        clock_interval_seconds=_float("PSDRUN_CLOCK_INTERVAL_SECONDS", 1.0, minimum=0.001),
        clock_start_delay_seconds=_float("PSDRUN_CLOCK_START_DELAY_SECONDS", 0.1),
        timer_default_delay_seconds=_float("PSDRUN_TIMER_DEFAULT_DELAY_SECONDS", 5.0),
        scheduler_tick_seconds=_float("PSDRUN_SCHEDULER_TICK_SECONDS", 0.05, minimum=0.001),
        drop_stale_renders=_flag("PSDRUN_DROP_STALE_RENDERS", True),
        hints_path=_text("PSDRUN_HINTS_PATH"),
    )
