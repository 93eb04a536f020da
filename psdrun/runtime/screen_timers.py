"""Screen-scoped delayed actions armed on entering a screen."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from psdrun.api.interaction import InteractionElement
from psdrun.runtime.scheduler import Scheduler

_LOG = logging.getLogger("psdrun.interaction.timers")

TimerFired = Callable[[InteractionElement], None]


class ScreenTimers:
    """Tracks handles of armed screen timers; disarming drops all of them."""

    def __init__(self, scheduler: Scheduler, *, default_delay_seconds: float = 5.0) -> None:
        self._scheduler = scheduler
        self._default_delay_seconds = default_delay_seconds
        self._handles: list[int] = []

    @property
    def handles(self) -> tuple[int, ...]:
        return tuple(self._handles)

    def delay_for(self, element: InteractionElement) -> float:
        """Configured delay, clamped at zero; the default when none is given."""
        if element.delay is None:
            return self._default_delay_seconds
        return max(0.0, element.delay)

    def arm(self, timers: Iterable[InteractionElement], screen: str, on_fire: TimerFired) -> None:
        """Schedule every timer whose ``trigger_on`` lists ``screen``."""
        for element in timers:
            if element.trigger_on is None or screen not in element.trigger_on:
                continue
            delay = self.delay_for(element)
            _LOG.debug(
                "screen_timer_armed screen=%s action=%s target=%s delay=%.3f",
                screen,
                element.action,
                element.target,
                delay,
            )
            self._handles.append(
                self._scheduler.call_later(delay, lambda element=element: on_fire(element))
            )

    def disarm(self) -> None:
        self._scheduler.cancel_all(self._handles)
        self._handles.clear()
