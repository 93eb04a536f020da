"""Clock elements: per-second formatted time pushed into text layers."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime

from psdrun.api.interaction import InteractionElement
from psdrun.runtime.scheduler import Scheduler

DEFAULT_CLOCK_FORMAT = "HH:mm:ss"

ClockTick = Callable[[InteractionElement, str], None]


def format_clock(now: datetime, fmt: str) -> str:
    """Replace the first ``HH``, then ``mm``, then ``ss`` token."""
    return (
        fmt.replace("HH", f"{now.hour:02d}", 1)
        .replace("mm", f"{now.minute:02d}", 1)
        .replace("ss", f"{now.second:02d}", 1)
    )


class ClockDriver:
    """Runs one repeating scheduler task per clock element."""

    def __init__(
        self,
        scheduler: Scheduler,
        *,
        interval_seconds: float = 1.0,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._scheduler = scheduler
        self._interval_seconds = interval_seconds
        self._now = now
        self._handles: dict[int, int] = {}

    @property
    def handles(self) -> dict[int, int]:
        """Clock layer id to scheduler task id."""
        return dict(self._handles)

    @property
    def running(self) -> bool:
        return bool(self._handles)

    def start(self, clocks: Iterable[InteractionElement], on_tick: ClockTick) -> None:
        self.stop()
        for element in clocks:
            self._handles[element.layer_id] = self._scheduler.call_every(
                self._interval_seconds,
                lambda element=element: on_tick(element, self.render(element)),
            )

    def render(self, element: InteractionElement) -> str:
        return format_clock(self._now(), element.format or DEFAULT_CLOCK_FORMAT)

    def stop(self) -> None:
        self._scheduler.cancel_all(self._handles.values())
        self._handles.clear()
