"""Public event bus API contracts and runtime event shapes."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, TypeVar

TEvent = TypeVar("TEvent")


@dataclass(frozen=True, slots=True)
class Subscription:
    """Opaque subscription token."""

    id: int


@dataclass(frozen=True, slots=True)
class DocumentLoaded:
    file_name: str
    width: int
    height: int
    layer_count: int


@dataclass(frozen=True, slots=True)
class ConfigApplied:
    screens: tuple[str, ...]
    initial_screen: str
    element_count: int


@dataclass(frozen=True, slots=True)
class ConfigRejected:
    reason: str


@dataclass(frozen=True, slots=True)
class ScreenChanged:
    previous: str | None
    current: str


@dataclass(frozen=True, slots=True)
class CompositeUpdated:
    sequence: int
    width: int
    height: int


@dataclass(frozen=True, slots=True)
class RenderFailed:
    """Render push failed; hosts surface ``message`` as an error banner."""

    sequence: int
    message: str


class EventBus(Protocol):
    """Public in-process pub/sub contract."""

    def subscribe(
        self,
        event_type: type[TEvent],
        handler: Callable[[TEvent], None],
    ) -> Subscription:
        """Subscribe handler for event type."""

    def unsubscribe(self, subscription: Subscription) -> None:
        """Unsubscribe token."""

    def publish(self, event: object) -> int:
        """Publish event and return invocation count."""


def create_event_bus() -> EventBus:
    """Create default event bus implementation."""
    from psdrun.runtime.events import RuntimeEventBus

    return RuntimeEventBus()
