"""Lightweight event bus for session-local coordination."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, TypeVar

from psdrun.api.events import Subscription
from psdrun.runtime.errors import RECOVERABLE_RUNTIME_ERRORS, log_recoverable

TEvent = TypeVar("TEvent")
EventHandler = Callable[[Any], None]

_LOG = logging.getLogger("psdrun.runtime.events")


class RuntimeEventBus:
    """Simple in-process pub/sub; a failing handler does not block the others."""

    def __init__(self) -> None:
        self._next_id = 1
        self._subscriptions: dict[int, tuple[type[object], EventHandler]] = {}

    def subscribe(
        self,
        event_type: type[TEvent],
        handler: Callable[[TEvent], None],
    ) -> Subscription:
        """Subscribe handler for an event type."""
        sub_id = self._next_id
        self._next_id += 1
        self._subscriptions[sub_id] = (event_type, handler)
        return Subscription(sub_id)

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscription if present."""
        self._subscriptions.pop(subscription.id, None)

    def publish(self, event: object) -> int:
        """Publish one event and return number of invoked handlers."""
        invoked = 0
        for subscribed_type, handler in tuple(self._subscriptions.values()):
            if not isinstance(event, subscribed_type):
                continue
            try:
                handler(event)
            except RECOVERABLE_RUNTIME_ERRORS:
                log_recoverable(
                    _LOG,
                    f"event_handler_failed event={type(event).__name__}",
                    level=logging.WARNING,
                )
            invoked += 1
        return invoked


EventBus = RuntimeEventBus
