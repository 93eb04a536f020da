"""Public action-dispatch API contracts."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from psdrun.api.interaction import InteractionElement

ElementActionHandler = Callable[[InteractionElement], bool]


class ActionDispatcher(Protocol):
    """Resolve and dispatch element actions by name."""

    def dispatch(self, element: InteractionElement) -> bool | None:
        """Dispatch element action. Return None when no handler exists."""


def create_action_dispatcher(
    *,
    handlers: dict[str, ElementActionHandler],
) -> ActionDispatcher:
    """Create default dispatcher implementation."""
    from psdrun.runtime.action_dispatch import RuntimeActionDispatcher

    return RuntimeActionDispatcher(handlers=handlers)
