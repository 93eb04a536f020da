"""Element action dispatch for interaction orchestration."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from psdrun.api.action_dispatch import ElementActionHandler
from psdrun.api.errors import ResolutionMiss
from psdrun.api.interaction import InteractionElement
from psdrun.runtime.errors import log_resolution_miss

_LOG = logging.getLogger("psdrun.interaction")


@dataclass(frozen=True, slots=True)
class RuntimeActionDispatcher:
    """Route an element to the handler registered for its ``action``."""

    handlers: dict[str, ElementActionHandler]

    def dispatch(self, element: InteractionElement) -> bool | None:
        """Dispatch element action. Return None when no handler exists.

        Unresolved references raised by a handler end the action as a no-op.
        """
        if element.action is None:
            return None
        handler = self.handlers.get(str(element.action))
        if handler is None:
            _LOG.debug("action_unhandled action=%s layer=%s", element.action, element.layer_id)
            return None
        try:
            return handler(element)
        except ResolutionMiss as miss:
            log_resolution_miss(_LOG, miss)
            return False


ActionDispatcher = RuntimeActionDispatcher
