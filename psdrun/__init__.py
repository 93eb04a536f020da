"""Layered-design prototype runtime: visibility resolution and interaction engine."""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from psdrun.api.render import HintStore, RenderBridge
    from psdrun.runtime.session import DocumentSession


def create_session(
    *, bridge: "RenderBridge", hint_store: "HintStore | None" = None
) -> "DocumentSession":
    """Create one document session wired with runtime defaults."""
    from psdrun.runtime.session import create_document_session

    return create_document_session(bridge=bridge, hint_store=hint_store)


__all__ = ["create_session"]
