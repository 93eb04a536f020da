"""Public API contracts."""

from psdrun.api.action_dispatch import (
    ActionDispatcher,
    ElementActionHandler,
    create_action_dispatcher,
)
from psdrun.api.errors import (
    ConfigError,
    LayerTreeError,
    PsdRunError,
    RenderBridgeError,
    ResolutionMiss,
)
from psdrun.api.events import (
    CompositeUpdated,
    ConfigApplied,
    ConfigRejected,
    DocumentLoaded,
    EventBus,
    RenderFailed,
    ScreenChanged,
    Subscription,
    create_event_bus,
)
from psdrun.api.interaction import ActionKind, ElementType, InteractionConfig, InteractionElement
from psdrun.api.layers import BlendMode, ItemType, LayerKind, LayerNode, LayerTreeNode, Rect
from psdrun.api.logging import JsonFormatter, LoggingConfig, configure_logging
from psdrun.api.render import Bitmap, HintStore, LayerImage, ParsedDocument, RenderBridge

__all__ = [
    "ActionDispatcher",
    "ActionKind",
    "Bitmap",
    "BlendMode",
    "CompositeUpdated",
    "ConfigApplied",
    "ConfigError",
    "ConfigRejected",
    "DocumentLoaded",
    "ElementActionHandler",
    "ElementType",
    "EventBus",
    "HintStore",
    "InteractionConfig",
    "InteractionElement",
    "ItemType",
    "JsonFormatter",
    "LayerImage",
    "LayerKind",
    "LayerNode",
    "LayerTreeError",
    "LayerTreeNode",
    "LoggingConfig",
    "ParsedDocument",
    "PsdRunError",
    "Rect",
    "RenderBridge",
    "RenderBridgeError",
    "RenderFailed",
    "ResolutionMiss",
    "ScreenChanged",
    "Subscription",
    "configure_logging",
    "create_action_dispatcher",
    "create_event_bus",
]
