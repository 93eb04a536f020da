"""Public error taxonomy."""

from __future__ import annotations


class PsdRunError(Exception):
    """Base class for prototype runtime failures."""


class LayerTreeError(PsdRunError):
    """Flattened layer sequence is not a balanced group/groupEnd encoding."""


class ConfigError(PsdRunError):
    """Interaction configuration is malformed or incomplete; rejected wholesale."""


class ResolutionMiss(PsdRunError):
    """An action referenced an unknown layer, element, group or screen."""

    def __init__(self, kind: str, reference: object) -> None:
        super().__init__(f"unresolved {kind}: {reference!r}")
        self.kind = kind
        self.reference = reference


class RenderBridgeError(PsdRunError):
    """Render collaborator failed to push text, apply visibility or composite."""
