"""Public layer model contracts."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import StrEnum


class LayerKind(StrEnum):
    """Position of a node in the flattened pre-order sequence."""

    LEAF = "layer"
    GROUP = "group"
    GROUP_END = "groupEnd"


class ItemType(StrEnum):
    TEXT = "text"
    SHAPE = "shape"
    IMAGE = "image"
    FOLDER = "folder"
    UNKNOWN = "unknown"


class BlendMode(StrEnum):
    PASS_THROUGH = "passThrough"
    NORMAL = "normal"
    DISSOLVE = "dissolve"
    DARKEN = "darken"
    MULTIPLY = "multiply"
    COLOR_BURN = "colorBurn"
    LINEAR_BURN = "linearBurn"
    DARKER_COLOR = "darkerColor"
    LIGHTEN = "lighten"
    SCREEN = "screen"
    COLOR_DODGE = "colorDodge"
    LINEAR_DODGE = "linearDodge"
    LIGHTER_COLOR = "lighterColor"
    OVERLAY = "overlay"
    SOFT_LIGHT = "softLight"
    HARD_LIGHT = "hardLight"
    VIVID_LIGHT = "vividLight"
    LINEAR_LIGHT = "linearLight"
    PIN_LIGHT = "pinLight"
    HARD_MIX = "hardMix"
    DIFFERENCE = "difference"
    EXCLUSION = "exclusion"
    SUBTRACT = "subtract"
    DIVIDE = "divide"
    HUE = "hue"
    SATURATION = "saturation"
    COLOR = "color"
    LUMINOSITY = "luminosity"


@dataclass(frozen=True, slots=True)
class Rect:
    """Axis-aligned layer rectangle in document pixels."""

    x: int = 0
    y: int = 0
    w: int = 0
    h: int = 0

    @property
    def has_area(self) -> bool:
        return self.w > 0 and self.h > 0

    def union(self, other: Rect) -> Rect:
        """Return bounding box covering both rectangles."""
        left = min(self.x, other.x)
        top = min(self.y, other.y)
        right = max(self.x + self.w, other.x + other.w)
        bottom = max(self.y + self.h, other.y + other.h)
        return Rect(left, top, right - left, bottom - top)

    def contains(self, px: float, py: float) -> bool:
        return self.x <= px <= self.x + self.w and self.y <= py <= self.y + self.h


@dataclass(frozen=True, slots=True)
class LayerNode:
    """One entry of the flattened layer sequence."""

    id: int
    name: str
    kind: LayerKind
    rect: Rect = Rect()
    own_visible: bool = True
    opacity: int = 255
    blend_mode: BlendMode | str = BlendMode.NORMAL
    item_type: ItemType | None = None
    text: str | None = None

    @property
    def is_group(self) -> bool:
        return self.kind is LayerKind.GROUP

    @property
    def is_group_end(self) -> bool:
        return self.kind is LayerKind.GROUP_END

    def with_rect(self, rect: Rect) -> LayerNode:
        return replace(self, rect=rect)

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> LayerNode:
        """Build a node from the render collaborator's layer payload."""
        try:
            layer_id = int(payload["id"])  # type: ignore[call-overload]
            kind = LayerKind(str(payload.get("type", LayerKind.LEAF)))
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError("Malformed layer entry in document payload.") from exc
        rect = Rect(
            x=_int_field(payload, "x"),
            y=_int_field(payload, "y"),
            w=_int_field(payload, "width"),
            h=_int_field(payload, "height"),
        )
        opacity = max(0, min(255, _int_field(payload, "opacity", 255)))
        raw_blend = str(payload.get("blendMode", BlendMode.NORMAL))
        blend_mode: BlendMode | str = (
            BlendMode(raw_blend) if raw_blend in BlendMode._value2member_map_ else raw_blend
        )
        raw_item = payload.get("itemType")
        item_type: ItemType | None = None
        if raw_item is not None:
            item_type = (
                ItemType(str(raw_item))
                if str(raw_item) in ItemType._value2member_map_
                else ItemType.UNKNOWN
            )
        raw_text = payload.get("text")
        return cls(
            id=layer_id,
            name=str(payload.get("name", "")),
            kind=kind,
            rect=rect,
            own_visible=bool(payload.get("visible", True)),
            opacity=opacity,
            blend_mode=blend_mode,
            item_type=item_type,
            text=str(raw_text) if raw_text is not None else None,
        )


@dataclass(slots=True)
class LayerTreeNode:
    """Nested view of one group or leaf for tree presentations."""

    layer: LayerNode
    children: list[LayerTreeNode] = field(default_factory=list)


def _int_field(payload: Mapping[str, object], key: str, default: int = 0) -> int:
    raw = payload.get(key, default)
    if isinstance(raw, bool) or not isinstance(raw, (int, float, str)):
        return default
    try:
        return int(float(raw))
    except ValueError:
        return default
