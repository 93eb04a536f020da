"""Public interaction configuration contracts."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum


class ElementType(StrEnum):
    """Element types the engine interprets. Unknown types pass through as plain strings."""

    SCREEN = "screen"
    CONDITIONAL = "conditional"
    BUTTON = "button"
    TAP_AREA = "tap_area"
    INPUT_DIGIT = "input_digit"
    CLEAR_INPUT = "clear_input"
    DISPLAY = "display"
    DYNAMIC_TEXT = "dynamic_text"
    CLOCK = "clock"
    SLIDER = "slider"
    TIMER = "timer"
    HIGHLIGHT = "highlight"
    POPUP = "popup"


class ActionKind(StrEnum):
    NAVIGATE = "navigate"
    NAVIGATE_CONDITIONAL = "navigate_conditional"
    INPUT_DIGIT = "input_digit"
    CLEAR_INPUT = "clear_input"
    SHOW_HIGHLIGHT = "show_highlight"
    TOGGLE_HIGHLIGHT = "toggle_highlight"
    SHOW_POPUP = "show_popup"
    HIDE_POPUP = "hide_popup"
    NAVIGATE_FROM_POPUP = "navigate_from_popup"


TEXT_ELEMENT_TYPES: frozenset[str] = frozenset({ElementType.DISPLAY, ElementType.DYNAMIC_TEXT})

# Elements that never receive a pointer overlay.
PASSIVE_ELEMENT_TYPES: frozenset[str] = frozenset(
    {
        ElementType.SCREEN,
        ElementType.CONDITIONAL,
        ElementType.DISPLAY,
        ElementType.DYNAMIC_TEXT,
        ElementType.CLOCK,
        ElementType.HIGHLIGHT,
        ElementType.POPUP,
        ElementType.TIMER,
    }
)


def normalize_element_type(raw: str) -> ElementType | str:
    return ElementType(raw) if raw in ElementType._value2member_map_ else raw


def normalize_action(raw: str | None) -> ActionKind | str | None:
    if raw is None:
        return None
    return ActionKind(raw) if raw in ActionKind._value2member_map_ else raw


@dataclass(frozen=True, slots=True)
class InteractionElement:
    """One AI-described interactive element bound to a layer.

    ``type`` and ``action`` are normalized to ``ElementType``/``ActionKind`` when
    known; unrecognized values stay plain strings. Fields the engine does not
    interpret are kept verbatim in ``extras``.
    """

    layer_id: int
    type: ElementType | str
    action: ActionKind | str | None = None
    target: str | None = None
    targets: Mapping[str, str] | None = None
    min: float | None = None
    max: float | None = None
    format: str | None = None
    name: str | None = None
    value: str | None = None
    show_on: tuple[str, ...] | None = None
    group: str | None = None
    delay: float | None = None
    trigger_on: tuple[str, ...] | None = None
    persistent: bool | None = None
    extras: Mapping[str, object] = field(default_factory=dict)

    @property
    def is_text(self) -> bool:
        return self.type in TEXT_ELEMENT_TYPES

    def target_names(self) -> tuple[str, ...]:
        """Split comma-separated ``target`` into ordered names."""
        if not self.target:
            return ()
        return tuple(part.strip() for part in self.target.split(",") if part.strip())

    def to_payload(self) -> dict[str, object]:
        """Convert element back to wire schema."""
        payload: dict[str, object] = {"layerId": self.layer_id, "type": str(self.type)}
        optional: tuple[tuple[str, object], ...] = (
            ("action", None if self.action is None else str(self.action)),
            ("target", self.target),
            ("targets", None if self.targets is None else dict(self.targets)),
            ("min", self.min),
            ("max", self.max),
            ("format", self.format),
            ("name", self.name),
            ("value", self.value),
            ("showOn", None if self.show_on is None else list(self.show_on)),
            ("group", self.group),
            ("delay", self.delay),
            ("triggerOn", None if self.trigger_on is None else list(self.trigger_on)),
            ("persistent", self.persistent),
        )
        for key, value in optional:
            if value is not None:
                payload[key] = value
        for key, value in self.extras.items():
            payload.setdefault(key, value)
        return payload


@dataclass(frozen=True, slots=True)
class InteractionConfig:
    """Screens plus elements making up one prototype."""

    elements: tuple[InteractionElement, ...]
    screens: tuple[str, ...]
    initial_screen: str

    def elements_of(self, element_type: str) -> tuple[InteractionElement, ...]:
        return tuple(element for element in self.elements if element.type == element_type)

    def find(self, element_type: str, name: str) -> InteractionElement | None:
        """Return first element of a type carrying ``name``."""
        for element in self.elements:
            if element.type == element_type and element.name == name:
                return element
        return None

    def find_text_element(self, name: str) -> InteractionElement | None:
        for element in self.elements:
            if element.is_text and element.name == name:
                return element
        return None

    def to_payload(self) -> dict[str, object]:
        return {
            "elements": [element.to_payload() for element in self.elements],
            "screens": list(self.screens),
            "initialScreen": self.initial_screen,
        }
