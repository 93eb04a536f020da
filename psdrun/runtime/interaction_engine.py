"""Interaction runtime: screens, popups, highlights, digit entry, clocks and timers.

The engine is an explicit per-session object. Every operation finishes its
local state mutation before handing a single render request to the
pipeline, so an action arriving while a previous render is in flight always
sees current state.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import ParamSpec

from psdrun.api.action_dispatch import ActionDispatcher, create_action_dispatcher
from psdrun.api.errors import ResolutionMiss
from psdrun.api.events import EventBus, ScreenChanged
from psdrun.api.interaction import (
    PASSIVE_ELEMENT_TYPES,
    ActionKind,
    ElementType,
    InteractionConfig,
    InteractionElement,
)
from psdrun.api.layers import LayerNode, Rect
from psdrun.runtime.clocks import ClockDriver
from psdrun.runtime.config import RuntimeConfig
from psdrun.runtime.digit_entry import EMPTY_DIGIT, EMPTY_PAIR, shift_pair, shift_positions
from psdrun.runtime.errors import log_resolution_miss
from psdrun.runtime.render_pipeline import RenderPipeline
from psdrun.runtime.scheduler import Scheduler
from psdrun.runtime.screen_timers import ScreenTimers
from psdrun.runtime.visibility import find_layer_index, iter_ancestor_indexes

_LOG = logging.getLogger("psdrun.interaction")

P = ParamSpec("P")


@dataclass(frozen=True, slots=True)
class LiveElement:
    """Element accepting pointer input on the current screen."""

    element: InteractionElement
    rect: Rect


def build_element_screen_map(
    layers: Sequence[LayerNode], config: InteractionConfig
) -> dict[int, str]:
    """Map each non-screen element's layer to its nearest enclosing screen folder."""
    screen_name_by_layer = {
        element.layer_id: element.name
        for element in config.elements_of(ElementType.SCREEN)
        if element.name is not None
    }
    mapping: dict[int, str] = {}
    for element in config.elements:
        if element.type == ElementType.SCREEN:
            continue
        index = find_layer_index(layers, element.layer_id)
        if index is None:
            continue
        for ancestor_index in iter_ancestor_indexes(layers, index):
            screen_name = screen_name_by_layer.get(layers[ancestor_index].id)
            if screen_name is not None:
                mapping[element.layer_id] = screen_name
                break
    return mapping


class InteractionEngine:
    """Stateful interpreter of one ``InteractionConfig`` against the loaded layers."""

    def __init__(
        self,
        pipeline: RenderPipeline,
        scheduler: Scheduler,
        *,
        events: EventBus | None = None,
        config: RuntimeConfig | None = None,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        runtime_config = config or RuntimeConfig()
        self._pipeline = pipeline
        self._scheduler = scheduler
        self._events = events
        self._screen_timers = ScreenTimers(
            scheduler, default_delay_seconds=runtime_config.timer_default_delay_seconds
        )
        self._clocks = ClockDriver(
            scheduler, interval_seconds=runtime_config.clock_interval_seconds, now=now
        )
        self._clock_start_delay_seconds = runtime_config.clock_start_delay_seconds
        self._clock_start_task: int | None = None
        self._dispatcher: ActionDispatcher = create_action_dispatcher(
            handlers={
                ActionKind.NAVIGATE: self._on_navigate,
                ActionKind.NAVIGATE_CONDITIONAL: self._on_navigate_conditional,
                ActionKind.INPUT_DIGIT: self._on_input_digit,
                ActionKind.CLEAR_INPUT: self._on_clear_input,
                ActionKind.SHOW_HIGHLIGHT: self._on_show_highlight,
                ActionKind.TOGGLE_HIGHLIGHT: self._on_toggle_highlight,
                ActionKind.SHOW_POPUP: self._on_show_popup,
                ActionKind.HIDE_POPUP: self._on_hide_popup,
                ActionKind.NAVIGATE_FROM_POPUP: self._on_hide_popup,
            }
        )
        self._config: InteractionConfig | None = None
        self._current_screen: str | None = None
        self._element_screen_map: dict[int, str] = {}
        self._slider_values: dict[int, float] = {}
        self._dynamic_texts: dict[int, str] = {}
        self._active_popups: set[str] = set()
        self._selected_highlights: dict[str, str] = {}

    # -- state views -------------------------------------------------------

    @property
    def config(self) -> InteractionConfig | None:
        return self._config

    @property
    def current_screen(self) -> str | None:
        return self._current_screen

    @property
    def element_screen_map(self) -> Mapping[int, str]:
        return MappingProxyType(self._element_screen_map)

    @property
    def slider_values(self) -> Mapping[int, float]:
        return MappingProxyType(self._slider_values)

    @property
    def dynamic_texts(self) -> Mapping[int, str]:
        return MappingProxyType(self._dynamic_texts)

    @property
    def active_popups(self) -> frozenset[str]:
        return frozenset(self._active_popups)

    @property
    def selected_highlights(self) -> Mapping[str, str]:
        return MappingProxyType(self._selected_highlights)

    @property
    def clock_timers(self) -> dict[int, int]:
        return self._clocks.handles

    @property
    def screen_timer_ids(self) -> tuple[int, ...]:
        return self._screen_timers.handles

    # -- lifecycle ---------------------------------------------------------

    def set_config(self, config: InteractionConfig) -> None:
        """Install a config, seed display texts and show the initial screen."""
        self._cancel_timers()
        tree = self._pipeline.tree
        layers = tree.layers if tree is not None else ()
        initial_texts = {
            element.layer_id: element.value if element.value is not None else EMPTY_PAIR
            for element in config.elements
            if element.is_text
        }
        self._config = config
        self._current_screen = config.initial_screen
        self._element_screen_map = build_element_screen_map(layers, config)
        self._slider_values = {}
        self._active_popups = set()
        self._selected_highlights = {}
        self._dynamic_texts = dict(initial_texts)
        _LOG.info(
            "config_applied screens=%s initial=%s elements=%d mapped=%d",
            ",".join(config.screens),
            config.initial_screen,
            len(config.elements),
            len(self._element_screen_map),
        )

        self._pipeline.apply_overrides(
            self._screen_overrides(config.initial_screen),
            texts=initial_texts.items(),
        )
        if config.elements_of(ElementType.CLOCK):
            self._clock_start_task = self._scheduler.call_later(
                self._clock_start_delay_seconds, self._start_clocks_when_due
            )
        self._screen_timers.arm(
            config.elements_of(ElementType.TIMER), config.initial_screen, self._on_screen_timer
        )

    def clear(self) -> None:
        """Cancel every timer and drop all runtime state."""
        self._cancel_timers()
        self._config = None
        self._current_screen = None
        self._element_screen_map = {}
        self._slider_values = {}
        self._dynamic_texts = {}
        self._active_popups = set()
        self._selected_highlights = {}

    # -- operations --------------------------------------------------------

    def navigate(self, screen_name: str) -> bool:
        return self._guard(self._navigate, screen_name)

    def navigate_conditional(self, targets: Mapping[str, str]) -> bool:
        return self._guard(self._navigate_conditional, targets)

    def show_highlight(self, name: str) -> bool:
        return self._guard(self._select_highlight, name, False)

    def toggle_highlight(self, name: str) -> bool:
        return self._guard(self._select_highlight, name, True)

    def show_popup(self, name: str) -> bool:
        return self._guard(self._show_popup, name)

    def hide_popup(self, target: str | None = None) -> bool:
        return self._guard(self._hide_popup, target)

    def navigate_from_popup(self, target: str) -> bool:
        return self._guard(self._hide_popup, target)

    def input_digit(self, digit: str, targets: str | Sequence[str]) -> bool:
        return self._guard(self._input_digit, digit, _split_targets(targets))

    def clear_input(self, targets: str | Sequence[str]) -> bool:
        return self._guard(self._clear_input, _split_targets(targets))

    def set_slider_value(self, layer_id: int, value: float) -> None:
        """Presentation-only state; no render is issued."""
        self._slider_values[layer_id] = value

    def slider_value(self, layer_id: int) -> float:
        stored = self._slider_values.get(layer_id)
        if stored is not None:
            return stored
        element = self._find_element(layer_id, ElementType.SLIDER)
        if element is not None and element.min is not None:
            return element.min
        return 0.0

    def set_dynamic_text(self, layer_id: int, text: str, *, push: bool = True) -> None:
        self._dynamic_texts[layer_id] = text
        if push:
            self._pipeline.push_texts([(layer_id, text)])

    def start_clocks(self) -> None:
        if self._config is None:
            return
        self._clocks.start(self._config.elements_of(ElementType.CLOCK), self._on_clock_tick)

    def stop_clocks(self) -> None:
        if self._clock_start_task is not None:
            self._scheduler.cancel(self._clock_start_task)
            self._clock_start_task = None
        self._clocks.stop()

    def execute(self, element: InteractionElement) -> bool:
        """Run the element's action; unknown actions and references are no-ops."""
        _LOG.debug(
            "execute_action type=%s action=%s value=%s target=%s",
            element.type,
            element.action,
            element.value,
            element.target,
        )
        return bool(self._dispatcher.dispatch(element))

    def interactive_elements(self) -> tuple[LiveElement, ...]:
        """Elements that accept pointer input on the current screen."""
        config = self._config
        tree = self._pipeline.tree
        if config is None or tree is None or self._current_screen is None:
            return ()
        live: list[LiveElement] = []
        for element in config.elements:
            if element.type in PASSIVE_ELEMENT_TYPES:
                continue
            if element.show_on is not None and self._current_screen not in element.show_on:
                continue
            owner = self._element_screen_map.get(element.layer_id)
            if owner is not None and owner != self._current_screen:
                continue
            layer = tree.get(element.layer_id)
            if layer is None or not self._pipeline.effective_visible(element.layer_id):
                continue
            live.append(LiveElement(element=element, rect=layer.rect))
        return tuple(live)

    def activate(self, layer_id: int) -> bool:
        """Execute the live element bound to ``layer_id``, if any."""
        for live in self.interactive_elements():
            if live.element.layer_id == layer_id:
                return self.execute(live.element)
        log_resolution_miss(_LOG, ResolutionMiss("live element", layer_id))
        return False

    # -- action handlers ---------------------------------------------------

    def _on_navigate(self, element: InteractionElement) -> bool:
        return self._navigate(_required(element.target, "navigate target"))

    def _on_navigate_conditional(self, element: InteractionElement) -> bool:
        if element.targets is None:
            raise ResolutionMiss("conditional targets", element.layer_id)
        return self._navigate_conditional(element.targets)

    def _on_input_digit(self, element: InteractionElement) -> bool:
        digit = _required(element.value, "digit value")
        return self._input_digit(digit, element.target_names())

    def _on_clear_input(self, element: InteractionElement) -> bool:
        return self._clear_input(element.target_names())

    def _on_show_highlight(self, element: InteractionElement) -> bool:
        return self._select_highlight(_required(element.target, "highlight"), False)

    def _on_toggle_highlight(self, element: InteractionElement) -> bool:
        return self._select_highlight(_required(element.target, "highlight"), True)

    def _on_show_popup(self, element: InteractionElement) -> bool:
        return self._show_popup(_required(element.target, "popup"))

    def _on_hide_popup(self, element: InteractionElement) -> bool:
        return self._hide_popup(element.target)

    def _on_screen_timer(self, element: InteractionElement) -> None:
        _LOG.debug("screen_timer_fired action=%s target=%s", element.action, element.target)
        if element.action == ActionKind.NAVIGATE and element.target:
            self.navigate(element.target)

    def _on_clock_tick(self, element: InteractionElement, text: str) -> None:
        self._dynamic_texts[element.layer_id] = text
        self._pipeline.push_texts([(element.layer_id, text)])

    def _start_clocks_when_due(self) -> None:
        self._clock_start_task = None
        self.start_clocks()

    # -- transitions -------------------------------------------------------

    def _navigate(self, screen_name: str) -> bool:
        config = self._require_config()
        if screen_name not in config.screens:
            raise ResolutionMiss("screen", screen_name)
        self._screen_timers.disarm()
        previous = self._current_screen
        self._current_screen = screen_name
        self._active_popups.clear()
        _LOG.info("screen_navigated from=%s to=%s", previous, screen_name)
        self._pipeline.apply_overrides(self._screen_overrides(screen_name))
        self._screen_timers.arm(
            config.elements_of(ElementType.TIMER), screen_name, self._on_screen_timer
        )
        if self._events is not None:
            self._events.publish(ScreenChanged(previous=previous, current=screen_name))
        return True

    def _navigate_conditional(self, targets: Mapping[str, str]) -> bool:
        self._require_config()
        current = self._current_screen
        if current is None:
            return False
        destination = targets.get(current)
        if not destination:
            return False
        return self._navigate(destination)

    def _select_highlight(self, name: str, toggle: bool) -> bool:
        config = self._require_config()
        target = config.find(ElementType.HIGHLIGHT, name)
        if target is None:
            raise ResolutionMiss("highlight", name)
        group = target.group
        if not group:
            raise ResolutionMiss("highlight group", name)
        toggle_off = toggle and self._selected_highlights.get(group) == name
        if toggle_off:
            del self._selected_highlights[group]
        else:
            self._selected_highlights[group] = name
        overrides = {
            element.layer_id: (not toggle_off) and element.name == name
            for element in config.elements_of(ElementType.HIGHLIGHT)
            if element.group == group
        }
        self._pipeline.apply_overrides(overrides)
        return True

    def _show_popup(self, name: str) -> bool:
        config = self._require_config()
        popup = config.find(ElementType.POPUP, name)
        if popup is None:
            raise ResolutionMiss("popup", name)
        self._active_popups.add(name)
        self._pipeline.apply_overrides({popup.layer_id: True})
        return True

    def _hide_popup(self, target: str | None) -> bool:
        config = self._require_config()
        if target and target not in config.screens:
            raise ResolutionMiss("screen", target)
        self._active_popups.clear()
        if target:
            return self._navigate(target)
        if self._current_screen is None:
            return False
        self._pipeline.apply_overrides(self._screen_overrides(self._current_screen))
        return True

    def _input_digit(self, digit: str, target_names: Sequence[str]) -> bool:
        displays = self._resolve_displays(target_names)
        if len(displays) == 1:
            layer_id = displays[0].layer_id
            current = self._dynamic_texts.get(layer_id) or EMPTY_PAIR
            updated = shift_pair(current, digit)
            if updated == current:
                return False
            self._dynamic_texts[layer_id] = updated
            self._pipeline.push_texts([(layer_id, updated)])
            return True

        current_values = [self._dynamic_texts.get(d.layer_id) or EMPTY_DIGIT for d in displays]
        shifted = shift_positions(current_values, digit)
        if shifted is None:
            return False
        updates = [(display.layer_id, value) for display, value in zip(displays, shifted)]
        self._dynamic_texts.update(updates)
        self._pipeline.push_texts(updates)
        return True

    def _clear_input(self, target_names: Sequence[str]) -> bool:
        displays = self._resolve_displays(target_names)
        updates = [
            (display.layer_id, display.value if display.value is not None else EMPTY_DIGIT)
            for display in displays
        ]
        self._dynamic_texts.update(updates)
        self._pipeline.push_texts(updates)
        return True

    # -- helpers -----------------------------------------------------------

    def _screen_overrides(self, screen_name: str) -> dict[int, bool]:
        """One batch covering screens, show_on layers, highlights and popups."""
        config = self._require_config()
        tree = self._pipeline.tree
        overrides: dict[int, bool] = {}

        def known(layer_id: int) -> bool:
            return tree is None or layer_id in tree

        for element in config.elements_of(ElementType.SCREEN):
            if known(element.layer_id):
                overrides[element.layer_id] = element.name == screen_name
        for element in config.elements:
            if element.show_on is not None and known(element.layer_id):
                overrides[element.layer_id] = screen_name in element.show_on
        for element in config.elements_of(ElementType.HIGHLIGHT):
            if known(element.layer_id):
                selected = self._selected_highlights.get(element.group) if element.group else None
                overrides[element.layer_id] = selected is not None and element.name == selected
        for element in config.elements_of(ElementType.POPUP):
            if known(element.layer_id):
                overrides[element.layer_id] = element.name in self._active_popups
        return overrides

    def _resolve_displays(self, target_names: Sequence[str]) -> list[InteractionElement]:
        config = self._require_config()
        displays = [
            display
            for display in (config.find_text_element(name) for name in target_names)
            if display is not None
        ]
        if not displays:
            raise ResolutionMiss("display", ",".join(target_names))
        return displays

    def _find_element(self, layer_id: int, element_type: str) -> InteractionElement | None:
        if self._config is None:
            return None
        for element in self._config.elements:
            if element.layer_id == layer_id and element.type == element_type:
                return element
        return None

    def _require_config(self) -> InteractionConfig:
        if self._config is None:
            raise ResolutionMiss("config", None)
        return self._config

    def _cancel_timers(self) -> None:
        self.stop_clocks()
        self._screen_timers.disarm()

    def _guard(self, operation: Callable[P, bool], *args: P.args, **kwargs: P.kwargs) -> bool:
        try:
            return operation(*args, **kwargs)
        except ResolutionMiss as miss:
            log_resolution_miss(_LOG, miss)
            return False


def _required(value: str | None, kind: str) -> str:
    if not value:
        raise ResolutionMiss(kind, value)
    return value


def _split_targets(targets: str | Iterable[str]) -> tuple[str, ...]:
    if isinstance(targets, str):
        targets = targets.split(",")
    return tuple(name.strip() for name in targets if name.strip())
