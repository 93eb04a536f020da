from __future__ import annotations

import asyncio

from psdrun.api.events import CompositeUpdated, ScreenChanged
from psdrun.api.interaction import ElementType, InteractionElement
from psdrun.runtime.config_parser import payload_to_config
from psdrun.runtime.interaction_engine import build_element_screen_map

from tests.psdrun.conftest import PROTOTYPE_LAYERS, loaded_session, prototype_config


def _screen_flags(session) -> dict[int, bool]:
    return {layer_id: session.pipeline.overrides.get(layer_id) for layer_id in (10, 20, 60)}


def test_config_shows_initial_screen_and_seeds_texts() -> None:
    async def scenario() -> None:
        session, bridge = await loaded_session(config=prototype_config())
        engine = session.engine

        assert engine.current_screen == "a"
        assert _screen_flags(session) == {10: True, 20: False, 60: False}
        assert session.pipeline.overrides[70] is True
        assert engine.dynamic_texts == {13: "--", 50: "-", 51: "-"}
        assert bridge.texts == {13: "--", 50: "-", 51: "-"}
        # load composite plus exactly one for the config
        assert bridge.composite_count() == 2
        assert session.effective_visibility(11) is True
        assert session.effective_visibility(21) is False

    asyncio.run(scenario())


def test_element_screen_map_uses_nearest_screen_ancestor() -> None:
    mapping = build_element_screen_map(PROTOTYPE_LAYERS, prototype_config())
    assert mapping[11] == "a"
    assert mapping[31] == "b"
    assert mapping[40] == "b"
    assert 70 not in mapping
    assert 0 not in mapping
    assert 10 not in mapping


def test_navigate_keeps_exactly_one_screen_visible() -> None:
    async def scenario() -> None:
        session, bridge = await loaded_session(config=prototype_config())
        seen: list[ScreenChanged] = []
        session.events.subscribe(ScreenChanged, seen.append)

        assert session.engine.navigate("b") is True
        await session.pipeline.drain()

        assert session.engine.current_screen == "b"
        assert _screen_flags(session) == {10: False, 20: True, 60: False}
        assert bridge.composite_count() == 3
        assert seen == [ScreenChanged(previous="a", current="b")]

        assert session.engine.navigate("c") is True
        assert session.pipeline.overrides[70] is False
        await session.pipeline.drain()

    asyncio.run(scenario())


def test_navigate_to_unknown_screen_is_noop() -> None:
    async def scenario() -> None:
        session, bridge = await loaded_session(config=prototype_config())
        assert session.engine.navigate("nowhere") is False
        await session.pipeline.drain()
        assert session.engine.current_screen == "a"
        assert bridge.composite_count() == 2

    asyncio.run(scenario())


def test_navigate_conditional_follows_current_screen_mapping() -> None:
    async def scenario() -> None:
        session, _ = await loaded_session(config=prototype_config())
        engine = session.engine
        assert engine.navigate_conditional({"c": "a"}) is False
        assert engine.current_screen == "a"
        assert engine.navigate_conditional({"a": "b", "b": "c"}) is True
        assert engine.current_screen == "b"
        assert engine.navigate_conditional({"a": "b", "b": "c"}) is True
        assert engine.current_screen == "c"
        await session.pipeline.drain()

    asyncio.run(scenario())


def test_highlight_selection_is_exclusive_within_group() -> None:
    async def scenario() -> None:
        session, _ = await loaded_session(config=prototype_config())
        engine = session.engine
        engine.navigate("b")

        assert engine.show_highlight("yes") is True
        assert engine.selected_highlights == {"vote": "yes"}
        assert session.pipeline.overrides[40] is True
        assert session.pipeline.overrides[41] is False
        assert session.effective_visibility(40) is True

        assert engine.toggle_highlight("no") is True
        assert engine.selected_highlights == {"vote": "no"}
        assert session.pipeline.overrides[40] is False
        assert session.pipeline.overrides[41] is True

        assert engine.toggle_highlight("no") is True
        assert engine.selected_highlights == {}
        assert session.pipeline.overrides[40] is False
        assert session.pipeline.overrides[41] is False

        assert engine.show_highlight("maybe") is False
        await session.pipeline.drain()

    asyncio.run(scenario())


def test_highlight_selection_survives_navigation() -> None:
    async def scenario() -> None:
        session, _ = await loaded_session(config=prototype_config())
        engine = session.engine
        engine.navigate("b")
        engine.show_highlight("yes")
        engine.navigate("a")
        engine.navigate("b")
        assert session.pipeline.overrides[40] is True
        assert session.pipeline.overrides[41] is False
        await session.pipeline.drain()

    asyncio.run(scenario())


def test_popups_show_hide_and_clear_on_navigation() -> None:
    async def scenario() -> None:
        session, _ = await loaded_session(config=prototype_config())
        engine = session.engine
        engine.navigate("b")

        assert engine.show_popup("confirm") is True
        assert engine.active_popups == {"confirm"}
        assert session.effective_visibility(31) is True

        assert engine.hide_popup() is True
        assert engine.active_popups == frozenset()
        assert engine.current_screen == "b"
        assert session.pipeline.overrides[30] is False

        engine.show_popup("confirm")
        assert engine.hide_popup("nowhere") is False
        assert engine.active_popups == {"confirm"}

        assert engine.navigate_from_popup("a") is True
        assert engine.current_screen == "a"
        assert engine.active_popups == frozenset()
        assert session.pipeline.overrides[30] is False

        assert engine.show_popup("missing") is False
        await session.pipeline.drain()

    asyncio.run(scenario())


def test_single_display_digit_entry_shifts_and_saturates() -> None:
    async def scenario() -> None:
        session, bridge = await loaded_session(config=prototype_config())
        engine = session.engine

        assert engine.input_digit("1", "pin") is True
        assert engine.dynamic_texts[13] == "-1"
        assert engine.input_digit("2", "pin") is True
        assert engine.dynamic_texts[13] == "12"
        assert engine.input_digit("3", "pin") is False
        assert engine.dynamic_texts[13] == "12"
        await session.pipeline.drain()
        assert bridge.texts[13] == "12"

        assert engine.clear_input("pin") is True
        await session.pipeline.drain()
        assert engine.dynamic_texts[13] == "--"
        assert bridge.texts[13] == "--"

    asyncio.run(scenario())


def test_multi_display_digit_entry_shifts_across_positions() -> None:
    async def scenario() -> None:
        session, bridge = await loaded_session(config=prototype_config())
        engine = session.engine

        assert engine.input_digit("7", "d1,d2") is True
        assert (engine.dynamic_texts[50], engine.dynamic_texts[51]) == ("-", "7")
        assert engine.input_digit("8", ["d1", "d2"]) is True
        assert (engine.dynamic_texts[50], engine.dynamic_texts[51]) == ("7", "8")
        assert engine.input_digit("9", "d1, d2") is False

        assert engine.clear_input("d1,d2") is True
        await session.pipeline.drain()
        assert (bridge.texts[50], bridge.texts[51]) == ("-", "-")

    asyncio.run(scenario())


def test_digit_entry_with_unknown_display_is_noop() -> None:
    async def scenario() -> None:
        session, _ = await loaded_session(config=prototype_config())
        assert session.engine.input_digit("1", "missing") is False
        assert session.engine.clear_input("") is False
        await session.pipeline.drain()

    asyncio.run(scenario())


def test_interactive_elements_follow_current_screen() -> None:
    async def scenario() -> None:
        session, _ = await loaded_session(config=prototype_config())
        engine = session.engine

        def live_ids() -> set[int]:
            return {live.element.layer_id for live in engine.interactive_elements()}

        assert live_ids() == {11, 14, 15, 16, 70}
        engine.navigate("b")
        assert live_ids() == {21, 22, 42, 43, 70}
        engine.show_popup("confirm")
        assert 31 in live_ids()
        engine.navigate("c")
        assert live_ids() == set()
        await session.pipeline.drain()

    asyncio.run(scenario())


def test_activate_executes_live_element_only() -> None:
    async def scenario() -> None:
        session, _ = await loaded_session(config=prototype_config())
        engine = session.engine

        assert engine.activate(21) is False
        assert engine.current_screen == "a"
        assert engine.activate(14) is True
        assert engine.dynamic_texts[13] == "-1"
        assert engine.activate(11) is True
        assert engine.current_screen == "b"
        assert engine.activate(22) is True
        assert engine.activate(31) is True
        assert engine.active_popups == frozenset()
        await session.pipeline.drain()

    asyncio.run(scenario())


def test_execute_unknown_action_changes_nothing() -> None:
    async def scenario() -> None:
        session, bridge = await loaded_session(config=prototype_config())
        spin = InteractionElement(layer_id=11, type=ElementType.BUTTON, action="spin")
        assert session.engine.execute(spin) is False
        await session.pipeline.drain()
        assert bridge.composite_count() == 2

    asyncio.run(scenario())


def test_screen_timer_fires_after_delay() -> None:
    async def scenario() -> None:
        session, _ = await loaded_session(config=prototype_config())
        engine = session.engine
        engine.navigate("c")
        assert len(engine.screen_timer_ids) == 1

        session.scheduler.advance(2.5)
        assert engine.current_screen == "c"
        session.scheduler.advance(0.5)
        assert engine.current_screen == "a"
        assert engine.screen_timer_ids == ()
        await session.pipeline.drain()

    asyncio.run(scenario())


def test_screen_timer_cancelled_when_leaving_screen() -> None:
    async def scenario() -> None:
        session, _ = await loaded_session(config=prototype_config())
        engine = session.engine
        engine.navigate("c")
        engine.navigate("b")
        session.scheduler.advance(10.0)
        assert engine.current_screen == "b"
        await session.pipeline.drain()

    asyncio.run(scenario())


def test_clock_ticks_push_formatted_time() -> None:
    async def scenario() -> None:
        session, bridge = await loaded_session(config=prototype_config())
        engine = session.engine
        assert engine.clock_timers == {}

        session.scheduler.advance(0.1)
        assert set(engine.clock_timers) == {12}
        session.scheduler.advance(1.0)
        await session.pipeline.drain()

        assert engine.dynamic_texts[12] == "09:05"
        assert bridge.texts[12] == "09:05"

        engine.stop_clocks()
        assert engine.clock_timers == {}

    asyncio.run(scenario())


def test_reapplying_config_cancels_previous_timers() -> None:
    async def scenario() -> None:
        session, _ = await loaded_session(config=prototype_config())
        session.scheduler.advance(0.1)
        engine = session.engine
        engine.navigate("c")
        engine.input_digit("1", "pin")

        session.apply_config(prototype_config())
        assert engine.current_screen == "a"
        assert engine.screen_timer_ids == ()
        assert engine.clock_timers == {}
        assert engine.dynamic_texts[13] == "--"
        await session.pipeline.drain()

    asyncio.run(scenario())


def test_slider_values_are_presentation_only() -> None:
    async def scenario() -> None:
        payload = {
            "elements": [
                {"layerId": 10, "type": "screen", "name": "a"},
                {"layerId": 11, "type": "slider", "min": 5, "max": 50},
            ],
            "screens": ["a"],
            "initialScreen": "a",
        }
        session, bridge = await loaded_session(config=payload_to_config(payload))
        engine = session.engine
        assert engine.slider_value(11) == 5.0
        assert engine.slider_value(99) == 0.0
        engine.set_slider_value(11, 20.0)
        await session.pipeline.drain()
        assert engine.slider_value(11) == 20.0
        assert bridge.composite_count() == 2

    asyncio.run(scenario())


def test_overrides_skip_layers_missing_from_document() -> None:
    async def scenario() -> None:
        payload = {
            "elements": [
                {"layerId": 10, "type": "screen", "name": "a"},
                {"layerId": 999, "type": "screen", "name": "ghost"},
                {"layerId": 998, "type": "highlight", "name": "h", "group": "g"},
            ],
            "screens": ["a", "ghost"],
            "initialScreen": "a",
        }
        session, _ = await loaded_session(config=payload_to_config(payload))
        assert 999 not in session.pipeline.overrides
        assert 998 not in session.pipeline.overrides
        assert session.engine.navigate("ghost") is True
        assert session.pipeline.overrides[10] is False
        await session.pipeline.drain()

    asyncio.run(scenario())


def test_latest_navigation_wins_when_renders_overlap() -> None:
    async def scenario() -> None:
        session, bridge = await loaded_session(config=prototype_config())
        published: list[CompositeUpdated] = []
        session.events.subscribe(CompositeUpdated, published.append)
        slow, fast = asyncio.Event(), asyncio.Event()
        bridge.gates.extend([slow, fast])

        before = session.pipeline.applied_sequence
        session.engine.navigate("b")
        session.engine.navigate("c")
        await asyncio.sleep(0)
        fast.set()
        while session.pipeline.in_flight > 1:
            await asyncio.sleep(0)
        slow.set()
        await session.pipeline.drain()

        assert session.engine.current_screen == "c"
        assert _screen_flags(session) == {10: False, 20: False, 60: True}
        assert session.pipeline.applied_sequence == before + 2
        assert [event.sequence for event in published] == [before + 2]
        assert int(session.pipeline.composite.pixels[0, 0, 0]) == bridge.composite_count()

    asyncio.run(scenario())


def test_clear_resets_state_and_cancels_every_timer() -> None:
    async def scenario() -> None:
        session, bridge = await loaded_session(config=prototype_config())
        engine = session.engine
        session.scheduler.advance(0.1)
        engine.input_digit("1", "pin")
        engine.set_slider_value(11, 3.0)
        engine.navigate("b")
        engine.show_highlight("yes")
        engine.show_popup("confirm")
        engine.navigate("c")
        assert engine.clock_timers and engine.screen_timer_ids
        await session.pipeline.drain()

        engine.clear()
        calls_after_clear = len(bridge.calls)
        session.scheduler.advance(10.0)
        await session.pipeline.drain()

        assert engine.config is None
        assert engine.current_screen is None
        assert engine.element_screen_map == {}
        assert engine.dynamic_texts == {}
        assert engine.slider_values == {}
        assert engine.selected_highlights == {}
        assert engine.active_popups == frozenset()
        assert engine.clock_timers == {}
        assert engine.screen_timer_ids == ()
        assert session.scheduler.queued_task_count == 0
        assert len(bridge.calls) == calls_after_clear

    asyncio.run(scenario())


def test_zero_delay_timers_bouncing_between_screens_do_not_stall() -> None:
    async def scenario() -> None:
        payload = {
            "elements": [
                {"layerId": 10, "type": "screen", "name": "a"},
                {"layerId": 20, "type": "screen", "name": "b"},
                {"layerId": 0, "type": "timer", "action": "navigate", "target": "b", "delay": 0, "triggerOn": ["a"]},
                {"layerId": 0, "type": "timer", "action": "navigate", "target": "a", "delay": 0, "triggerOn": ["b"]},
            ],
            "screens": ["a", "b"],
            "initialScreen": "a",
        }
        session, _ = await loaded_session(config=payload_to_config(payload))
        engine = session.engine

        assert session.scheduler.advance(0.0) == 1
        assert engine.current_screen == "b"
        assert session.scheduler.advance(0.0) == 1
        assert engine.current_screen == "a"
        assert len(engine.screen_timer_ids) == 1
        await session.pipeline.drain()

    asyncio.run(scenario())


def test_set_dynamic_text_pushes_unless_told_not_to() -> None:
    async def scenario() -> None:
        session, bridge = await loaded_session(config=prototype_config())
        engine = session.engine

        engine.set_dynamic_text(50, "9")
        engine.set_dynamic_text(51, "4", push=False)
        await session.pipeline.drain()

        assert engine.dynamic_texts[50] == "9"
        assert engine.dynamic_texts[51] == "4"
        assert bridge.texts[50] == "9"
        assert bridge.texts[51] == "-"

    asyncio.run(scenario())
