from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import datetime

import numpy as np

from psdrun.api.errors import RenderBridgeError
from psdrun.api.interaction import InteractionConfig
from psdrun.api.layers import LayerKind, LayerNode, Rect
from psdrun.api.render import Bitmap, LayerImage, ParsedDocument
from psdrun.runtime.config import RuntimeConfig
from psdrun.runtime.config_parser import payload_to_config
from psdrun.runtime.hint_store import MemoryHintStore
from psdrun.runtime.session import DocumentSession


def group(layer_id: int, name: str = "", *, visible: bool = True, rect: Rect = Rect()) -> LayerNode:
    return LayerNode(id=layer_id, name=name or f"group{layer_id}", kind=LayerKind.GROUP, rect=rect, own_visible=visible)


def leaf(
    layer_id: int,
    name: str = "",
    *,
    visible: bool = True,
    rect: Rect = Rect(0, 0, 10, 10),
) -> LayerNode:
    return LayerNode(id=layer_id, name=name or f"layer{layer_id}", kind=LayerKind.LEAF, rect=rect, own_visible=visible)


def end() -> LayerNode:
    return LayerNode(id=-1, name="</group>", kind=LayerKind.GROUP_END)


# Three screen folders; popup and highlights inside "b"; a root-level banner.
PROTOTYPE_LAYERS: tuple[LayerNode, ...] = (
    group(10, "screen_a"),
    leaf(11, "go_b", rect=Rect(0, 0, 40, 20)),
    leaf(12, "clock_text"),
    leaf(13, "pin_display"),
    leaf(14, "digit_1", rect=Rect(0, 30, 20, 20)),
    leaf(15, "digit_2", rect=Rect(30, 30, 20, 20)),
    leaf(16, "clear", rect=Rect(60, 30, 20, 20)),
    end(),
    group(20, "screen_b"),
    leaf(21, "back", rect=Rect(0, 0, 40, 20)),
    leaf(22, "open_popup", rect=Rect(50, 0, 40, 20)),
    group(30, "popup", visible=False),
    leaf(31, "popup_close", rect=Rect(10, 10, 30, 10)),
    end(),
    leaf(40, "hl_yes", visible=False),
    leaf(41, "hl_no", visible=False),
    leaf(42, "pick_yes", rect=Rect(0, 50, 20, 20)),
    leaf(43, "pick_no", rect=Rect(30, 50, 20, 20)),
    leaf(50, "d1"),
    leaf(51, "d2"),
    end(),
    group(60, "screen_c"),
    leaf(61, "c_body"),
    end(),
    leaf(70, "banner", rect=Rect(0, 90, 100, 10)),
)

PROTOTYPE_PAYLOAD: dict[str, object] = {
    "elements": [
        {"layerId": 10, "type": "screen", "name": "a"},
        {"layerId": 20, "type": "screen", "name": "b"},
        {"layerId": 60, "type": "screen", "name": "c"},
        {"layerId": 11, "type": "button", "action": "navigate", "target": "b"},
        {"layerId": 12, "type": "clock", "format": "HH:mm"},
        {"layerId": 13, "type": "display", "name": "pin", "value": "--"},
        {"layerId": 14, "type": "input_digit", "action": "input_digit", "value": "1", "target": "pin"},
        {"layerId": 15, "type": "input_digit", "action": "input_digit", "value": "2", "target": "pin"},
        {"layerId": 16, "type": "clear_input", "action": "clear_input", "target": "pin"},
        {"layerId": 21, "type": "button", "action": "navigate", "target": "a"},
        {"layerId": 22, "type": "button", "action": "show_popup", "target": "confirm"},
        {"layerId": 30, "type": "popup", "name": "confirm"},
        {"layerId": 31, "type": "button", "action": "hide_popup"},
        {"layerId": 40, "type": "highlight", "name": "yes", "group": "vote"},
        {"layerId": 41, "type": "highlight", "name": "no", "group": "vote"},
        {"layerId": 42, "type": "button", "action": "show_highlight", "target": "yes"},
        {"layerId": 43, "type": "button", "action": "toggle_highlight", "target": "no"},
        {"layerId": 50, "type": "display", "name": "d1", "value": "-"},
        {"layerId": 51, "type": "display", "name": "d2", "value": "-"},
        {"layerId": 70, "type": "tap_area", "action": "navigate", "target": "c", "showOn": ["a", "b"]},
        {
            "layerId": 0,
            "type": "timer",
            "action": "navigate",
            "target": "a",
            "delay": 3,
            "triggerOn": ["c"],
        },
    ],
    "screens": ["a", "b", "c"],
    "initialScreen": "a",
}


def prototype_config() -> InteractionConfig:
    return payload_to_config(PROTOTYPE_PAYLOAD)


class FakeRenderBridge:
    """Records every push; composites can be gated to control completion order."""

    def __init__(self, layers: Sequence[LayerNode] = PROTOTYPE_LAYERS, *, width: int = 100, height: int = 100) -> None:
        self.document = ParsedDocument(width=width, height=height, layers=tuple(layers))
        self.calls: list[tuple[object, ...]] = []
        self.texts: dict[int, str] = {}
        self.batches: list[tuple[tuple[int, ...], tuple[int, ...]]] = []
        self.gates: list[asyncio.Event] = []
        self.fail_parse = False
        self.fail_composite = False
        self.fail_text_ids: set[int] = set()
        self.hints = '{"layers": {}}'
        self.restored_hints: list[str] = []

    async def parse_document(self, data: bytes) -> ParsedDocument:
        self.calls.append(("parse", len(data)))
        if self.fail_parse:
            raise RenderBridgeError("not a layered document")
        return self.document

    async def apply_visibility_batch(self, hidden_ids: Sequence[int], shown_ids: Sequence[int]) -> Bitmap:
        call_number = len(self.batches) + 1
        self.batches.append((tuple(hidden_ids), tuple(shown_ids)))
        self.calls.append(("composite", tuple(hidden_ids), tuple(shown_ids)))
        if self.gates:
            await self.gates.pop(0).wait()
        if self.fail_composite:
            raise RenderBridgeError("compositor crashed")
        pixels = np.full((1, 1, 4), call_number, dtype=np.uint8)
        return Bitmap(width=1, height=1, pixels=pixels)

    async def set_layer_text(self, layer_id: int, text: str) -> None:
        self.calls.append(("text", layer_id, text))
        if layer_id in self.fail_text_ids:
            raise RenderBridgeError(f"layer {layer_id} is not a text layer")
        self.texts[layer_id] = text

    async def get_layer_image(self, layer_id: int) -> LayerImage:
        self.calls.append(("image", layer_id))
        return LayerImage(x=0, y=0, bitmap=Bitmap.blank(2, 2))

    async def export_layer_tree_json(self) -> str:
        return '{"layers": []}'

    async def get_persisted_hints(self) -> str:
        return self.hints

    async def set_persisted_hints(self, payload: str) -> int:
        self.restored_hints.append(payload)
        return 1

    def composite_count(self) -> int:
        return sum(1 for call in self.calls if call[0] == "composite")


class FixedClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


async def loaded_session(
    layers: Sequence[LayerNode] = PROTOTYPE_LAYERS,
    *,
    config: InteractionConfig | None = None,
    runtime_config: RuntimeConfig | None = None,
    clock: FixedClock | None = None,
) -> tuple[DocumentSession, FakeRenderBridge]:
    bridge = FakeRenderBridge(layers)
    session = DocumentSession(
        bridge,
        hint_store=MemoryHintStore(),
        config=runtime_config,
        now=clock or FixedClock(datetime(2026, 1, 2, 9, 5, 7)),
    )
    assert await session.load(b"document-bytes", "mock.psd")
    if config is not None:
        session.apply_config(config)
        await session.pipeline.drain()
    return session, bridge
