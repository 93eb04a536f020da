"""Render collaborator boundary contracts.

Document parsing, compositing and text shaping live behind ``RenderBridge``;
the runtime only exchanges layer ids, text and RGBA bitmaps with it.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

import numpy as np

from psdrun.api.layers import LayerNode


@dataclass(frozen=True, slots=True)
class Bitmap:
    """RGBA pixels shaped ``(height, width, 4)``, row-major, uint8."""

    width: int
    height: int
    pixels: np.ndarray
    premultiplied: bool = False

    @classmethod
    def from_rgba_bytes(
        cls, width: int, height: int, data: bytes | bytearray | memoryview, *, premultiplied: bool = False
    ) -> Bitmap:
        """Wrap a flat RGBA buffer, validating its size."""
        if width < 0 or height < 0:
            raise ValueError("bitmap dimensions must be >= 0")
        expected = width * height * 4
        if len(data) != expected:
            raise ValueError(f"bitmap buffer holds {len(data)} bytes, expected {expected}")
        pixels = np.frombuffer(bytes(data), dtype=np.uint8).reshape((height, width, 4))
        return cls(width=width, height=height, pixels=pixels, premultiplied=premultiplied)

    @classmethod
    def blank(cls, width: int, height: int) -> Bitmap:
        return cls(width=width, height=height, pixels=np.zeros((height, width, 4), dtype=np.uint8))

    def straight(self) -> Bitmap:
        """Return straight-alpha copy; no-op for already straight bitmaps."""
        if not self.premultiplied:
            return self
        rgba = self.pixels.astype(np.float32)
        alpha = rgba[..., 3:4]
        safe_alpha = np.where(alpha > 0.0, alpha, 1.0)
        rgb = np.where(alpha > 0.0, rgba[..., :3] * 255.0 / safe_alpha, 0.0)
        out = np.empty_like(self.pixels)
        out[..., :3] = np.clip(np.rint(rgb), 0, 255).astype(np.uint8)
        out[..., 3] = self.pixels[..., 3]
        return Bitmap(width=self.width, height=self.height, pixels=out, premultiplied=False)

    def to_bytes(self) -> bytes:
        return self.pixels.tobytes()


@dataclass(frozen=True, slots=True)
class LayerImage:
    """Single layer raster positioned in document space."""

    x: int
    y: int
    bitmap: Bitmap


@dataclass(frozen=True, slots=True)
class ParsedDocument:
    width: int
    height: int
    layers: tuple[LayerNode, ...]


class RenderBridge(Protocol):
    """Asynchronous native parsing/compositing backend."""

    async def parse_document(self, data: bytes) -> ParsedDocument:
        """Parse document bytes into a flat pre-order layer sequence."""

    async def apply_visibility_batch(
        self, hidden_ids: Sequence[int], shown_ids: Sequence[int]
    ) -> Bitmap:
        """Composite with authored visibility flipped for the given ids."""

    async def set_layer_text(self, layer_id: int, text: str) -> None:
        """Replace text content of a text layer."""

    async def get_layer_image(self, layer_id: int) -> LayerImage:
        """Return the raster of one layer."""

    async def export_layer_tree_json(self) -> str:
        """Return layer tree JSON with export hints."""

    async def get_persisted_hints(self) -> str:
        """Return non-default export hints as JSON."""

    async def set_persisted_hints(self, payload: str) -> int:
        """Restore export hints; returns number of restored entries."""


class HintStore(Protocol):
    """Key-value persistence for per-document export hints."""

    def get(self, key: str) -> str | None:
        """Return stored value or None."""

    def set(self, key: str, value: str) -> None:
        """Store value."""
