"""Immutable flattened layer tree with precomputed parent index."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence

from psdrun.api.errors import LayerTreeError
from psdrun.api.layers import LayerKind, LayerNode, LayerTreeNode
from psdrun.runtime.visibility import compute_group_bounds, own_visibility


class LayerTree:
    """Pre-order layer sequence received once per document load.

    The sequence is validated as a balanced group/groupEnd encoding. Parent
    links are resolved once here so ancestor lookups cost O(depth) instead of
    a backward scan over the whole sequence.
    """

    def __init__(self, layers: Iterable[LayerNode]) -> None:
        self._layers: tuple[LayerNode, ...] = tuple(layers)
        self._index_by_id: dict[int, int] = {}
        self._parent_by_id: dict[int, int | None] = {}
        self._end_index_by_group: dict[int, int] = {}
        self._build_indexes()

    @classmethod
    def from_payload(cls, payload: Sequence[Mapping[str, object]]) -> LayerTree:
        return cls(LayerNode.from_payload(item) for item in payload)

    @property
    def layers(self) -> tuple[LayerNode, ...]:
        return self._layers

    def __len__(self) -> int:
        return len(self._layers)

    def __iter__(self) -> Iterator[LayerNode]:
        return iter(self._layers)

    def __contains__(self, layer_id: object) -> bool:
        return layer_id in self._index_by_id

    def get(self, layer_id: int) -> LayerNode | None:
        index = self._index_by_id.get(layer_id)
        if index is None:
            return None
        return self._layers[index]

    def index_of(self, layer_id: int) -> int | None:
        return self._index_by_id.get(layer_id)

    def content_layers(self) -> Iterator[LayerNode]:
        """Yield every node except groupEnd sentinels."""
        return (layer for layer in self._layers if layer.kind is not LayerKind.GROUP_END)

    def parent_id(self, layer_id: int) -> int | None:
        return self._parent_by_id.get(layer_id)

    def ancestor_ids(self, layer_id: int) -> tuple[int, ...]:
        """Return enclosing group ids, nearest first."""
        chain: list[int] = []
        parent = self._parent_by_id.get(layer_id)
        while parent is not None:
            chain.append(parent)
            parent = self._parent_by_id.get(parent)
        return tuple(chain)

    def depth_of(self, layer_id: int) -> int:
        return len(self.ancestor_ids(layer_id))

    def descendants(self, group_id: int) -> tuple[LayerNode, ...]:
        """Return every node strictly inside a group, groupEnd sentinels excluded."""
        start = self._index_by_id.get(group_id)
        end = self._end_index_by_group.get(group_id)
        if start is None or end is None:
            return ()
        return tuple(
            layer for layer in self._layers[start + 1 : end] if layer.kind is not LayerKind.GROUP_END
        )

    def effective_visible(self, layer_id: int, overrides: Mapping[int, bool]) -> bool:
        """Own visibility AND every ancestor's, using the parent index."""
        layer = self.get(layer_id)
        if layer is None:
            return False
        if not own_visibility(layer, overrides):
            return False
        for ancestor_id in self.ancestor_ids(layer_id):
            ancestor = self.get(ancestor_id)
            if ancestor is not None and not own_visibility(ancestor, overrides):
                return False
        return True

    def with_group_bounds(self) -> LayerTree:
        """Return a tree whose zero-area groups carry their children's union rect."""
        return LayerTree(compute_group_bounds(self._layers))

    def nested(self) -> list[LayerTreeNode]:
        """Return the hierarchy as nested nodes for tree presentations."""
        roots: list[LayerTreeNode] = []
        stack: list[LayerTreeNode] = []
        for layer in self._layers:
            if layer.kind is LayerKind.GROUP_END:
                stack.pop()
                continue
            node = LayerTreeNode(layer=layer)
            (stack[-1].children if stack else roots).append(node)
            if layer.kind is LayerKind.GROUP:
                stack.append(node)
        return roots

    def _build_indexes(self) -> None:
        open_groups: list[tuple[int, int]] = []
        for index, layer in enumerate(self._layers):
            if layer.kind is LayerKind.GROUP_END:
                if not open_groups:
                    raise LayerTreeError(f"groupEnd at index {index} closes no open group")
                group_id, _ = open_groups.pop()
                self._end_index_by_group[group_id] = index
                continue
            if layer.id in self._index_by_id:
                raise LayerTreeError(f"duplicate layer id {layer.id} at index {index}")
            self._index_by_id[layer.id] = index
            self._parent_by_id[layer.id] = open_groups[-1][0] if open_groups else None
            if layer.kind is LayerKind.GROUP:
                open_groups.append((layer.id, index))
        if open_groups:
            unclosed = ", ".join(str(group_id) for group_id, _ in open_groups)
            raise LayerTreeError(f"groups left open at end of sequence: {unclosed}")
