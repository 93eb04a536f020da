"""Effective visibility resolution over the flattened layer sequence.

Layers arrive in pre-order: a group precedes its children and a groupEnd
sentinel closes it::

    0: group "Screen1"
    1:   layer "Child1"
    2:   group "SubGroup"
    3:     layer "Child2"
    4:   groupEnd
    5: groupEnd

Ancestors of index 3 are found by walking backward: a groupEnd means a closed
sibling subtree is being skipped, the group that opened it is consumed without
being treated as an ancestor, and any group met while no subtree is being
skipped encloses the starting layer.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from psdrun.api.layers import LayerKind, LayerNode, Rect

if TYPE_CHECKING:
    from psdrun.runtime.layer_tree import LayerTree


@dataclass(frozen=True, slots=True)
class VisibilityBatch:
    """Layer ids whose authored visibility must be flipped for one composite."""

    hidden_ids: tuple[int, ...]
    shown_ids: tuple[int, ...]


def own_visibility(layer: LayerNode, overrides: Mapping[int, bool]) -> bool:
    """Override value when present, authored flag otherwise."""
    override = overrides.get(layer.id)
    if override is None:
        return layer.own_visible
    return override


def find_layer_index(layers: Sequence[LayerNode], layer_id: int) -> int | None:
    for index, layer in enumerate(layers):
        if layer.id == layer_id and layer.kind is not LayerKind.GROUP_END:
            return index
    return None


def iter_ancestor_indexes(layers: Sequence[LayerNode], index: int) -> Iterator[int]:
    """Yield indexes of enclosing groups, nearest first, by backward scan."""
    depth = 0
    for cursor in range(index - 1, -1, -1):
        kind = layers[cursor].kind
        if kind is LayerKind.GROUP_END:
            depth += 1
        elif kind is LayerKind.GROUP:
            if depth == 0:
                yield cursor
            else:
                depth -= 1


def ancestor_group_ids(layers: Sequence[LayerNode], index: int) -> list[int]:
    return [layers[cursor].id for cursor in iter_ancestor_indexes(layers, index)]


def compute_effective_visibility(
    layers: Sequence[LayerNode],
    layer_id: int,
    overrides: Mapping[int, bool],
) -> bool:
    """Return whether a layer and every ancestor are visible.

    Unknown ids resolve to ``False``. Evaluation stops at the first hidden
    layer on the chain.
    """
    index = find_layer_index(layers, layer_id)
    if index is None:
        return False
    if not own_visibility(layers[index], overrides):
        return False
    for ancestor_index in iter_ancestor_indexes(layers, index):
        if not own_visibility(layers[ancestor_index], overrides):
            return False
    return True


def compute_group_bounds(layers: Sequence[LayerNode]) -> list[LayerNode]:
    """Give zero-area groups the union rect of their sized descendants.

    Groups that already carry a rect, or contain nothing with area, are
    returned unchanged.
    """
    result = list(layers)
    for index, layer in enumerate(result):
        if layer.kind is not LayerKind.GROUP or layer.rect.has_area:
            continue
        bounds: Rect | None = None
        depth = 0
        for child in result[index + 1 :]:
            if child.kind is LayerKind.GROUP_END:
                if depth == 0:
                    break
                depth -= 1
                continue
            if child.kind is LayerKind.GROUP:
                depth += 1
            if child.rect.has_area:
                bounds = child.rect if bounds is None else bounds.union(child.rect)
        if bounds is not None:
            result[index] = layer.with_rect(bounds)
    return result


def compute_visibility_batch(tree: LayerTree, overrides: Mapping[int, bool]) -> VisibilityBatch:
    """Diff effective visibility against authored flags for every content layer."""
    hidden: list[int] = []
    shown: list[int] = []
    for layer in tree.content_layers():
        effective = tree.effective_visible(layer.id, overrides)
        if effective and not layer.own_visible:
            shown.append(layer.id)
        elif not effective and layer.own_visible:
            hidden.append(layer.id)
    return VisibilityBatch(hidden_ids=tuple(hidden), shown_ids=tuple(shown))
