"""Sequenced render pushes to the render collaborator.

Callers mutate local state first and then submit; each submission becomes one
asyncio task that pushes its texts and issues at most one recomposite. Every
request carries a monotonically increasing sequence number so a composite that
completes after a newer one has been applied is discarded instead of
overwriting it.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine, Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from psdrun.api.events import CompositeUpdated, EventBus, RenderFailed
from psdrun.api.render import Bitmap, RenderBridge
from psdrun.runtime.errors import RECOVERABLE_RUNTIME_ERRORS
from psdrun.runtime.layer_tree import LayerTree
from psdrun.runtime.visibility import VisibilityBatch, compute_visibility_batch, own_visibility

_LOG = logging.getLogger("psdrun.render")

TaskSpawner = Callable[[Coroutine[Any, Any, None]], "asyncio.Task[None]"]


@dataclass(frozen=True, slots=True)
class RenderRequest:
    """One logical render: text pushes, then an optional single recomposite."""

    sequence: int
    texts: tuple[tuple[int, str], ...] = ()
    batch: VisibilityBatch | None = None


def _spawn_on_running_loop(coro: Coroutine[Any, Any, None]) -> "asyncio.Task[None]":
    return asyncio.get_running_loop().create_task(coro)


class RenderPipeline:
    """Owns visibility overrides and the latest composite for one document."""

    def __init__(
        self,
        bridge: RenderBridge,
        *,
        events: EventBus | None = None,
        drop_stale: bool = True,
        spawn: TaskSpawner | None = None,
    ) -> None:
        self._bridge = bridge
        self._events = events
        self._drop_stale = drop_stale
        self._spawn = spawn or _spawn_on_running_loop
        self._tree: LayerTree | None = None
        self._overrides: dict[int, bool] = {}
        self._next_sequence = 1
        self._applied_sequence = 0
        self._tasks: set[asyncio.Task[None]] = set()
        self.composite: Bitmap | None = None
        self.error: str | None = None

    @property
    def tree(self) -> LayerTree | None:
        return self._tree

    @property
    def overrides(self) -> Mapping[int, bool]:
        return MappingProxyType(self._overrides)

    @property
    def applied_sequence(self) -> int:
        return self._applied_sequence

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def reset(self, tree: LayerTree | None) -> None:
        """Bind a freshly loaded tree (or none) and drop session overrides."""
        self._tree = tree
        self._overrides.clear()
        self.composite = None
        self.error = None

    def own_visible(self, layer_id: int) -> bool:
        if self._tree is None:
            return False
        layer = self._tree.get(layer_id)
        if layer is None:
            return False
        return own_visibility(layer, self._overrides)

    def effective_visible(self, layer_id: int) -> bool:
        if self._tree is None:
            return False
        return self._tree.effective_visible(layer_id, self._overrides)

    def apply_overrides(
        self,
        delta: Mapping[int, bool],
        *,
        texts: Iterable[tuple[int, str]] = (),
    ) -> int | None:
        """Merge an override batch, then push texts and recomposite once."""
        self._overrides.update(delta)
        return self._submit(tuple(texts), recomposite=True)

    def toggle(self, layer_id: int) -> int | None:
        if self._tree is None or layer_id not in self._tree:
            return None
        return self.apply_overrides({layer_id: not self.own_visible(layer_id)})

    def push_texts(self, texts: Iterable[tuple[int, str]], *, recomposite: bool = True) -> int | None:
        return self._submit(tuple(texts), recomposite=recomposite)

    def recomposite(self) -> int | None:
        return self._submit((), recomposite=True)

    async def drain(self) -> None:
        """Wait until every issued push has completed."""
        while self._tasks:
            await asyncio.gather(*tuple(self._tasks))

    def _submit(self, texts: tuple[tuple[int, str], ...], *, recomposite: bool) -> int | None:
        if self._tree is None:
            return None
        batch = compute_visibility_batch(self._tree, self._overrides) if recomposite else None
        if not texts and batch is None:
            return None
        request = RenderRequest(sequence=self._next_sequence, texts=texts, batch=batch)
        self._next_sequence += 1
        task = self._spawn(self._run(request))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return request.sequence

    async def _run(self, request: RenderRequest) -> None:
        for layer_id, text in request.texts:
            try:
                await self._bridge.set_layer_text(layer_id, text)
            except RECOVERABLE_RUNTIME_ERRORS as exc:
                self._fail(request.sequence, f"set_layer_text failed for layer {layer_id}: {exc}")
        batch = request.batch
        if batch is None:
            return
        try:
            bitmap = await self._bridge.apply_visibility_batch(batch.hidden_ids, batch.shown_ids)
        except RECOVERABLE_RUNTIME_ERRORS as exc:
            self._fail(request.sequence, f"composite failed: {exc}")
            return
        if self._drop_stale and request.sequence < self._applied_sequence:
            _LOG.debug(
                "composite_discarded_stale sequence=%d applied=%d",
                request.sequence,
                self._applied_sequence,
            )
            return
        self._applied_sequence = max(self._applied_sequence, request.sequence)
        self.composite = bitmap.straight()
        self.error = None
        if self._events is not None:
            self._events.publish(
                CompositeUpdated(sequence=request.sequence, width=bitmap.width, height=bitmap.height)
            )

    def _fail(self, sequence: int, message: str) -> None:
        _LOG.warning("render_failed sequence=%d error=%s", sequence, message)
        self.error = message
        if self._events is not None:
            self._events.publish(RenderFailed(sequence=sequence, message=message))
