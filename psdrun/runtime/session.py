"""Document session: one loaded layer tree plus its interaction runtime."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from pathlib import Path

from psdrun.api.errors import ConfigError, LayerTreeError
from psdrun.api.events import (
    ConfigApplied,
    ConfigRejected,
    DocumentLoaded,
    EventBus,
    create_event_bus,
)
from psdrun.api.interaction import InteractionConfig
from psdrun.api.render import HintStore, LayerImage, RenderBridge
from psdrun.runtime.config import RuntimeConfig, load_runtime_config
from psdrun.runtime.config_parser import dumps_config, extract_json_block, parse_config_text
from psdrun.runtime.errors import RECOVERABLE_RUNTIME_ERRORS, log_recoverable
from psdrun.runtime.hint_store import JsonFileHintStore, hints_key
from psdrun.runtime.interaction_engine import InteractionEngine
from psdrun.runtime.layer_tree import LayerTree
from psdrun.runtime.render_pipeline import RenderPipeline
from psdrun.runtime.scheduler import Scheduler, run_scheduler

_LOG = logging.getLogger("psdrun.runtime")


class DocumentSession:
    """Owns the layer tree, overrides, render pipeline and interaction engine."""

    def __init__(
        self,
        bridge: RenderBridge,
        *,
        hint_store: HintStore | None = None,
        events: EventBus | None = None,
        scheduler: Scheduler | None = None,
        config: RuntimeConfig | None = None,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._bridge = bridge
        self._hint_store = hint_store
        self._runtime_config = config or RuntimeConfig()
        self.events = events or create_event_bus()
        self.scheduler = scheduler or Scheduler()
        self.pipeline = RenderPipeline(
            bridge,
            events=self.events,
            drop_stale=self._runtime_config.drop_stale_renders,
        )
        self.engine = InteractionEngine(
            self.pipeline,
            self.scheduler,
            events=self.events,
            config=self._runtime_config,
            now=now,
        )
        self.file_name: str | None = None
        self.width = 0
        self.height = 0
        self.load_error: str | None = None
        self._loading = False

    @property
    def tree(self) -> LayerTree | None:
        return self.pipeline.tree

    @property
    def interaction_config(self) -> InteractionConfig | None:
        return self.engine.config

    @property
    def error(self) -> str | None:
        return self.load_error or self.pipeline.error

    async def load(self, data: bytes, file_name: str) -> bool:
        """Parse a document, derive group bounds, restore hints and render once."""
        if self._loading:
            _LOG.debug("document_load_skipped reason=busy file=%s", file_name)
            return False
        self._loading = True
        self.load_error = None
        try:
            try:
                parsed = await self._bridge.parse_document(data)
                tree = LayerTree(parsed.layers).with_group_bounds()
            except (LayerTreeError, *RECOVERABLE_RUNTIME_ERRORS) as exc:
                self.load_error = f"Failed to load {file_name}: {exc}"
                _LOG.warning("document_load_failed file=%s error=%s", file_name, exc)
                return False

            self.engine.clear()
            self.pipeline.reset(tree)
            self.file_name = file_name
            self.width = parsed.width
            self.height = parsed.height
            _LOG.info(
                "document_loaded file=%s size=%dx%d layers=%d",
                file_name,
                parsed.width,
                parsed.height,
                len(tree),
            )
            await self._restore_hints(file_name)
            self.events.publish(
                DocumentLoaded(
                    file_name=file_name,
                    width=parsed.width,
                    height=parsed.height,
                    layer_count=len(tree),
                )
            )
            self.pipeline.recomposite()
            await self.pipeline.drain()
            return True
        finally:
            self._loading = False

    def toggle_layer_visibility(self, layer_id: int) -> int | None:
        return self.pipeline.toggle(layer_id)

    def set_multiple_visibility(self, overrides: Mapping[int, bool]) -> int | None:
        return self.pipeline.apply_overrides(overrides)

    def recomposite(self) -> int | None:
        return self.pipeline.recomposite()

    def effective_visibility(self, layer_id: int) -> bool:
        return self.pipeline.effective_visible(layer_id)

    def own_visibility(self, layer_id: int) -> bool:
        return self.pipeline.own_visible(layer_id)

    def apply_config(self, config: InteractionConfig) -> None:
        self.engine.set_config(config)
        self.events.publish(
            ConfigApplied(
                screens=config.screens,
                initial_screen=config.initial_screen,
                element_count=len(config.elements),
            )
        )

    def apply_ai_response(self, text: str) -> bool:
        """Install the config embedded in AI text; keep the current one otherwise."""
        block = extract_json_block(text)
        if block is None:
            return False
        try:
            config = parse_config_text(block)
        except ConfigError as exc:
            _LOG.warning("config_rejected reason=%s", exc)
            self.events.publish(ConfigRejected(reason=str(exc)))
            return False
        self.apply_config(config)
        return True

    def describe_config(self) -> str | None:
        """Current config as wire JSON, for follow-up AI context."""
        config = self.engine.config
        if config is None:
            return None
        return dumps_config(config)

    async def export_layer_tree_json(self) -> str | None:
        if self.tree is None:
            return None
        return await self._bridge.export_layer_tree_json()

    async def layer_image(self, layer_id: int) -> LayerImage | None:
        if self.tree is None or layer_id not in self.tree:
            return None
        return await self._bridge.get_layer_image(layer_id)

    async def save_hints(self) -> bool:
        if self._hint_store is None or self.file_name is None:
            return False
        payload = await self._bridge.get_persisted_hints()
        self._hint_store.set(hints_key(self.file_name), payload)
        _LOG.debug("hints_saved file=%s bytes=%d", self.file_name, len(payload))
        return True

    async def run_timers(self, stop: asyncio.Event) -> None:
        """Drive screen timers and clocks until ``stop`` is set."""
        await run_scheduler(
            self.scheduler,
            tick_seconds=self._runtime_config.scheduler_tick_seconds,
            stop=stop,
        )

    def clear(self) -> None:
        self.engine.clear()
        self.pipeline.reset(None)
        self.file_name = None
        self.width = 0
        self.height = 0
        self.load_error = None

    async def _restore_hints(self, file_name: str) -> None:
        if self._hint_store is None:
            return
        saved = self._hint_store.get(hints_key(file_name))
        if not saved:
            return
        try:
            restored = await self._bridge.set_persisted_hints(saved)
        except RECOVERABLE_RUNTIME_ERRORS:
            log_recoverable(_LOG, f"hints_restore_failed file={file_name}", level=logging.WARNING)
            return
        _LOG.info("hints_restored file=%s count=%d", file_name, restored)


def create_document_session(
    *,
    bridge: RenderBridge,
    hint_store: HintStore | None = None,
) -> DocumentSession:
    """Build a session from environment configuration."""
    config = load_runtime_config()
    if hint_store is None and config.hints_path is not None:
        hint_store = JsonFileHintStore(Path(config.hints_path))
    return DocumentSession(bridge, hint_store=hint_store, config=config)
