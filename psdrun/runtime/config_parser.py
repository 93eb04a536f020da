"""Interaction config extraction and validation for AI-authored responses."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping

from psdrun.api.errors import ConfigError
from psdrun.api.interaction import (
    ElementType,
    InteractionConfig,
    InteractionElement,
    normalize_action,
    normalize_element_type,
)
from psdrun.diagnostics.json_codec import JSONDecodeError, dumps_text, loads

_LOG = logging.getLogger("psdrun.interaction.config")

_JSON_BLOCK = re.compile(r"```json\s*\n(.*?)\n```", re.DOTALL)
_REPLY_BLOCK = re.compile(r"```reply\s*\n(.*?)\n```", re.DOTALL)
_EXCESS_BLANK_LINES = re.compile(r"\n{3,}")

_KNOWN_FIELDS = frozenset(
    {
        "layerId",
        "type",
        "action",
        "target",
        "targets",
        "min",
        "max",
        "format",
        "name",
        "value",
        "showOn",
        "group",
        "delay",
        "triggerOn",
        "persistent",
    }
)


def extract_json_block(text: str) -> str | None:
    """Return the body of the first fenced ``json`` block, if any."""
    match = _JSON_BLOCK.search(text)
    if match is None:
        return None
    return match.group(1)


def extract_reply_block(text: str) -> tuple[str | None, str]:
    """Split an optional fenced ``reply`` suggestion out of response text."""
    match = _REPLY_BLOCK.search(text)
    if match is None:
        return None, text
    reply = match.group(1).strip()
    cleaned = _REPLY_BLOCK.sub("", text)
    cleaned = _EXCESS_BLANK_LINES.sub("\n\n", cleaned).strip()
    return reply, cleaned


def parse_ai_response(text: str) -> InteractionConfig | None:
    """Return the config embedded in AI text, or None when absent or invalid."""
    block = extract_json_block(text)
    if block is None:
        return None
    try:
        return parse_config_text(block)
    except ConfigError as exc:
        _LOG.warning("config_rejected reason=%s", exc)
        return None


def parse_config_text(text: str) -> InteractionConfig:
    try:
        payload = loads(text)
    except JSONDecodeError as exc:
        raise ConfigError(f"config is not valid JSON: {exc}") from exc
    return payload_to_config(payload)


def payload_to_config(payload: object) -> InteractionConfig:
    """Validate a decoded wire payload into an ``InteractionConfig``."""
    if not isinstance(payload, Mapping):
        raise ConfigError("config must be a JSON object")
    raw_elements = payload.get("elements")
    if not isinstance(raw_elements, list):
        raise ConfigError("config 'elements' must be an array")
    raw_screens = payload.get("screens")
    if not isinstance(raw_screens, list) or not all(isinstance(s, str) for s in raw_screens):
        raise ConfigError("config 'screens' must be an array of names")
    initial_screen = payload.get("initialScreen")
    if not isinstance(initial_screen, str) or not initial_screen:
        raise ConfigError("config 'initialScreen' is required")
    screens = tuple(raw_screens)
    if initial_screen not in screens:
        raise ConfigError(f"initialScreen {initial_screen!r} is not listed in screens")

    elements = tuple(_payload_to_element(item, position) for position, item in enumerate(raw_elements))
    for element in elements:
        if element.type == ElementType.SCREEN and element.name not in screens:
            raise ConfigError(
                f"screen element on layer {element.layer_id} names unknown screen {element.name!r}"
            )
    return InteractionConfig(elements=elements, screens=screens, initial_screen=initial_screen)


def dumps_config(config: InteractionConfig, *, pretty: bool = True) -> str:
    """Serialize a config back to wire JSON."""
    return dumps_text(config.to_payload(), pretty=pretty)


def _payload_to_element(item: object, position: int) -> InteractionElement:
    if not isinstance(item, Mapping):
        raise ConfigError(f"element #{position} must be an object")
    raw_layer_id = item.get("layerId")
    if isinstance(raw_layer_id, bool) or not isinstance(raw_layer_id, (int, float, str)):
        raise ConfigError(f"element #{position} has no usable layerId")
    try:
        layer_id = int(raw_layer_id)
    except ValueError as exc:
        raise ConfigError(f"element #{position} has non-numeric layerId") from exc
    raw_type = item.get("type")
    if not isinstance(raw_type, str) or not raw_type:
        raise ConfigError(f"element #{position} has no type")

    extras = {key: value for key, value in item.items() if key not in _KNOWN_FIELDS}
    raw_action = item.get("action")
    return InteractionElement(
        layer_id=layer_id,
        type=normalize_element_type(raw_type),
        action=normalize_action(raw_action if isinstance(raw_action, str) else None),
        target=_optional_text(item.get("target")),
        targets=_string_map(item.get("targets")),
        min=_optional_number(item.get("min")),
        max=_optional_number(item.get("max")),
        format=_optional_text(item.get("format")),
        name=_optional_text(item.get("name")),
        value=_optional_text(item.get("value")),
        show_on=_string_tuple(item.get("showOn")),
        group=_optional_text(item.get("group")),
        delay=_optional_number(item.get("delay")),
        trigger_on=_string_tuple(item.get("triggerOn")),
        persistent=item.get("persistent") if isinstance(item.get("persistent"), bool) else None,
        extras=extras,
    )


def _optional_text(raw: object) -> str | None:
    if raw is None or isinstance(raw, (dict, list)):
        return None
    if isinstance(raw, bool):
        return "true" if raw else "false"
    if isinstance(raw, float) and raw.is_integer():
        return str(int(raw))
    return str(raw)


def _optional_number(raw: object) -> float | None:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        return None
    return float(raw)


def _string_tuple(raw: object) -> tuple[str, ...] | None:
    if not isinstance(raw, list):
        return None
    return tuple(str(value) for value in raw)


def _string_map(raw: object) -> dict[str, str] | None:
    if not isinstance(raw, Mapping):
        return None
    return {str(key): str(value) for key, value in raw.items() if value is not None}
