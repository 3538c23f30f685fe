"""Turn pushed device messages into canonical update records.

Two firmware generations publish state in different shapes: addressed MQTT
topics carrying JSON (or, for simple values, single legacy tokens) and the
flat ``index``/``action`` fields of the generic webhook. Both end up as the
same small set of records which :mod:`.reconciler` applies to a device.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from .connectivity import DecodeFailure
from .const import (
    KEY_COUNT,
    MOTION_WEBHOOK_INDEX,
    THERMOSTAT_STATE_TO_MODE,
    WEBHOOK_ACTION_BEGIN,
    WEBHOOK_ACTION_END,
    WEBHOOK_ACTION_EVENTS,
)

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PropertyUpdate:
    """Set property ``name`` to ``value``."""

    name: str
    value: Any


@dataclass(frozen=True, slots=True)
class EventFired:
    """Fire event ``name`` with optional ``data``."""

    name: str
    data: Any = None


@dataclass(frozen=True, slots=True)
class BoundsUpdate:
    """Replace the numeric bounds of property ``name``."""

    name: str
    minimum: float | None
    maximum: float | None


@dataclass(frozen=True, slots=True)
class ConnectivityUpdate:
    """The device reported itself online or offline."""

    connected: bool


@dataclass(frozen=True, slots=True)
class AnnounceRecord:
    """The device announced its current address."""

    address: str | None
    model: str | None = None


UpdateRecord = (
    PropertyUpdate | BoundsUpdate | EventFired | ConnectivityUpdate | AnnounceRecord
)


@dataclass(frozen=True, slots=True)
class TopicAddress:
    """Parts of a ``<scope>/<device>/<path...>`` topic."""

    scope: str
    device_id: str
    model: str | None
    category: str | None
    details: tuple[str, ...]

    @property
    def local_path(self) -> str:
        parts = [part for part in (self.category, *self.details) if part]
        return "/".join(parts)


@dataclass(frozen=True, slots=True)
class PushMessage:
    """A decoded push notification for one device."""

    device_id: str
    model: str | None
    records: tuple[UpdateRecord, ...]


CATEGORIES = frozenset(
    {
        "sensor",
        "power",
        "energy",
        "state",
        "event",
        "command",
        "online",
        "announce",
        "last_alive",
    }
)
_DEVICE_LEVEL_CATEGORIES = frozenset({"online", "announce", "last_alive"})

_BOOLEAN_TOKENS = {"s": True, "ss": True, "n": False}
_BUTTON_TOKENS = frozenset({"p", "h", "r"})
_MULTI_PRESS = re.compile(r"^m(\d+)$")
_THERMOSTAT_TARGET_FIX = re.compile(r'"target:"(?!\s*:)')
_MULTI_PRESS_EVENTS = {1: "single", 2: "double", 3: "triple", 4: "quadruple"}
_MODE_TO_STATE = {mode: state for state, mode in THERMOSTAT_STATE_TO_MODE.items()}


def split_topic(topic: str) -> TopicAddress | None:
    """Split ``topic`` into scope, device, optional model and category."""

    parts = topic.split("/")
    if len(parts) < 3 or not parts[1]:
        return None
    scope, device_id, *path = parts
    model: str | None = None
    if path[0] not in CATEGORIES:
        model, path = path[0], path[1:]
    category = path[0] if path else None
    return TopicAddress(
        scope=scope,
        device_id=device_id,
        model=model,
        category=category,
        details=tuple(path[1:]),
    )


def decode_payload(topic: str, raw: bytes | bytearray | str) -> Any:
    """Decode a pushed payload into JSON data or a legacy token value.

    Raises :class:`DecodeFailure` when the payload is neither.
    """

    if isinstance(raw, bytes | bytearray):
        text = raw.decode("utf-8", errors="replace")
    else:
        text = str(raw)
    text = text.strip()
    if topic.endswith("state/thermostat"):
        text = _THERMOSTAT_TARGET_FIX.sub('"target":', text)
    try:
        decoded = json.loads(text)
    except json.JSONDecodeError as err:
        if text in _BOOLEAN_TOKENS:
            return _BOOLEAN_TOKENS[text]
        if text in _BUTTON_TOKENS or _MULTI_PRESS.match(text):
            return text
        raise DecodeFailure(f"unrecognised payload {text!r} on {topic}") from err
    if isinstance(decoded, dict) and "target:" in decoded:
        decoded["target"] = decoded.pop("target:")
    return decoded


def normalize_topic_message(topic: str, raw: bytes | bytearray | str) -> PushMessage | None:
    """Decode one MQTT message, logging and dropping anything unusable."""

    address = split_topic(topic)
    if address is None or address.category is None:
        _LOGGER.warning("Ignoring message on unexpected topic %s", topic)
        return None
    try:
        payload = decode_payload(topic, raw)
    except DecodeFailure as err:
        _LOGGER.error("Dropping message: %s", err)
        return None
    try:
        records = normalize_message(address.category, address.details, payload)
    except (TypeError, ValueError) as err:
        _LOGGER.error("Dropping malformed message on %s: %s", topic, err)
        return None
    return PushMessage(
        device_id=address.device_id, model=address.model, records=tuple(records)
    )


def _parse_index(value: str | int | None) -> int | None:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.lower() in ("1", "true", "on", "online", "yes")
    return bool(value)


def button_records(key: int, code: Any) -> list[UpdateRecord]:
    """Map a symbolic button code for key ``key`` (1-based) to records."""

    key_id = f"key{key}"
    if code == "p":
        return [PropertyUpdate(key_id, True)]
    if code == "h":
        return []
    if code == "r":
        return [EventFired(f"{key_id}long"), PropertyUpdate(key_id, False)]
    match = _MULTI_PRESS.match(code) if isinstance(code, str) else None
    if match is None:
        _LOGGER.warning("Unhandled button code %r for %s", code, key_id)
        return []
    suffix = _MULTI_PRESS_EVENTS.get(int(match.group(1)))
    if suffix is None:
        return [PropertyUpdate(key_id, False)]
    return [EventFired(f"{key_id}{suffix}"), PropertyUpdate(key_id, False)]


def _thermostat_mode_and_state(payload: dict[str, Any]) -> tuple[str | None, str | None]:
    heat_cool = THERMOSTAT_STATE_TO_MODE.get(payload.get("mode"), None)
    if heat_cool is None and payload.get("mode") in THERMOSTAT_STATE_TO_MODE.values():
        heat_cool = payload["mode"]

    enabled: bool | None = None
    if "enabled" in payload:
        enabled = _as_bool(payload["enabled"])
    elif "status" in payload:
        enabled = payload["status"] == "on"

    active = _as_bool(payload["on"]) if "on" in payload else enabled

    mode = None
    if enabled is not None:
        mode = heat_cool if enabled and heat_cool else "off"
    state = None
    if active is not None:
        state = _MODE_TO_STATE[heat_cool] if active and heat_cool else "off"
    return mode, state


def _state_records(details: Sequence[str], payload: Any) -> list[UpdateRecord]:
    target = details[0] if details else None
    if target == "input":
        _LOGGER.warning("Unhandled input state %s: %s", "/".join(details), payload)
        return []
    if not isinstance(payload, dict):
        _LOGGER.warning("Expected an object for state/%s, got %r", target, payload)
        return []

    records: list[UpdateRecord] = []
    if target == "light":
        index = _parse_index(details[1] if len(details) > 1 else None)
        if index is None:
            return []
        dimmer_id = f"dimmer{index + 1}"
        if "turn" in payload:
            records.append(PropertyUpdate(dimmer_id, payload["turn"] == "on"))
        if "brightness" in payload:
            records.append(PropertyUpdate(f"{dimmer_id}Brightness", payload["brightness"]))
    elif target == "thermostat":
        mode, state = _thermostat_mode_and_state(payload)
        if mode is not None:
            records.append(PropertyUpdate("thermostatMode", mode))
        if state is not None:
            records.append(PropertyUpdate("thermostatState", state))
        if "target" in payload:
            records.append(PropertyUpdate("targetTemperature", payload["target"]))
    elif target == "motor":
        index = _parse_index(details[1] if len(details) > 1 else None)
        if index is None:
            return []
        shade_id = f"shade{index + 1}"
        if "position" in payload:
            records.append(PropertyUpdate(shade_id, payload["position"]))
        if "lamella" in payload:
            records.append(PropertyUpdate(f"{shade_id}Lamella", payload["lamella"]))
    elif target == "led":
        if "on" in payload:
            records.append(PropertyUpdate("led", payload["on"] in (1, True, "1", "on")))
        if all(channel in payload for channel in ("r", "g", "b")):
            color = "".join(
                f"{int(payload[channel]):02X}" for channel in ("r", "g", "b")
            )
            records.append(PropertyUpdate("ledColor", f"#{color}"))
    else:
        _LOGGER.warning("Unhandled state target %s", "/".join(details))
    return records


def normalize_message(
    category: str, details: Sequence[str], payload: Any
) -> list[UpdateRecord]:
    """Dispatch a decoded payload by category and sub-target."""

    sub_target = details[0] if details else None
    if category in ("command", "last_alive"):
        return []
    if category == "online":
        return [ConnectivityUpdate(_as_bool(payload))]
    if category == "announce":
        if not isinstance(payload, dict):
            _LOGGER.warning("Malformed announce payload %r", payload)
            return []
        return [AnnounceRecord(address=payload.get("ip"), model=payload.get("model"))]
    if category == "sensor":
        if sub_target == "temperature":
            return [PropertyUpdate("temperature", payload)]
        if sub_target == "light":
            return [PropertyUpdate("lightLevel", payload)]
    elif category == "power":
        index = _parse_index(details[1] if len(details) > 1 else None)
        if index is not None and sub_target == "motor":
            return [PropertyUpdate(f"shade{index + 1}Power", payload)]
        if index is not None and sub_target == "light":
            return [PropertyUpdate(f"dimmer{index + 1}Power", payload)]
    elif category == "energy":
        # Energy counters have no matching property.
        return []
    elif category == "state":
        return _state_records(details, payload)
    elif category == "event":
        index = _parse_index(details[1] if len(details) > 1 else None)
        if sub_target == "button" and index is not None:
            if index >= KEY_COUNT:
                _LOGGER.warning("Input used as button %s is not supported", index + 1)
                return []
            return button_records(index + 1, payload)
        if sub_target == "pir":
            if index == 0:
                return [PropertyUpdate("motion", _as_bool(payload))]
            return []
    _LOGGER.warning("Unhandled message %s/%s: %r", category, "/".join(details), payload)
    return []


def normalize_webhook(index: str | int, action: str | int) -> list[UpdateRecord]:
    """Map the generic webhook ``index``/``action`` fields to records."""

    slot = _parse_index(index)
    code = str(action).strip().lower()
    if slot is not None and 1 <= slot <= KEY_COUNT:
        key_id = f"key{slot}"
        suffix = WEBHOOK_ACTION_EVENTS.get(code)
        if suffix is not None:
            return [EventFired(f"{key_id}{suffix}")]
        if code in WEBHOOK_ACTION_BEGIN:
            return [PropertyUpdate(key_id, True)]
        if code in WEBHOOK_ACTION_END:
            return [PropertyUpdate(key_id, False)]
    elif slot == MOTION_WEBHOOK_INDEX:
        if code in WEBHOOK_ACTION_BEGIN:
            return [PropertyUpdate("motion", True)]
        if code in WEBHOOK_ACTION_END:
            return [PropertyUpdate("motion", False)]
    _LOGGER.warning("Unhandled webhook action %s for index %s", action, index)
    return []
