"""Apply canonical update records and full state snapshots to a device."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import TYPE_CHECKING, Any

from .capabilities import Capabilities
from .const import THERMOSTAT_STATE_TO_MODE
from .normalizer import (
    AnnounceRecord,
    BoundsUpdate,
    ConnectivityUpdate,
    EventFired,
    PropertyUpdate,
    UpdateRecord,
)

if TYPE_CHECKING:
    from .device import PuckDevice

_LOGGER = logging.getLogger(__name__)


def hsv_to_rgb(hsv: str) -> str:
    """Convert a ``"h;s;v"`` triple (degrees, percent, percent) to ``RRGGBB``."""

    hue_text, saturation_text, value_text = hsv.split(";")
    hue = int(hue_text)
    saturation = int(saturation_text) / 100
    value = int(value_text) / 100
    chroma = value * saturation
    x = chroma * (1 - abs((hue / 60) % 2 - 1))
    m = value - chroma
    if hue < 60:
        red, green, blue = chroma, x, 0.0
    elif hue < 120:
        red, green, blue = x, chroma, 0.0
    elif hue < 180:
        red, green, blue = 0.0, chroma, x
    elif hue < 240:
        red, green, blue = 0.0, x, chroma
    elif hue < 300:
        red, green, blue = x, 0.0, chroma
    else:
        red, green, blue = chroma, 0.0, x
    return "".join(
        f"{int((channel + m) * 255):02X}" for channel in (red, green, blue)
    )


def apply_records(
    device: PuckDevice,
    records: Iterable[UpdateRecord],
    *,
    poll_started: int | None = None,
) -> list[str]:
    """Apply ``records`` to ``device`` and return the changed property names.

    Push updates (``poll_started`` is None) stamp each property with a new
    push sequence number. Poll updates skip any property stamped after the
    poll began so a fresher push value is never replaced by the snapshot.
    """

    changed: list[str] = []
    for record in records:
        if isinstance(record, PropertyUpdate):
            if _apply_property(device, record, poll_started):
                changed.append(record.name)
        elif isinstance(record, BoundsUpdate):
            prop = device.find_property(record.name)
            if prop is None:
                continue
            if record.minimum is not None:
                prop.minimum = record.minimum
            if record.maximum is not None:
                prop.maximum = record.maximum
        elif isinstance(record, EventFired):
            event = device.find_event(record.name)
            if event is None:
                _LOGGER.debug("%s has no event %s", device.id, record.name)
                continue
            device.fire_event(event, record.data)
        elif isinstance(record, ConnectivityUpdate):
            device.connectivity.set_connected(record.connected)
        elif isinstance(record, AnnounceRecord):
            # Announcements are routed through discovery by the coordinator.
            continue
    return changed


def _apply_property(
    device: PuckDevice, record: PropertyUpdate, poll_started: int | None
) -> bool:
    prop = device.find_property(record.name)
    if prop is None:
        return False
    if poll_started is not None and prop.push_sequence > poll_started:
        _LOGGER.debug(
            "Keeping pushed value of %s.%s over poll data", device.id, record.name
        )
        return False
    try:
        changed = prop.set_cached_value(record.value)
    except (TypeError, ValueError) as err:
        _LOGGER.warning(
            "Invalid value %r for %s.%s: %s", record.value, device.id, record.name, err
        )
        return False
    if poll_started is None:
        prop.push_sequence = device.next_push_sequence()
    if changed:
        device.notify_property_changed(prop)
    return changed


def _power(power_outputs: Sequence[Any], index: int) -> Any:
    if index < 0 or index >= len(power_outputs):
        return None
    entry = power_outputs[index]
    if isinstance(entry, Mapping):
        return entry.get("value")
    return None


def _absolute_index(entry: Mapping[str, Any]) -> int | None:
    index = entry.get("index")
    if isinstance(index, Mapping):
        index = index.get("absolute")
    try:
        return int(index)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None


def snapshot_records(
    capabilities: Capabilities, state: Mapping[str, Any]
) -> list[UpdateRecord]:
    """Convert a ``GET state`` snapshot into update records.

    Hardware reports dimmers, blinds and power outputs by absolute 0-based
    index; only slots whose wiring group is present are mapped.
    """

    records: list[UpdateRecord] = []
    sensors = state.get("sensors") or {}
    power_outputs = sensors.get("power_outputs") or []

    if sensors.get("brightness") is not None:
        records.append(PropertyUpdate("lightLevel", sensors["brightness"]))
    if "room_temperature" in sensors:
        records.append(PropertyUpdate("temperature", sensors["room_temperature"]))

    led = state.get("led")
    if isinstance(led, Mapping):
        if "on" in led:
            records.append(PropertyUpdate("led", led["on"]))
        color = hsv_to_rgb(led["hsv"]) if led.get("mode") == "hsv" else led.get("rgb")
        if color:
            records.append(PropertyUpdate("ledColor", f"#{str(color).upper()}"))

    for entry in state.get("dimmers") or []:
        absolute = _absolute_index(entry)
        if absolute is None or not capabilities.has_dimmer(absolute + 1):
            continue
        dimmer_id = f"dimmer{absolute + 1}"
        records.append(PropertyUpdate(dimmer_id, entry.get("on")))
        records.append(PropertyUpdate(f"{dimmer_id}Brightness", entry.get("value")))
        records.append(PropertyUpdate(f"{dimmer_id}Power", _power(power_outputs, absolute)))

    for entry in state.get("blinds") or []:
        absolute = _absolute_index(entry)
        if absolute is None or not capabilities.has_shade(absolute + 1):
            continue
        shade_id = f"shade{absolute + 1}"
        records.append(PropertyUpdate(shade_id, entry.get("position")))
        records.append(PropertyUpdate(f"{shade_id}Lamella", entry.get("lamella")))
        base_index = absolute * 2
        motor_power = _power(power_outputs, base_index) or _power(
            power_outputs, base_index + 1
        )
        records.append(PropertyUpdate(f"{shade_id}Power", motor_power))

    thermostat = state.get("thermostat")
    if capabilities.thermostat and isinstance(thermostat, Mapping) and thermostat.get("active"):
        records.append(PropertyUpdate("targetTemperature", thermostat.get("target_temp")))
        records.append(
            BoundsUpdate(
                "targetTemperature",
                thermostat.get("min_target_temp"),
                thermostat.get("max_target_temp"),
            )
        )
        heat_cool = THERMOSTAT_STATE_TO_MODE.get(thermostat.get("mode"), "off")
        mode = heat_cool if thermostat.get("enabled") else "off"
        records.append(PropertyUpdate("thermostatMode", mode))
        thermostat_state = thermostat.get("mode") if thermostat.get("on") else "off"
        records.append(PropertyUpdate("thermostatState", thermostat_state))
        output = capabilities.thermostat_output
        if output is not None:
            records.append(
                PropertyUpdate(f"dimmer{output + 1}Power", _power(power_outputs, output))
            )
    return [
        record
        for record in records
        if not (isinstance(record, PropertyUpdate) and record.value is None)
    ]


async def async_poll(device: PuckDevice) -> bool:
    """Fetch the device snapshot and reconcile it; False when skipped."""

    if not device.connectivity.should_poll():
        return False
    poll_started = device.push_sequence
    state = await device.async_api_get("state")
    if state is None or device.removed:
        return False
    if not isinstance(state, Mapping):
        _LOGGER.warning("Unexpected state payload from %s: %r", device.id, state)
        return False
    apply_records(
        device,
        snapshot_records(device.capabilities, state),
        poll_started=poll_started,
    )
    return True
