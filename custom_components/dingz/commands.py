"""Translate property writes and action invocations into device commands.

Each property kind maps to one handler, bound when the schema is built.
Handlers issue exactly one transport call: an MQTT publish below the
device's ``command`` topic when the bus transport is active, otherwise a
REST ``POST``. Thermostat writes always use REST since the bus has no
thermostat command.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from .const import SHADE_COMPANION_FALLBACK, SHADE_MOTION_CODES
from .model import KindTag, PropertyKind

if TYPE_CHECKING:
    from .device import PuckDevice

_LOGGER = logging.getLogger(__name__)

WriteHandler = Callable[["PuckDevice", PropertyKind, Any], Awaitable[bool]]
ActionHandler = Callable[["PuckDevice", PropertyKind], Awaitable[None]]


def _companion_value(device: PuckDevice, name: str, fallback: Any) -> Any:
    """Read the cached value of ``name`` or ``fallback`` when unavailable."""

    prop = device.find_property(name)
    if prop is None or prop.value is None:
        return fallback
    return prop.value


def split_color(value: str) -> tuple[int, int, int]:
    """Split ``#RRGGBB`` (leading ``#`` optional) into channel integers."""

    digits = value.lstrip("#")
    if len(digits) != 6:
        msg = f"Expected six hex digits, got {value!r}"
        raise ValueError(msg)
    return int(digits[0:2], 16), int(digits[2:4], 16), int(digits[4:6], 16)


async def _write_led(device: PuckDevice, kind: PropertyKind, value: Any) -> bool:
    if device.uses_mqtt:
        await device.async_publish("command/led", {"on": 1 if value else 0})
    else:
        await device.async_api_post(
            "led/set", data={"action": "on" if value else "off"}
        )
    return True


async def _write_led_color(device: PuckDevice, kind: PropertyKind, value: Any) -> bool:
    if not value:
        return False
    red, green, blue = split_color(value)
    if device.uses_mqtt:
        await device.async_publish("command/led", {"r": red, "g": green, "b": blue})
    else:
        await device.async_api_post(
            "led/set",
            data={"color": f"{red:02X}{green:02X}{blue:02X}", "mode": "rgb"},
        )
    return True


async def _post_thermostat(device: PuckDevice, mode: Any, target: Any) -> None:
    switch = "off" if mode in (None, "off") else "on"
    params = {"temp": target} if target is not None else None
    await device.async_api_post(f"thermostat/{switch}", params=params)


async def _write_target_temperature(
    device: PuckDevice, kind: PropertyKind, value: Any
) -> bool:
    mode = _companion_value(device, "thermostatMode", None)
    await _post_thermostat(device, mode, value)
    return True


async def _write_thermostat_mode(
    device: PuckDevice, kind: PropertyKind, value: Any
) -> bool:
    target = _companion_value(device, "targetTemperature", None)
    await _post_thermostat(device, value, target)
    return True


async def _send_shade(device: PuckDevice, index: int, position: Any, lamella: Any) -> None:
    if device.uses_mqtt:
        await device.async_publish(
            f"command/motor/{index}", {"position": position, "lamella": lamella}
        )
    else:
        await device.async_api_post(
            f"shade/{index}", params={"blind": position, "lamella": lamella}
        )


async def _write_shade_position(
    device: PuckDevice, kind: PropertyKind, value: Any
) -> bool:
    lamella = _companion_value(
        device, f"shade{kind.index}Lamella", SHADE_COMPANION_FALLBACK
    )
    await _send_shade(device, kind.hardware_index, value, lamella)
    return True


async def _write_shade_lamella(
    device: PuckDevice, kind: PropertyKind, value: Any
) -> bool:
    position = _companion_value(device, f"shade{kind.index}", SHADE_COMPANION_FALLBACK)
    await _send_shade(device, kind.hardware_index, position, value)
    return True


async def _write_dimmer(device: PuckDevice, kind: PropertyKind, value: Any) -> bool:
    # TODO: dimmer on/off and brightness writes need the light command payload.
    _LOGGER.debug("No device command for dimmer %s writes", kind.index)
    return True


async def _move_shade(device: PuckDevice, kind: PropertyKind) -> None:
    motion = kind.motion or ""
    if motion not in SHADE_MOTION_CODES:
        _LOGGER.error("Unknown shade motion %r", motion)
        return
    if device.uses_mqtt:
        await device.async_publish(
            f"command/motor/{kind.hardware_index}",
            {"motion": SHADE_MOTION_CODES[motion]},
        )
    else:
        await device.async_api_post(f"shade/{kind.hardware_index}/{motion}")


async def _toggle_dimmer(device: PuckDevice, kind: PropertyKind) -> None:
    if device.uses_mqtt:
        await device.async_publish(
            f"command/light/{kind.hardware_index}", {"turn": "toggle"}
        )
    else:
        await device.async_api_post(f"dimmer/{kind.hardware_index}/toggle")


_WRITE_HANDLERS: dict[KindTag, WriteHandler] = {
    KindTag.LED: _write_led,
    KindTag.LED_COLOR: _write_led_color,
    KindTag.TARGET_TEMPERATURE: _write_target_temperature,
    KindTag.THERMOSTAT_MODE: _write_thermostat_mode,
    KindTag.SHADE_POSITION: _write_shade_position,
    KindTag.SHADE_LAMELLA: _write_shade_lamella,
    KindTag.DIMMER: _write_dimmer,
}

_ACTION_HANDLERS: dict[KindTag, ActionHandler] = {
    KindTag.SHADE_MOTION: _move_shade,
    KindTag.DIMMER_TOGGLE: _toggle_dimmer,
}


def write_handler_for(kind: PropertyKind) -> WriteHandler | None:
    """Return the handler for writes to a property of ``kind``, if any."""

    return _WRITE_HANDLERS.get(kind.tag)


def action_handler_for(kind: PropertyKind) -> ActionHandler | None:
    """Return the handler invoked for an action of ``kind``, if any."""

    return _ACTION_HANDLERS.get(kind.tag)
