"""Derive a puck's capabilities and build its property/action/event schema."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from . import model
from .connectivity import PuckSetupError
from .const import (
    BUTTON_EVENT_SUFFIXES,
    KEY_COUNT,
    POWER_MAXIMUM_W,
    SHADE_MOTION_CODES,
    TARGET_TEMPERATURE_MAX,
    TARGET_TEMPERATURE_MIN,
    THERMOSTAT_MODES,
    THERMOSTAT_STATES,
    THERMOSTAT_VALVE_TITLE,
    THERMOSTAT_VALVE_TYPE,
)
from .model import PuckAction, PuckEvent, PuckProperty, ValueType

if TYPE_CHECKING:
    from .device import PuckDevice

_LOGGER = logging.getLogger(__name__)

Fetch = Callable[[str], Awaitable[Any]]

_BUTTON_EVENT_TYPES = {
    "single": "PressedEvent",
    "double": "DoublePressedEvent",
    "long": "LongPressedEvent",
}


class SetupPhase(str, Enum):
    """Construction stages; a device is announced only once refined."""

    RESOLVING = "resolving"
    SCHEMA_READY = "schema_ready"
    CONFIG_REFINED = "config_refined"
    ANNOUNCED = "announced"


@dataclass(frozen=True, slots=True)
class Capabilities:
    """Optional hardware features wired on a particular unit."""

    shade1: bool = False
    shade2: bool = False
    dimmer_group1: bool = False
    dimmer_group2: bool = False
    motion: bool = False
    thermostat: bool = False
    thermostat_output: int | None = None

    @classmethod
    def from_dip_config(
        cls,
        dip_config: int,
        *,
        motion: bool = False,
        thermostat: bool = False,
        thermostat_output: int | None = None,
    ) -> Capabilities:
        """Apply the fixed wiring truth tables for ``dip_config`` (0-3)."""

        return cls(
            shade1=dip_config in (0, 2),
            shade2=dip_config <= 1,
            dimmer_group1=dip_config in (1, 3),
            dimmer_group2=dip_config >= 2,
            motion=motion,
            thermostat=thermostat,
            thermostat_output=thermostat_output,
        )

    @property
    def has_shades(self) -> bool:
        return self.shade1 or self.shade2

    @property
    def has_dimmers(self) -> bool:
        return self.dimmer_group1 or self.dimmer_group2

    def has_shade(self, index: int) -> bool:
        """Return True when logical shade ``index`` (1-based) is wired."""

        return (index == 1 and self.shade1) or (index == 2 and self.shade2)

    def has_dimmer(self, index: int) -> bool:
        """Return True when logical dimmer ``index`` (1-based) is wired."""

        return self.dimmer_group1 if index <= 2 else self.dimmer_group2

    @property
    def shade_indices(self) -> list[int]:
        return [index for index in (1, 2) if self.has_shade(index)]

    @property
    def dimmer_indices(self) -> list[int]:
        return [index for index in (1, 2, 3, 4) if self.has_dimmer(index)]

    def semantic_types(self) -> list[str]:
        """Return the gateway capability names for this unit."""

        types = ["ColorControl", "PushButton", "TemperatureSensor"]
        if self.motion:
            types.append("MotionSensor")
        if self.has_shades:
            types.extend(("EnergyMonitor", "Shade"))
        if self.has_dimmers:
            types.append("Light")
        if self.thermostat:
            types.append("Thermostat")
        if (self.has_dimmers or self.thermostat) and "EnergyMonitor" not in types:
            types.append("EnergyMonitor")
        return types


@dataclass(frozen=True, slots=True)
class ResolvedConfiguration:
    """Outcome of the schema-defining configuration queries."""

    title: str | None
    capabilities: Capabilities


def _find_thermostat_output(outputs: Any) -> int | None:
    if isinstance(outputs, Mapping):
        outputs = outputs.get("outputs", [])
    for output in outputs or []:
        if not isinstance(output, Mapping):
            continue
        if output.get("type") == THERMOSTAT_VALVE_TYPE and output.get("enable"):
            return _optional_int(output.get("ph_out_id"))
    return None


def _optional_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


async def async_resolve(mac: str, fetch: Fetch) -> ResolvedConfiguration:
    """Run the one-shot configuration queries and derive capabilities."""

    system_config, info, thermostat, outputs = await asyncio.gather(
        fetch("system_config"),
        fetch("device"),
        fetch("thermostat"),
        fetch("outputs"),
    )
    if not isinstance(info, Mapping) or not isinstance(info.get(mac), Mapping):
        raise PuckSetupError(f"No device information returned for {mac}")
    device_info = info[mac]
    dip_config = _optional_int(device_info.get("dip_config"))
    if dip_config is None:
        raise PuckSetupError(f"Missing dip_config for {mac}")

    title = None
    if isinstance(system_config, Mapping):
        title = f"{system_config.get('room_name')} - {system_config.get('dingz_name')}"

    has_thermostat = bool(isinstance(thermostat, Mapping) and thermostat.get("active"))
    capabilities = Capabilities.from_dip_config(
        dip_config,
        motion=bool(device_info.get("has_pir")),
        thermostat=has_thermostat,
        thermostat_output=_find_thermostat_output(outputs) if has_thermostat else None,
    )
    _LOGGER.debug("Resolved capabilities for %s: %s", mac, capabilities)
    return ResolvedConfiguration(title=title, capabilities=capabilities)


def _power_property(name: str, title: str, *, visible: bool = True) -> PuckProperty:
    return PuckProperty(
        name,
        value_type=ValueType.NUMBER,
        title=title,
        read_only=True,
        visible=visible,
        unit="watt",
        semantic_type="InstantaneousPowerProperty",
        minimum=0,
        maximum=POWER_MAXIMUM_W,
    )


def _add_key(device: PuckDevice, index: int) -> None:
    key_id = f"key{index}"
    device.add_property(
        PuckProperty(
            key_id,
            value_type=ValueType.BOOLEAN,
            title=f"Key {index}",
            read_only=True,
            semantic_type="PushedProperty",
        )
    )
    for suffix in BUTTON_EVENT_SUFFIXES:
        device.add_event(
            PuckEvent(
                f"{key_id}{suffix}",
                title=f"Key {index} {suffix} press",
                semantic_type=_BUTTON_EVENT_TYPES.get(suffix),
            )
        )


def _add_dimmer(device: PuckDevice, index: int, capabilities: Capabilities) -> None:
    dimmer_id = f"dimmer{index}"
    visible = (index - 1) != capabilities.thermostat_output
    device.add_property(
        PuckProperty(
            dimmer_id,
            value_type=ValueType.BOOLEAN,
            title=f"Dimmer {index}",
            kind=model.dimmer(index),
            semantic_type="OnOffProperty",
            visible=visible,
        )
    )
    device.add_property(
        PuckProperty(
            f"{dimmer_id}Brightness",
            value_type=ValueType.INTEGER,
            title=f"Dimmer {index} Brightness",
            kind=model.dimmer(index),
            semantic_type="BrightnessProperty",
            unit="percent",
            minimum=0,
            maximum=100,
            visible=visible,
        )
    )
    device.add_property(_power_property(f"{dimmer_id}Power", f"Dimmer {index} Power"))
    if visible:
        device.add_action(
            PuckAction(
                f"{dimmer_id}toggle",
                title=f"Toggle dimmer {index}",
                kind=model.dimmer_toggle(index),
                semantic_type="ToggleAction",
            )
        )


def _add_shade(device: PuckDevice, index: int) -> None:
    shade_id = f"shade{index}"
    device.add_property(
        PuckProperty(
            shade_id,
            value_type=ValueType.INTEGER,
            title=f"Shade {index} Position",
            kind=model.shade_position(index),
            semantic_type="LevelProperty",
            unit="percent",
            minimum=0,
            maximum=100,
        )
    )
    device.add_property(
        PuckProperty(
            f"{shade_id}Lamella",
            value_type=ValueType.INTEGER,
            title=f"Shade {index} Lamella",
            kind=model.shade_lamella(index),
            semantic_type="LevelProperty",
            unit="percent",
            minimum=0,
            maximum=100,
        )
    )
    device.add_property(_power_property(f"{shade_id}Power", f"Shade {index} Power"))
    for motion in SHADE_MOTION_CODES:
        device.add_action(
            PuckAction(
                f"{shade_id}{motion}",
                title=f"Shade {index} {motion}",
                kind=model.shade_motion(index, motion),
            )
        )


def _add_thermostat(device: PuckDevice, capabilities: Capabilities) -> None:
    device.add_property(
        PuckProperty(
            "targetTemperature",
            value_type=ValueType.NUMBER,
            title="Target Temperature",
            kind=model.TARGET_TEMPERATURE,
            semantic_type="TargetTemperatureProperty",
            unit="degree celsius",
            minimum=TARGET_TEMPERATURE_MIN,
            maximum=TARGET_TEMPERATURE_MAX,
        )
    )
    device.add_property(
        PuckProperty(
            "thermostatMode",
            value_type=ValueType.STRING,
            title="Thermostat Mode",
            kind=model.THERMOSTAT_MODE,
            semantic_type="ThermostatModeProperty",
            enum=THERMOSTAT_MODES,
        )
    )
    device.add_property(
        PuckProperty(
            "thermostatState",
            value_type=ValueType.STRING,
            title="Thermostat State",
            read_only=True,
            semantic_type="HeatingCoolingProperty",
            enum=THERMOSTAT_STATES,
        )
    )
    if capabilities.thermostat_output is None:
        return
    valve_id = f"dimmer{capabilities.thermostat_output + 1}Power"
    existing = device.find_property(valve_id)
    if existing is None:
        device.add_property(_power_property(valve_id, THERMOSTAT_VALVE_TITLE))
    else:
        existing.title = THERMOSTAT_VALVE_TITLE


def build_schema(device: PuckDevice, capabilities: Capabilities) -> None:
    """Register every property, action and event ``capabilities`` allow."""

    device.add_property(
        PuckProperty(
            "led",
            value_type=ValueType.BOOLEAN,
            title="LED",
            kind=model.LED,
            semantic_type="OnOffProperty",
        )
    )
    device.add_property(
        PuckProperty(
            "ledColor",
            value_type=ValueType.STRING,
            title="LED Color",
            kind=model.LED_COLOR,
            semantic_type="ColorProperty",
        )
    )
    device.add_property(
        PuckProperty(
            "lightLevel",
            value_type=ValueType.INTEGER,
            title="Brightness",
            read_only=True,
            unit="lux",
            minimum=0,
        )
    )
    device.add_property(
        PuckProperty(
            "temperature",
            value_type=ValueType.NUMBER,
            title="Temperature",
            read_only=True,
            unit="degree celsius",
            semantic_type="TemperatureProperty",
        )
    )
    for index in range(1, KEY_COUNT + 1):
        _add_key(device, index)
    for index in capabilities.dimmer_indices:
        _add_dimmer(device, index, capabilities)
    for index in capabilities.shade_indices:
        _add_shade(device, index)
    if capabilities.motion:
        device.add_property(
            PuckProperty(
                "motion",
                value_type=ValueType.BOOLEAN,
                title="Motion",
                read_only=True,
                semantic_type="MotionProperty",
            )
        )
    if capabilities.thermostat:
        _add_thermostat(device, capabilities)


def _entry(config: Any, key: str, index: int) -> Mapping[str, Any] | None:
    if not isinstance(config, Mapping):
        return None
    entries = config.get(key)
    if not isinstance(entries, list) or index >= len(entries):
        return None
    entry = entries[index]
    return entry if isinstance(entry, Mapping) else None


def apply_blind_config(device: PuckDevice, index: int, config: Any) -> None:
    """Refine shade ``index`` from the ``blind_config`` response."""

    shade_config = _entry(config, "blinds", index - 1)
    if shade_config is None:
        _LOGGER.warning("No blind configuration for shade %s on %s", index, device.id)
        return
    shade_id = f"shade{index}"
    position = device.find_property(shade_id)
    lamella = device.find_property(f"{shade_id}Lamella")
    power = device.find_property(f"{shade_id}Power")
    if position is None or lamella is None or power is None:
        return
    lamella.visible = shade_config.get("type") == "blind"
    if shade_config.get("min_value") is not None:
        position.minimum = shade_config["min_value"]
    if shade_config.get("max_value") is not None:
        position.maximum = shade_config["max_value"]
    name = shade_config.get("name")
    if not name:
        return
    position.title = name
    lamella.title = f"{name} Lamella"
    power.title = f"{name} Power"
    titles = {"up": f"{name} up", "down": f"{name} down", "stop": f"Stop {name}"}
    for motion, title in titles.items():
        action = device.find_action(f"{shade_id}{motion}")
        if action is not None:
            action.title = title


def apply_dimmer_config(
    device: PuckDevice, index: int, config: Any, capabilities: Capabilities
) -> None:
    """Refine dimmer ``index`` from the ``dimmer_config`` response."""

    if index - 1 == capabilities.thermostat_output:
        return
    dimmer_config = _entry(config, "dimmers", index - 1)
    if dimmer_config is None:
        _LOGGER.warning("No dimmer configuration for dimmer %s on %s", index, device.id)
        return
    dimmer_id = f"dimmer{index}"
    visible = bool(dimmer_config.get("active")) and dimmer_config.get("type") == "light"
    properties = [
        device.find_property(name)
        for name in (dimmer_id, f"{dimmer_id}Brightness", f"{dimmer_id}Power")
    ]
    toggle = device.find_action(f"{dimmer_id}toggle")
    for prop in properties:
        if prop is not None:
            prop.visible = visible
    if toggle is not None:
        toggle.visible = visible
    name = dimmer_config.get("name")
    if not name:
        return
    on_off, brightness, power = properties
    if on_off is not None:
        on_off.title = name
    if brightness is not None:
        brightness.title = f"{name} Brightness"
    if power is not None:
        power.title = f"{name} Power"
    if toggle is not None:
        toggle.title = f"Toggle {name}"


async def async_refine(
    device: PuckDevice, capabilities: Capabilities, fetch: Fetch
) -> None:
    """Fetch shade and dimmer line details and apply them in place."""

    async def _none() -> None:
        return None

    blind_config, dimmer_config = await asyncio.gather(
        fetch("blind_config") if capabilities.has_shades else _none(),
        fetch("dimmer_config") if capabilities.has_dimmers else _none(),
    )
    if blind_config is not None:
        for index in capabilities.shade_indices:
            apply_blind_config(device, index, blind_config)
    if dimmer_config is not None:
        for index in capabilities.dimmer_indices:
            apply_dimmer_config(device, index, dimmer_config, capabilities)
