"""Property, action and event containers exposed by a puck."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class KindTag(str, Enum):
    """Discriminator for the outbound behaviour of a property or action."""

    PASSIVE = "passive"
    LED = "led"
    LED_COLOR = "led_color"
    TARGET_TEMPERATURE = "target_temperature"
    THERMOSTAT_MODE = "thermostat_mode"
    SHADE_POSITION = "shade_position"
    SHADE_LAMELLA = "shade_lamella"
    SHADE_MOTION = "shade_motion"
    DIMMER = "dimmer"
    DIMMER_TOGGLE = "dimmer_toggle"


@dataclass(frozen=True, slots=True)
class PropertyKind:
    """Tagged variant describing what a write to a property or action means.

    ``index`` is the 1-based logical slot for shade and dimmer kinds and
    ``motion`` names the shade movement for :attr:`KindTag.SHADE_MOTION`.
    """

    tag: KindTag
    index: int | None = None
    motion: str | None = None

    @property
    def hardware_index(self) -> int:
        """Return the 0-based index the device uses for this slot."""

        if self.index is None:
            msg = f"{self.tag.value} is not indexed"
            raise ValueError(msg)
        return self.index - 1


PASSIVE = PropertyKind(KindTag.PASSIVE)
LED = PropertyKind(KindTag.LED)
LED_COLOR = PropertyKind(KindTag.LED_COLOR)
TARGET_TEMPERATURE = PropertyKind(KindTag.TARGET_TEMPERATURE)
THERMOSTAT_MODE = PropertyKind(KindTag.THERMOSTAT_MODE)


def shade_position(index: int) -> PropertyKind:
    return PropertyKind(KindTag.SHADE_POSITION, index)


def shade_lamella(index: int) -> PropertyKind:
    return PropertyKind(KindTag.SHADE_LAMELLA, index)


def shade_motion(index: int, motion: str) -> PropertyKind:
    return PropertyKind(KindTag.SHADE_MOTION, index, motion)


def dimmer(index: int) -> PropertyKind:
    return PropertyKind(KindTag.DIMMER, index)


def dimmer_toggle(index: int) -> PropertyKind:
    return PropertyKind(KindTag.DIMMER_TOGGLE, index)


class ValueType(str, Enum):
    """Semantic value types understood by the host gateway."""

    BOOLEAN = "boolean"
    INTEGER = "integer"
    NUMBER = "number"
    STRING = "string"


class PuckProperty:
    """A single typed value exposed by a device."""

    def __init__(
        self,
        name: str,
        *,
        value_type: ValueType,
        title: str,
        kind: PropertyKind = PASSIVE,
        read_only: bool = False,
        visible: bool = True,
        unit: str | None = None,
        semantic_type: str | None = None,
        minimum: float | None = None,
        maximum: float | None = None,
        enum: tuple[str, ...] | None = None,
    ) -> None:
        """Describe the property; its name and value type never change."""

        self._name = name
        self._value_type = value_type
        self._kind = kind
        self.title = title
        self.read_only = read_only
        self.visible = visible
        self.unit = unit
        self.semantic_type = semantic_type
        self.minimum = minimum
        self.maximum = maximum
        self.enum = enum
        self._value: Any = None
        self.push_sequence = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def value_type(self) -> ValueType:
        return self._value_type

    @property
    def kind(self) -> PropertyKind:
        return self._kind

    @property
    def value(self) -> Any:
        """Return the last cached value."""

        return self._value

    def coerce(self, raw: Any) -> Any:
        """Convert ``raw`` into this property's value type.

        ``None`` passes through so an unknown reading can be represented.
        """

        if raw is None:
            return None
        if self._value_type is ValueType.BOOLEAN:
            if isinstance(raw, str):
                return raw.lower() in ("1", "true", "on", "yes")
            return bool(raw)
        if self._value_type is ValueType.INTEGER:
            return int(round(float(raw)))
        if self._value_type is ValueType.NUMBER:
            return float(raw)
        return str(raw)

    def set_cached_value(self, raw: Any) -> bool:
        """Store ``raw`` after coercion and report whether it changed."""

        value = self.coerce(raw)
        if value == self._value:
            return False
        self._value = value
        return True

    def as_dict(self) -> dict[str, Any]:
        """Serialise the description and current value."""

        description: dict[str, Any] = {
            "name": self._name,
            "title": self.title,
            "type": self._value_type.value,
            "readOnly": self.read_only,
            "visible": self.visible,
            "value": self._value,
        }
        if self.semantic_type is not None:
            description["@type"] = self.semantic_type
        if self.unit is not None:
            description["unit"] = self.unit
        if self.minimum is not None:
            description["minimum"] = self.minimum
        if self.maximum is not None:
            description["maximum"] = self.maximum
        if self.enum is not None:
            description["enum"] = list(self.enum)
        return description


@dataclass(slots=True)
class PuckAction:
    """An invocable operation such as moving a shade or toggling a dimmer."""

    name: str
    title: str
    kind: PropertyKind
    visible: bool = True
    semantic_type: str | None = None

    def as_dict(self) -> dict[str, Any]:
        description: dict[str, Any] = {"title": self.title, "visible": self.visible}
        if self.semantic_type is not None:
            description["@type"] = self.semantic_type
        return description


@dataclass(frozen=True, slots=True)
class PuckEvent:
    """A discrete occurrence such as a button press."""

    name: str
    title: str
    semantic_type: str | None = None

    def as_dict(self) -> dict[str, Any]:
        description: dict[str, Any] = {"title": self.title}
        if self.semantic_type is not None:
            description["@type"] = self.semantic_type
        return description
