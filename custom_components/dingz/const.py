"""Constants shared by the dingz puck integration."""

from __future__ import annotations

DOMAIN = "dingz"
DEVICE_ID_PREFIX = "dingz-"
DEFAULT_MODEL = "dingz"

API_PATH_PREFIX = "/api/v1/"

TRANSPORT_MQTT = "mqtt"
TRANSPORT_WEBHOOK = "webhook"

DEFAULT_POLL_INTERVAL_S = 3.0
DEFAULT_REQUEST_TIMEOUT_S = 10.0
DEFAULT_MQTT_HOST = "localhost"
DEFAULT_MQTT_PORT = 1883
DEFAULT_MQTT_SCOPE = "dingz"
DEFAULT_WEBHOOK_PORT = 0
DEFAULT_BROADCAST_PORT = 7979

MDNS_SERVICE_TYPE = "_http._tcp.local."
MDNS_NAME_PREFIX = "DINGZ"
BROADCAST_PACKET_SIZE = 8
BROADCAST_DEVICE_TYPE = 108

KEY_COUNT = 4
MOTION_WEBHOOK_INDEX = 5
SHADE_COMPANION_FALLBACK = 100

TARGET_TEMPERATURE_MIN = -55
TARGET_TEMPERATURE_MAX = 125
POWER_MAXIMUM_W = 300

THERMOSTAT_STATE_TO_MODE: dict[str, str] = {
    "heating": "heat",
    "cooling": "cool",
}
THERMOSTAT_MODES: tuple[str, ...] = ("off", "heat", "cool")
THERMOSTAT_STATES: tuple[str, ...] = ("off", "heating", "cooling")
THERMOSTAT_VALVE_TYPE = "heating_valve"
THERMOSTAT_VALVE_TITLE = "Thermostat Valve Power"

BUTTON_EVENT_SUFFIXES: tuple[str, ...] = (
    "single",
    "double",
    "triple",
    "quadruple",
    "long",
)

# Generic webhook action codes, see the device's "generic" action payload.
WEBHOOK_ACTION_EVENTS: dict[str, str] = {
    "1": "single",
    "2": "double",
    "3": "long",
    "20": "triple",
    "21": "quadruple",
}
WEBHOOK_ACTION_BEGIN: frozenset[str] = frozenset({"8", "begin"})
WEBHOOK_ACTION_END: frozenset[str] = frozenset({"9", "end"})

SHADE_MOTION_CODES: dict[str, int] = {
    "stop": 0,
    "up": 1,
    "down": 2,
}
