"""Core data structures for the UniFi MQTT bridge."""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

import uvloop
from pydantic import BaseModel, ConfigDict, Field, field_validator

from unifi2mqtt.const import DEFAULTS, VERBOSITY_LEVELS

if TYPE_CHECKING:
    from unifi2mqtt.bridge import Bridge

_EVENT_KEY_RE = re.compile(r"^EVT_([A-Z]{2})_(.+)$")
_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


class LedOverride(StrEnum):
    """LED override mode of a UniFi device."""

    ON = "on"
    OFF = "off"
    DEFAULT = "default"

    @classmethod
    def normalize(cls, value: object) -> LedOverride:
        """Map an arbitrary MQTT value onto an LED mode.

        "on", true and non-zero numbers map to ON; "off", false and zero map
        to OFF; anything else maps to DEFAULT.
        """
        if isinstance(value, str):
            folded = value.strip().casefold()
            if folded == cls.ON:
                return cls.ON
            if folded == cls.OFF:
                return cls.OFF
            return cls.DEFAULT
        if isinstance(value, (bool, int, float)):
            return cls.ON if value else cls.OFF
        return cls.DEFAULT


class ControllerRecord(BaseModel):
    """Base for records fetched from the controller; unknown fields are ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(alias="_id")


class WirelessNetwork(ControllerRecord):
    """A wireless network configuration (``rest/wlanconf`` entry)."""

    name: str
    enabled: bool = True


class Device(ControllerRecord):
    """An adopted UniFi device (``stat/device`` entry)."""

    name: str | None = None
    mac: str | None = None
    led_override: LedOverride = LedOverride.DEFAULT

    @field_validator("led_override", mode="before")
    @classmethod
    def _coerce_led(cls, value: object) -> LedOverride:
        return LedOverride.normalize(value)

    @property
    def label(self) -> str:
        """Name used in topics; unnamed devices fall back to their MAC."""
        return self.name or self.mac or self.id


class ClientSession(BaseModel):
    """An associated client as reported by ``stat/sta``."""

    model_config = ConfigDict(extra="ignore")

    mac: str
    essid: str | None = None
    hostname: str | None = None
    name: str | None = None
    assoc_time: int | None = None

    @property
    def label(self) -> str:
        """Name used in topics: hostname, then alias, then MAC."""
        return self.hostname or self.name or self.mac


@dataclass(slots=True)
class ControllerEvent:
    """A single event from the controller event stream.

    ``name`` is ``<subsystem>.<action>`` in snake case, e.g. ``wu.connected``
    for ``EVT_WU_Connected``. The stream itself emits ``ctrl.connect``,
    ``ctrl.disconnect`` and ``ctrl.error``.
    """

    name: str
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_controller(cls, item: dict[str, Any]) -> ControllerEvent:
        key = str(item.get("key", ""))
        match = _EVENT_KEY_RE.match(key)
        if match:
            subsystem, action = match.groups()
            name = f"{subsystem.lower()}.{_CAMEL_BOUNDARY_RE.sub('_', action).lower()}"
        else:
            name = key.lower() or "unknown"
        return cls(name=name, data=item)

    @property
    def action(self) -> str:
        return self.name.rpartition(".")[2]

    @property
    def ssid(self) -> str | None:
        return self.data.get("ssid")

    @property
    def mac(self) -> str | None:
        return self.data.get("user") or self.data.get("guest")

    @property
    def hostname(self) -> str | None:
        return self.data.get("hostname") or self.data.get("name") or self.mac

    @property
    def time(self) -> int | None:
        value = self.data.get("time")
        return int(value) if isinstance(value, (int, float)) else None


class BridgeEnv(BaseModel):
    """Validated runtime configuration."""

    name: str = str(DEFAULTS["name"])
    mqtt_url: str = str(DEFAULTS["mqtt_url"])
    unifi_host: str = str(DEFAULTS["unifi_host"])
    unifi_port: int = 8443
    unifi_user: str = str(DEFAULTS["unifi_user"])
    unifi_password: str
    unifi_site: str = str(DEFAULTS["unifi_site"])
    insecure: bool = False
    verbosity: str = str(DEFAULTS["verbosity"])
    resync_interval: float = 600

    @field_validator("verbosity")
    @classmethod
    def _check_verbosity(cls, value: str) -> str:
        folded = value.casefold()
        if folded not in VERBOSITY_LEVELS:
            msg = f"verbosity must be one of {sorted(VERBOSITY_LEVELS)}, got {value!r}"
            raise ValueError(msg)
        return folded

    @field_validator("mqtt_url")
    @classmethod
    def _check_mqtt_url(cls, value: str) -> str:
        parts = urlsplit(value)
        if parts.scheme not in ("mqtt", "mqtts", "tcp", "ssl") or not parts.hostname:
            msg = f"unsupported MQTT broker URL: {value!r}"
            raise ValueError(msg)
        return value

    @field_validator("resync_interval")
    @classmethod
    def _check_resync(cls, value: float) -> float:
        return max(value, 0)

    @property
    def log_level(self) -> int:
        return VERBOSITY_LEVELS[self.verbosity]

    @property
    def mqtt_tls(self) -> bool:
        return urlsplit(self.mqtt_url).scheme in ("mqtts", "ssl")

    @property
    def mqtt_host(self) -> str:
        return urlsplit(self.mqtt_url).hostname or "127.0.0.1"

    @property
    def mqtt_port(self) -> int:
        return urlsplit(self.mqtt_url).port or (8883 if self.mqtt_tls else 1883)

    @property
    def mqtt_username(self) -> str | None:
        return urlsplit(self.mqtt_url).username

    @property
    def mqtt_password(self) -> str | None:
        return urlsplit(self.mqtt_url).password


class GlobalObject:
    """Singleton container for process-wide services."""

    bridge: Bridge | None = None
    loop: uvloop.Loop | asyncio.AbstractEventLoop | None = None
    env: BridgeEnv | None = None

    _instance: GlobalObject | None = None

    def __new__(cls, *_args: Any, **_kwargs: Any) -> GlobalObject:
        """Ensure only one GlobalObject instance exists."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance
