"""MQTT command routing.

Inbound topics have the shape ``<prefix>/set/<category>/<name>/<attribute>``.
Each message is handled in its own task so a slow controller call never holds
up the receive loop.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from unifi2mqtt.const import WIFI_REFETCH_DELAY
from unifi2mqtt.correlation import correlation_context
from unifi2mqtt.exceptions import ControllerError
from unifi2mqtt.logging_abstraction import get_logger
from unifi2mqtt.structs import LedOverride
from unifi2mqtt.utils import coerce_bool, decode_payload

if TYPE_CHECKING:
    from unifi2mqtt.mqtt.client import MQTTClient
    from unifi2mqtt.reconcile import ReconciliationEngine
    from unifi2mqtt.registry import IdentifierRegistry
    from unifi2mqtt.timers import TimerSet
    from unifi2mqtt.unifi_api import UnifiAPI

logger = get_logger(__name__)


class CommandRouter:
    """Helper class for routing ``set`` messages to controller calls."""

    lp: str = "mqtt:cmd:"
    wifi_timer: str = "wifi_refetch"

    def __init__(
        self,
        mqtt_client: MQTTClient,
        registry: IdentifierRegistry,
        api: UnifiAPI,
        engine: ReconciliationEngine,
        timers: TimerSet,
        wifi_refetch_delay: float = WIFI_REFETCH_DELAY,
    ) -> None:
        self.client: MQTTClient = mqtt_client
        self.registry: IdentifierRegistry = registry
        self.api: UnifiAPI = api
        self.engine: ReconciliationEngine = engine
        self.timers: TimerSet = timers
        self.wifi_refetch_delay: float = wifi_refetch_delay
        self._tasks: set[asyncio.Task[None]] = set()

    def dispatch(self, topic: str, payload: bytes) -> asyncio.Task[None]:
        """Handle a message in the background, keeping a reference until it finishes."""
        task = asyncio.create_task(self.handle_message(topic, payload), name=f"cmd:{topic}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def split_topic(self, topic: str) -> tuple[str, str, str] | None:
        """Return ``(category, name, attribute)`` for a ``set`` topic, else None."""
        prefix = f"{self.client.topic}/set/"
        if not topic.startswith(prefix):
            return None
        parts = topic[len(prefix) :].split("/")
        if len(parts) != 3 or not all(parts):
            return None
        category, name, attribute = parts
        return category, name, attribute

    async def handle_message(self, topic: str, payload: bytes) -> None:
        lp = f"{self.lp}handle:"
        with correlation_context():
            target = self.split_topic(topic)
            if target is None:
                logger.debug("%s ignoring %s", lp, topic)
                return
            category, name, attribute = target
            value = decode_payload(payload)
            logger.debug("%s %s %s %s = %r", lp, category, name, attribute, value)
            if category == "device" and attribute == "led":
                _ = await self.set_device_led(name, value)
            elif category == "wifi" and attribute == "enabled":
                _ = await self.set_wifi_enabled(name, value)
            else:
                logger.debug("%s unsupported command %s/%s", lp, category, attribute)

    async def set_device_led(self, name: str, value: object) -> bool:
        lp = f"{self.lp}led:"
        device_id = self.registry.resolve_device(name)
        if device_id is None:
            logger.warning("%s unknown device '%s'", lp, name)
            return False
        mode = LedOverride.normalize(value)
        logger.info("%s device '%s' led_override=%s", lp, name, mode, extra={"device_id": device_id})
        try:
            await self.api.set_device_led(device_id, mode)
        except ControllerError as e:
            logger.error("%s %s", lp, e, extra={"device": name})
            return False
        return await self.engine.refresh_devices()

    async def set_wifi_enabled(self, name: str, value: object) -> bool:
        lp = f"{self.lp}wifi:"
        wifi_id = self.registry.resolve_wireless(name)
        if wifi_id is None:
            logger.warning("%s unknown wireless network '%s'", lp, name)
            return False
        enabled = coerce_bool(value)
        logger.info("%s wireless network '%s' enabled=%s", lp, name, enabled, extra={"wifi_id": wifi_id})
        try:
            await self.api.set_wireless_enabled(wifi_id, enabled)
        except ControllerError as e:
            logger.error("%s %s", lp, e, extra={"network": name})
            return False
        # the controller takes a moment to apply wlan changes
        _ = self.timers.schedule(self.wifi_timer, self.wifi_refetch_delay, self.engine.refresh_wireless)
        return True
