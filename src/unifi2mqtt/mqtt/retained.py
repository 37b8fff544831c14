"""Start-of-day collection of retained client presence.

A previous run may have left clients published as present. On the first bus
connection the broker replays those retained messages; they are collected as
candidates until no matching message arrived for the drain window. The next
full snapshot then publishes every candidate that is really gone as absent.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import aiomqtt

from unifi2mqtt.const import RETAINED_DRAIN_WINDOW
from unifi2mqtt.exceptions import MalformedPayloadError
from unifi2mqtt.logging_abstraction import get_logger

if TYPE_CHECKING:
    from unifi2mqtt.mqtt.client import MQTTClient
    from unifi2mqtt.presence import PresenceTracker
    from unifi2mqtt.timers import TimerSet

logger = get_logger(__name__)


class RetainedClientDrain:
    """Collects retained ``status/wifi/+/client/+`` messages during a quiet window."""

    lp: str = "mqtt:retained:"
    timer_name: str = "retained_drain"

    def __init__(
        self,
        mqtt_client: MQTTClient,
        tracker: PresenceTracker,
        timers: TimerSet,
        window: float = RETAINED_DRAIN_WINDOW,
    ) -> None:
        self.client: MQTTClient = mqtt_client
        self.tracker: PresenceTracker = tracker
        self.timers: TimerSet = timers
        self.window: float = window
        self.started: bool = False
        self.finished: bool = False

    @property
    def pattern(self) -> str:
        return f"{self.client.topic}/status/wifi/+/client/+"

    @property
    def active(self) -> bool:
        return self.started and not self.finished

    async def start(self) -> None:
        """Subscribe and open the window. Only the first call has any effect."""
        lp = f"{self.lp}start:"
        if self.started:
            return
        self.started = True
        logger.info("%s collecting retained clients from %s", lp, self.pattern)
        await self.client.subscribe(self.pattern)
        self._restart_window()

    def matches(self, topic: str) -> bool:
        return self.active and aiomqtt.Topic(topic).matches(self.pattern)

    async def handle(self, topic: str, payload: bytes) -> None:
        lp = f"{self.lp}handle:"
        if not self.active:
            return
        self._restart_window()
        if not payload:
            # cleared retained message
            logger.debug("%s empty payload on %s", lp, topic)
            return
        parts = topic.split("/")
        network, hostname = parts[-3], parts[-1]
        try:
            present = self.parse(topic, payload)
        except MalformedPayloadError as e:
            logger.error("%s %s", lp, e, extra={"topic": topic})
            return
        if present:
            logger.debug("%s retained candidate %s/%s", lp, network, hostname)
            self.tracker.record_retained(network, hostname)

    @staticmethod
    def parse(topic: str, payload: bytes) -> bool:
        """Decode a presence payload: ``{"val": bool, ...}`` or a bare bool."""
        try:
            value = json.loads(payload)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedPayloadError(topic, payload, str(e)) from e
        if isinstance(value, dict):
            value = value.get("val")
        if not isinstance(value, bool):
            raise MalformedPayloadError(topic, payload, f"expected a boolean, got {value!r}")
        return value

    def _restart_window(self) -> None:
        _ = self.timers.schedule(self.timer_name, self.window, self._finish)

    async def _finish(self) -> None:
        lp = f"{self.lp}finish:"
        self.finished = True
        logger.info(
            "%s retained clients received (%d candidates)",
            lp,
            sum(len(hosts) for hosts in self.tracker.retained.values()),
        )
        _ = await self.client.unsubscribe(self.pattern)
