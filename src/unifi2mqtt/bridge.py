"""Wires the controller client, presence state and MQTT client together."""

from __future__ import annotations

import asyncio

from unifi2mqtt.events import EventForwarder
from unifi2mqtt.logging_abstraction import get_logger
from unifi2mqtt.mqtt import CommandRouter, MQTTClient, RetainedClientDrain, StatePublisher
from unifi2mqtt.presence import PresenceTracker
from unifi2mqtt.reconcile import ReconciliationEngine
from unifi2mqtt.registry import IdentifierRegistry
from unifi2mqtt.structs import BridgeEnv
from unifi2mqtt.timers import TimerSet
from unifi2mqtt.unifi_api import UnifiAPI

logger = get_logger(__name__)

MQTT_START_TASK_NAME = "mqtt_start"
EVENT_STREAM_TASK_NAME = "unifi_events"


class Bridge:
    lp: str = "bridge:"

    def __init__(self, env: BridgeEnv) -> None:
        self.env: BridgeEnv = env
        self.timers = TimerSet()
        self.registry = IdentifierRegistry()
        self.mqtt = MQTTClient(env)
        self.publisher = StatePublisher(self.mqtt)
        self.tracker = PresenceTracker(self.registry, self.publisher)
        self.api = UnifiAPI(
            host=env.unifi_host,
            port=env.unifi_port,
            username=env.unifi_user,
            password=env.unifi_password,
            site=env.unifi_site,
            insecure=env.insecure,
        )
        self.engine = ReconciliationEngine(
            self.api,
            self.registry,
            self.tracker,
            self.publisher,
            self.mqtt,
            self.timers,
            resync_interval=env.resync_interval,
        )
        self.forwarder = EventForwarder(self.tracker, self.publisher, self.engine)
        self.mqtt.retained_drain = RetainedClientDrain(self.mqtt, self.tracker, self.timers)
        self.mqtt.command_router = CommandRouter(self.mqtt, self.registry, self.api, self.engine, self.timers)
        self.mqtt.connect_callbacks.append(self.forwarder.publish_controller_status)
        self.mqtt.connect_callbacks.append(self.engine.republish_state)
        self.tasks: list[asyncio.Task[None]] = []

    async def start(self) -> None:
        """Run the MQTT client and the controller event stream until stopped."""
        lp = f"{self.lp}start:"
        self.mqtt.start_task = m_start = asyncio.create_task(self.mqtt.start(), name=MQTT_START_TASK_NAME)
        e_start = asyncio.create_task(self.api.run_event_stream(self.forwarder.handle), name=EVENT_STREAM_TASK_NAME)
        self.tasks = [m_start, e_start]
        logger.info("%s Starting MQTT client and controller event stream...", lp)
        results = await asyncio.gather(*self.tasks, return_exceptions=True)
        for task, result in zip(self.tasks, results, strict=True):
            if isinstance(result, Exception):
                logger.error("%s task %s failed: %s", lp, task.get_name(), result)

    async def stop(self) -> None:
        lp = f"{self.lp}stop:"
        logger.info("%s Shutting down bridge...", lp)
        self.engine.cancel()
        self.timers.cancel_all()
        await self.mqtt.stop()
        await self.api.close()
        for task in self.tasks:
            if not task.done():
                logger.debug("%s Cancelling task: %s", lp, task.get_name())
                _ = task.cancel()
