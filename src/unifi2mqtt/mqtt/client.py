"""MQTT client core for the UniFi bridge.

Owns the broker connection lifecycle, publishes the bridge availability and
hands inbound messages to the retained drain or the command router.
"""

from __future__ import annotations

import asyncio
import ssl
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

import aiomqtt

from unifi2mqtt.const import MQTT_CONN_DELAY
from unifi2mqtt.logging_abstraction import get_logger
from unifi2mqtt.utils import encode_payload, send_sigterm

if TYPE_CHECKING:
    from unifi2mqtt.mqtt.command_routing import CommandRouter
    from unifi2mqtt.mqtt.retained import RetainedClientDrain
    from unifi2mqtt.structs import BridgeEnv

logger = get_logger(__name__)

type ConnectCallback = Callable[[], Awaitable[object]]


class MQTTClient:
    """Broker connection with reconnect loop and message dispatch."""

    lp: str = "mqtt:"

    def __init__(self, env: BridgeEnv, conn_delay: float = MQTT_CONN_DELAY) -> None:
        self.env: BridgeEnv = env
        self.topic: str = env.name
        self.conn_delay: float = conn_delay if conn_delay > 0 else MQTT_CONN_DELAY
        self.client: aiomqtt.Client | None = None
        self._connected: bool = False
        self.command_router: CommandRouter | None = None
        self.retained_drain: RetainedClientDrain | None = None
        # run after every (re)connection, once the bridge is marked online
        self.connect_callbacks: list[ConnectCallback] = []
        self.start_task: asyncio.Task[None] | None = None

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def is_ready(self) -> bool:
        """Connected, and the retained client drain has finished."""
        if not self._connected:
            return False
        return self.retained_drain is None or self.retained_drain.finished

    @property
    def will_topic(self) -> str:
        return f"{self.topic}/maintenance/online"

    def _build_client(self) -> aiomqtt.Client:
        tls_context: ssl.SSLContext | None = None
        if self.env.mqtt_tls:
            tls_context = ssl.create_default_context()
        return aiomqtt.Client(
            hostname=self.env.mqtt_host,
            port=self.env.mqtt_port,
            username=self.env.mqtt_username,
            password=self.env.mqtt_password,
            identifier=self.env.name,
            will=aiomqtt.Will(topic=self.will_topic, payload=encode_payload(False), qos=0, retain=True),
            tls_context=tls_context,
        )

    async def connect(self) -> bool:
        lp = f"{self.lp}connect:"
        self._connected = False
        logger.debug("%s Connecting to MQTT broker %s:%s...", lp, self.env.mqtt_host, self.env.mqtt_port)
        self.client = self._build_client()
        try:
            _ = await self.client.__aenter__()
        except aiomqtt.MqttError as mqtt_err_exc:
            logger.error("%s Connection failed: %s", lp, mqtt_err_exc)
            if "code:134" in str(mqtt_err_exc) or "code:135" in str(mqtt_err_exc):
                logger.error(
                    "%s Bad username or password, check your MQTT credentials (username: %s)",
                    lp,
                    self.env.mqtt_username,
                )
                send_sigterm()
            return False
        self._connected = True
        logger.info("%s Connected to MQTT broker: %s port: %s", lp, self.env.mqtt_host, self.env.mqtt_port)
        return True

    async def _on_connected(self) -> None:
        lp = f"{self.lp}on_connected:"
        assert self.client is not None, "client must be initialized"
        _ = await self.publish(self.will_topic, True)
        for callback in self.connect_callbacks:
            _ = await callback()
        await self.subscribe(f"{self.topic}/set/#")
        if self.retained_drain is not None:
            await self.retained_drain.start()
        logger.debug("%s Waiting for MQTT messages...", lp)

    async def _receive(self) -> None:
        lp = f"{self.lp}rcv:"
        assert self.client is not None, "client must be initialized"
        set_topic = f"{self.topic}/set/#"
        async for message in self.client.messages:
            topic = message.topic.value
            payload = message.payload
            if payload is None:
                data = b""
            elif isinstance(payload, (bytes, bytearray)):
                data = bytes(payload)
            else:
                data = str(payload).encode()

            if self.retained_drain is not None and self.retained_drain.matches(topic):
                await self.retained_drain.handle(topic, data)
            elif message.topic.matches(set_topic):
                if self.command_router is None:
                    logger.warning("%s no command router, dropping %s", lp, topic)
                    continue
                _ = self.command_router.dispatch(topic, data)
            else:
                logger.debug("%s ignoring message on %s", lp, topic)

    async def start(self) -> None:
        lp = f"{self.lp}start:"
        try:
            while True:
                if not await self.connect():
                    logger.info(
                        "%s connecting to MQTT broker failed, sleeping for %s seconds before re-trying...",
                        lp,
                        self.conn_delay,
                    )
                    await asyncio.sleep(self.conn_delay)
                    continue
                try:
                    await self._on_connected()
                    await self._receive()
                except aiomqtt.MqttError as msg_err:
                    logger.warning("%s MQTT closed: %s", lp, msg_err)
                self._connected = False
                await asyncio.sleep(self.conn_delay)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("%s MQTT start() EXCEPTION", lp)

    async def stop(self) -> None:
        lp = f"{self.lp}stop:"
        if self._connected:
            _ = await self.publish(self.will_topic, False)
        try:
            if self.client is not None:
                logger.debug("%s Disconnecting from broker...", lp)
                await self.client.__aexit__(None, None, None)
        except aiomqtt.MqttError as ce:
            logger.warning("%s MQTT disconnect failed: %s", lp, ce)
        else:
            logger.info("%s Disconnected from MQTT broker", lp)
        finally:
            self._connected = False
            if self.start_task and not self.start_task.done():
                logger.debug("%s FINISHING: Cancelling start task", lp)
                _ = self.start_task.cancel()

    async def subscribe(self, topic: str) -> None:
        assert self.client is not None, "client must be initialized"
        logger.debug("%s subscribe %s", f"{self.lp}subscribe:", topic)
        await self.client.subscribe(topic, qos=0)

    async def unsubscribe(self, topic: str) -> bool:
        lp = f"{self.lp}unsubscribe:"
        if not self._connected or self.client is None:
            return False
        try:
            await self.client.unsubscribe(topic)
        except aiomqtt.MqttError as mqtt_err:
            logger.warning("%s [MqttError] -> %s", lp, mqtt_err)
            return False
        logger.debug("%s unsubscribed %s", lp, topic)
        return True

    async def publish(self, topic: str, value: object, retain: bool = True) -> bool:
        """Publish ``value`` (text as-is, anything else JSON) to ``topic``."""
        lp = f"{self.lp}publish:"
        if not self._connected:
            logger.debug("%s not connected, dropping %s", lp, topic)
            return False
        assert self.client is not None, "client must be initialized"
        try:
            await self.client.publish(topic, encode_payload(value), qos=0, retain=retain)
        except aiomqtt.MqttCodeError as mqtt_code_exc:
            logger.warning("%s [MqttCodeError] -> %s", lp, mqtt_code_exc)
            self._connected = False
        except aiomqtt.MqttError as mqtt_err:
            logger.warning("%s [MqttError] -> %s", lp, mqtt_err)
            self._connected = False
        except Exception as e:
            # e.g. a network or host name carrying '+' or '#'; the connection itself is fine
            logger.warning("%s [Exception] -> %s (topic: %s)", lp, e, topic)
        else:
            return True
        return False
