"""Outbound state topics.

Every topic the bridge publishes is built here, relative to the instance name
prefix. All state is published retained so late subscribers see the last value.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from unifi2mqtt.logging_abstraction import get_logger

if TYPE_CHECKING:
    from unifi2mqtt.mqtt.client import MQTTClient
    from unifi2mqtt.structs import LedOverride

logger = get_logger(__name__)


class StatePublisher:
    """Helper class for publishing bridge, network, client and device state."""

    def __init__(self, mqtt_client: MQTTClient) -> None:
        self.client: MQTTClient = mqtt_client

    @property
    def prefix(self) -> str:
        return self.client.topic

    async def bridge_online(self, online: bool) -> bool:
        return await self.client.publish(f"{self.prefix}/maintenance/online", online)

    async def controller_online(self, online: bool) -> bool:
        return await self.client.publish(f"{self.prefix}/maintenance/controller/online", online)

    async def wifi_enabled(self, network: str, enabled: bool, ts: int | None = None) -> bool:
        payload: dict[str, object] = {"val": enabled}
        if ts is not None:
            payload["ts"] = ts
        return await self.client.publish(f"{self.prefix}/status/wifi/{network}/enabled", payload)

    async def client_count(self, network: str, count: int, ts: int | None = None) -> bool:
        payload: dict[str, object] = {"val": count}
        if ts is not None:
            payload["ts"] = ts
        return await self.client.publish(f"{self.prefix}/status/wifi/{network}/clientCount", payload)

    async def total_client_count(self, total: int, ts: int | None = None) -> bool:
        payload: dict[str, object] = {"val": total}
        if ts is not None:
            payload["ts"] = ts
        return await self.client.publish(f"{self.prefix}/status/clientCount", payload)

    async def client_presence(
        self,
        network: str,
        hostname: str,
        present: bool,
        mac: str | None = None,
        ts: int | None = None,
    ) -> bool:
        """Publish whether ``hostname`` is associated with ``network``."""
        payload: dict[str, object] = {"val": present}
        if mac:
            payload["mac"] = mac
        if ts is not None:
            payload["ts"] = ts
        logger.debug(
            "%s %s %s %s",
            f"{self.client.lp}presence:",
            network,
            hostname,
            "present" if present else "gone",
        )
        return await self.client.publish(f"{self.prefix}/status/wifi/{network}/client/{hostname}", payload)

    async def device_led(self, device: str, led: LedOverride) -> bool:
        return await self.client.publish(f"{self.prefix}/status/device/{device}/led", {"val": led.value})
