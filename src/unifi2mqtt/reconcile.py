"""Full reconciliation against the controller.

One run refreshes wireless networks, then devices, then the client snapshot,
strictly in that order. A new trigger cancels a run still in flight.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from unifi2mqtt.const import CLIENTS_RETRY_DELAY
from unifi2mqtt.correlation import correlation_context
from unifi2mqtt.exceptions import ControllerError
from unifi2mqtt.logging_abstraction import get_logger
from unifi2mqtt.utils import now_ms

if TYPE_CHECKING:
    from unifi2mqtt.mqtt.client import MQTTClient
    from unifi2mqtt.mqtt.state_updates import StatePublisher
    from unifi2mqtt.presence import PresenceTracker
    from unifi2mqtt.registry import IdentifierRegistry
    from unifi2mqtt.timers import TimerSet
    from unifi2mqtt.unifi_api import UnifiAPI

logger = get_logger(__name__)


class ReconciliationEngine:
    """Rebuilds registry and presence state from the controller."""

    lp: str = "reconcile:"
    clients_timer: str = "clients_retry"
    resync_timer: str = "resync"

    def __init__(
        self,
        api: UnifiAPI,
        registry: IdentifierRegistry,
        tracker: PresenceTracker,
        publisher: StatePublisher,
        bus: MQTTClient,
        timers: TimerSet,
        resync_interval: float = 0,
        clients_retry_delay: float = CLIENTS_RETRY_DELAY,
    ) -> None:
        self.api: UnifiAPI = api
        self.registry: IdentifierRegistry = registry
        self.tracker: PresenceTracker = tracker
        self.publisher: StatePublisher = publisher
        self.bus: MQTTClient = bus
        self.timers: TimerSet = timers
        self.resync_interval: float = resync_interval
        self.clients_retry_delay: float = clients_retry_delay
        self._run_task: asyncio.Task[bool] | None = None

    @property
    def running(self) -> bool:
        return self._run_task is not None and not self._run_task.done()

    def trigger(self) -> asyncio.Task[bool]:
        """Start a run, superseding any run or pending client retry."""
        lp = f"{self.lp}trigger:"
        if self.running:
            assert self._run_task is not None
            logger.debug("%s cancelling in-flight run", lp)
            _ = self._run_task.cancel()
        _ = self.timers.cancel(self.clients_timer)
        self._run_task = asyncio.create_task(self.run(), name="reconcile")
        return self._run_task

    def cancel(self) -> None:
        """Stop any run and the pending timers; published state is left as is."""
        if self.running:
            assert self._run_task is not None
            _ = self._run_task.cancel()
        _ = self.timers.cancel(self.clients_timer)
        _ = self.timers.cancel(self.resync_timer)

    async def run(self) -> bool:
        lp = f"{self.lp}run:"
        with correlation_context() as correlation_id:
            logger.info("%s starting reconciliation", lp, extra={"correlation_id": correlation_id})
            if not await self.refresh_wireless():
                logger.warning("%s aborted after wireless stage", lp)
                return False
            if not await self.refresh_devices():
                logger.warning("%s aborted after device stage", lp)
                return False
            _ = await self.refresh_clients()
            self._schedule_resync()
            return True

    async def refresh_wireless(self) -> bool:
        """Fetch wireless networks, rebuild the registry and publish their state."""
        lp = f"{self.lp}wireless:"
        try:
            networks = await self.api.get_wireless_networks()
        except ControllerError as e:
            logger.error("%s %s", lp, e)
            return False
        dropped = self.registry.refresh_wireless(networks)
        if dropped:
            self.tracker.retire(dropped)
        logger.info("%s %d wireless networks", lp, len(networks))
        ts = now_ms()
        for wifi in networks:
            _ = await self.publisher.wifi_enabled(wifi.name, wifi.enabled, ts=ts)
        return True

    async def refresh_devices(self) -> bool:
        """Fetch adopted devices, rebuild the registry and publish their LED mode."""
        lp = f"{self.lp}devices:"
        try:
            devices = await self.api.get_devices()
        except ControllerError as e:
            logger.error("%s %s", lp, e)
            return False
        _ = self.registry.refresh_devices(devices)
        logger.info("%s %d devices", lp, len(devices))
        for dev in devices:
            _ = await self.publisher.device_led(dev.label, dev.led_override)
        return True

    async def republish_state(self) -> None:
        """Re-send wireless and device state held from the last run, e.g. after a bus reconnect."""
        networks, devices = self.registry.wireless_networks(), self.registry.devices()
        if not networks and not devices:
            return
        lp = f"{self.lp}republish:"
        logger.debug("%s republishing %d networks, %d devices", lp, len(networks), len(devices))
        ts = now_ms()
        for wifi in networks:
            _ = await self.publisher.wifi_enabled(wifi.name, wifi.enabled, ts=ts)
        for dev in devices:
            _ = await self.publisher.device_led(dev.label, dev.led_override)

    async def refresh_clients(self) -> bool:
        """Apply a full client snapshot, or retry shortly while the bus isn't ready."""
        lp = f"{self.lp}clients:"
        if not self.bus.is_ready:
            logger.debug("%s bus not ready, retrying in %ss", lp, self.clients_retry_delay)
            _ = self.timers.schedule(self.clients_timer, self.clients_retry_delay, self.refresh_clients)
            return False
        try:
            sessions = await self.api.get_client_sessions()
        except ControllerError as e:
            logger.error("%s %s", lp, e)
            return False
        await self.tracker.apply_full_snapshot(sessions)
        return True

    def _schedule_resync(self) -> None:
        if self.resync_interval > 0:
            _ = self.timers.schedule(self.resync_timer, self.resync_interval, self._resync)

    async def _resync(self) -> None:
        logger.debug("%s periodic resync", self.lp)
        _ = self.trigger()
