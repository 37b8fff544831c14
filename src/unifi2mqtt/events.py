"""Controller event handling.

Events from the controller stream arrive here in order. Connection events
drive the controller availability flag and reconciliation; client association
events update presence directly.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from unifi2mqtt.correlation import correlation_context
from unifi2mqtt.logging_abstraction import get_logger

if TYPE_CHECKING:
    from unifi2mqtt.mqtt.state_updates import StatePublisher
    from unifi2mqtt.presence import PresenceTracker
    from unifi2mqtt.reconcile import ReconciliationEngine
    from unifi2mqtt.structs import ControllerEvent

logger = get_logger(__name__)

ADVISORY_ACTIONS = frozenset({"roam", "roam_radio"})
ADVISORY_EVENTS = frozenset({"ap.detect_rogue_ap", "ad.update_available"})


class EventForwarder:
    """Turns controller events into presence updates and availability changes."""

    lp: str = "events:"

    def __init__(
        self,
        tracker: PresenceTracker,
        publisher: StatePublisher,
        engine: ReconciliationEngine,
    ) -> None:
        self.tracker: PresenceTracker = tracker
        self.publisher: StatePublisher = publisher
        self.engine: ReconciliationEngine = engine
        self.controller_online: bool = False

    async def handle(self, event: ControllerEvent) -> None:
        lp = f"{self.lp}handle:"
        with correlation_context():
            if event.name == "ctrl.connect":
                await self.set_controller_online(True)
            elif event.name == "ctrl.disconnect":
                await self.set_controller_online(False)
            elif event.name == "ctrl.error":
                logger.error("%s controller error: %s", lp, event.data.get("error", event.data))
            elif event.action == "connected":
                await self._client_connected(event)
            elif event.action == "disconnected":
                await self._client_disconnected(event)
            elif event.action in ADVISORY_ACTIONS or event.name in ADVISORY_EVENTS:
                logger.debug("%s unifi < %s %s", lp, event.name, event.data.get("msg", ""))
            else:
                logger.debug("%s ignoring event %s", lp, event.name)

    async def set_controller_online(self, online: bool) -> None:
        lp = f"{self.lp}controller:"
        if online == self.controller_online:
            return
        self.controller_online = online
        logger.info("%s controller %s", lp, "connected" if online else "disconnected")
        _ = await self.publisher.controller_online(online)
        if online:
            _ = self.engine.trigger()
        else:
            self.engine.cancel()

    async def publish_controller_status(self) -> None:
        """Re-announce the current controller availability, e.g. after a bus reconnect."""
        _ = await self.publisher.controller_online(self.controller_online)

    def _client_fields(self, event: ControllerEvent) -> tuple[str, str] | None:
        network, hostname = event.ssid, event.hostname
        if not network or not hostname:
            logger.debug("%s %s without ssid or client, ignored", self.lp, event.name)
            return None
        return network, hostname

    async def _client_connected(self, event: ControllerEvent) -> None:
        fields = self._client_fields(event)
        if fields is None:
            return
        network, hostname = fields
        logger.info("%s %s connected to %s", self.lp, hostname, network)
        await self.tracker.apply_connect_event(network, hostname, event.mac, event.time)

    async def _client_disconnected(self, event: ControllerEvent) -> None:
        fields = self._client_fields(event)
        if fields is None:
            return
        network, hostname = fields
        logger.info("%s %s disconnected from %s", self.lp, hostname, network)
        await self.tracker.apply_disconnect_event(network, hostname, event.mac, event.time)
