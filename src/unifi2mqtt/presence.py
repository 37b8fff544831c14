"""Per-network client presence.

Counts are rebuilt from every full client snapshot and adjusted in between by
connect / disconnect events. Every mutation is applied synchronously before the
first publish so that a handler interleaving at a publish sees a consistent
table.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from unifi2mqtt.logging_abstraction import get_logger
from unifi2mqtt.utils import now_ms

if TYPE_CHECKING:
    from unifi2mqtt.mqtt.state_updates import StatePublisher
    from unifi2mqtt.registry import IdentifierRegistry
    from unifi2mqtt.structs import ClientSession

logger = get_logger(__name__)


class PresenceTracker:
    """Client counts per wireless network plus start-of-day retained candidates."""

    lp: str = "presence:"

    def __init__(self, registry: IdentifierRegistry, publisher: StatePublisher) -> None:
        self.registry: IdentifierRegistry = registry
        self.publisher: StatePublisher = publisher
        self.counts: dict[str, int] = {}
        # network -> hostnames published as present by a previous run, not yet reconfirmed
        self.retained: dict[str, set[str]] = {}
        # networks dropped from the registry, reported at zero until the next snapshot
        self._retired: set[str] = set()

    def record_retained(self, network: str, hostname: str) -> None:
        self.retained.setdefault(network, set()).add(hostname)

    def retire(self, networks: Iterable[str]) -> None:
        """Zero the counts of networks that disappeared from the controller."""
        for name in networks:
            if name in self.counts:
                logger.info("%s network '%s' no longer exists, zeroing its client count", self.lp, name)
                self.counts[name] = 0
                self._retired.add(name)

    def total(self) -> int:
        return sum(self.counts.values())

    async def apply_full_snapshot(self, sessions: Iterable[ClientSession]) -> None:
        """Rebuild counts from the complete list of associated clients.

        Each client is published as present. Retained candidates not seen in
        the snapshot are published as absent once and then forgotten.
        """
        lp = f"{self.lp}snapshot:"
        counts: dict[str, int] = {}
        seen: set[tuple[str, str]] = set()
        present: list[ClientSession] = []
        for session in sessions:
            if not session.essid:
                logger.debug("%s skipping wired client %s", lp, session.label)
                continue
            key = (session.essid, session.mac)
            if key in seen:
                continue
            seen.add(key)
            counts[session.essid] = counts.get(session.essid, 0) + 1
            present.append(session)
            candidates = self.retained.get(session.essid)
            if candidates:
                candidates.discard(session.label)

        stale = [(network, hostname) for network, hosts in self.retained.items() for hostname in sorted(hosts)]
        self.retained.clear()

        for name in self._retired:
            counts.setdefault(name, 0)
        self.counts = counts

        logger.info(
            "%s %d wireless clients on %d networks, %d stale retained clients",
            lp,
            len(present),
            len(counts),
            len(stale),
        )

        ts = now_ms()
        for session in present:
            assert session.essid is not None
            _ = await self.publisher.client_presence(session.essid, session.label, True, mac=session.mac, ts=ts)
        for network, hostname in stale:
            logger.debug("%s %s/%s was retained as present but is gone", lp, network, hostname)
            _ = await self.publisher.client_presence(network, hostname, False, ts=ts)

        retired, self._retired = self._retired, set()
        await self.publish_summary()
        for name in retired:
            if self.registry.get_wireless(name) is None:
                _ = self.counts.pop(name, None)

    async def apply_connect_event(self, network: str, hostname: str, mac: str | None, ts: int | None) -> None:
        self.counts[network] = self.counts.get(network, 0) + 1
        logger.debug("%s %s connected to %s (now %d)", self.lp, hostname, network, self.counts[network])
        _ = await self.publisher.client_presence(network, hostname, True, mac=mac, ts=ts or now_ms())
        await self.publish_summary()

    async def apply_disconnect_event(self, network: str, hostname: str, mac: str | None, ts: int | None) -> None:
        current = self.counts.get(network)
        if current is None or current <= 0:
            # upstream inconsistency: more disconnects than connects we know of
            logger.warning(
                "%s phantom disconnect of %s from %s (count was %s), clamping to 0",
                self.lp,
                hostname,
                network,
                current,
                extra={"network": network, "hostname": hostname, "mac": mac},
            )
            self.counts[network] = 0
        else:
            self.counts[network] = current - 1
        logger.debug("%s %s disconnected from %s (now %d)", self.lp, hostname, network, self.counts[network])
        _ = await self.publisher.client_presence(network, hostname, False, mac=mac, ts=ts or now_ms())
        await self.publish_summary()

    async def publish_summary(self) -> None:
        """Publish count and enabled flag per network, then the overall total."""
        ts = now_ms()
        for wifi in self.registry.wireless_networks():
            count = self.counts.setdefault(wifi.name, 0)
            _ = await self.publisher.client_count(wifi.name, count, ts=ts)
            _ = await self.publisher.wifi_enabled(wifi.name, wifi.enabled, ts=ts)
        for name, count in list(self.counts.items()):
            if self.registry.get_wireless(name) is None:
                _ = await self.publisher.client_count(name, count, ts=ts)
        _ = await self.publisher.total_client_count(self.total(), ts=ts)
