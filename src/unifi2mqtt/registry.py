"""Name to identifier lookup for wireless networks and devices.

Both tables are replaced wholesale by every refresh; a name missing from the
latest fetch is simply gone. The registry only holds state, callers publish.
"""

from __future__ import annotations

from collections.abc import Iterable

from unifi2mqtt.structs import Device, WirelessNetwork


class IdentifierRegistry:
    """In-memory name→id and name→record maps, rebuilt on each fetch."""

    def __init__(self) -> None:
        self._wireless: dict[str, WirelessNetwork] = {}
        self._devices: dict[str, Device] = {}

    def refresh_wireless(self, records: Iterable[WirelessNetwork]) -> set[str]:
        """Replace the wireless table. Returns the names that disappeared."""
        previous = set(self._wireless)
        self._wireless = {wifi.name: wifi for wifi in records}
        return previous - set(self._wireless)

    def refresh_devices(self, records: Iterable[Device]) -> set[str]:
        """Replace the device table. Returns the names that disappeared."""
        previous = set(self._devices)
        self._devices = {dev.label: dev for dev in records}
        return previous - set(self._devices)

    def resolve_wireless(self, name: str) -> str | None:
        wifi = self._wireless.get(name)
        return wifi.id if wifi else None

    def resolve_device(self, name: str) -> str | None:
        dev = self._devices.get(name)
        return dev.id if dev else None

    def get_wireless(self, name: str) -> WirelessNetwork | None:
        return self._wireless.get(name)

    def get_device(self, name: str) -> Device | None:
        return self._devices.get(name)

    def wireless_networks(self) -> list[WirelessNetwork]:
        return list(self._wireless.values())

    def devices(self) -> list[Device]:
        return list(self._devices.values())

    def wireless_names(self) -> list[str]:
        return list(self._wireless)
