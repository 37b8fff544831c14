"""
Shared fixtures for unit tests.

The MQTT connection is mocked; StatePublisher and the presence and registry
state run for real so tests can assert on the exact topics published.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from unifi2mqtt.mqtt.state_updates import StatePublisher
from unifi2mqtt.presence import PresenceTracker
from unifi2mqtt.registry import IdentifierRegistry
from unifi2mqtt.structs import BridgeEnv, ClientSession, Device, WirelessNetwork
from unifi2mqtt.timers import TimerSet


@pytest.fixture
def env():
    return BridgeEnv(name="unifi", mqtt_url="mqtt://broker.local", unifi_password="secret")


@pytest.fixture
def mock_bus():
    """
    Mock MQTTClient.

    Connected and ready, topic prefix "unifi"; publish always succeeds.
    """
    bus = MagicMock()
    bus.topic = "unifi"
    bus.lp = "mqtt:"
    bus.is_connected = True
    bus.is_ready = True
    bus.publish = AsyncMock(return_value=True)
    bus.subscribe = AsyncMock()
    bus.unsubscribe = AsyncMock(return_value=True)
    return bus


@pytest.fixture
def published(mock_bus):
    """Return a callable listing ``(topic, value)`` for every publish so far."""

    def _published():
        return [(c.args[0], c.args[1]) for c in mock_bus.publish.await_args_list]

    return _published


@pytest.fixture
def publisher(mock_bus):
    return StatePublisher(mock_bus)


@pytest.fixture
def registry():
    return IdentifierRegistry()


@pytest.fixture
def tracker(registry, publisher):
    return PresenceTracker(registry, publisher)


@pytest.fixture
def timers():
    t = TimerSet()
    yield t
    t.cancel_all()


@pytest.fixture
def make_wifi():
    def _make(id_: str, name: str, enabled: bool = True) -> WirelessNetwork:
        return WirelessNetwork.model_validate({"_id": id_, "name": name, "enabled": enabled})

    return _make


@pytest.fixture
def make_device():
    def _make(id_: str, name: str | None, led: str = "default", mac: str | None = None) -> Device:
        return Device.model_validate({"_id": id_, "name": name, "mac": mac, "led_override": led})

    return _make


@pytest.fixture
def make_session():
    def _make(mac: str, essid: str | None, hostname: str | None = None) -> ClientSession:
        return ClientSession.model_validate({"mac": mac, "essid": essid, "hostname": hostname})

    return _make


@pytest.fixture
def mock_api():
    """Mock UnifiAPI returning empty collections."""
    api = MagicMock()
    api.get_wireless_networks = AsyncMock(return_value=[])
    api.get_devices = AsyncMock(return_value=[])
    api.get_client_sessions = AsyncMock(return_value=[])
    api.set_device_led = AsyncMock()
    api.set_wireless_enabled = AsyncMock()
    return api
