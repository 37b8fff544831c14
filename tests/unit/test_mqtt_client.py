"""
Unit tests for MQTTClient.

Covers publishing, readiness, the connect sequence and routing of received
messages to the retained drain and the command router.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import aiomqtt
import pytest

from unifi2mqtt.mqtt.client import MQTTClient


def _message(topic: str, payload: bytes):
    msg = MagicMock()
    msg.topic = aiomqtt.Topic(topic)
    msg.payload = payload
    return msg


class _Messages:
    """Async iterator standing in for aiomqtt's message queue."""

    def __init__(self, messages):
        self._messages = list(messages)

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self._messages:
            raise StopAsyncIteration
        return self._messages.pop(0)


@pytest.fixture
def mqtt(env):
    client = MQTTClient(env)
    client.client = MagicMock()
    client.client.publish = AsyncMock()
    client.client.subscribe = AsyncMock()
    client.client.unsubscribe = AsyncMock()
    client._connected = True
    return client


class TestPublish:
    """Tests for MQTTClient.publish"""

    @pytest.mark.asyncio
    async def test_encodes_and_retains(self, mqtt):
        assert await mqtt.publish("unifi/status/clientCount", {"val": 1}) is True
        mqtt.client.publish.assert_awaited_once_with("unifi/status/clientCount", b'{"val":1}', qos=0, retain=True)

    @pytest.mark.asyncio
    async def test_not_connected(self, mqtt):
        mqtt._connected = False
        assert await mqtt.publish("unifi/x", True) is False
        mqtt.client.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failure_marks_disconnected(self, mqtt):
        mqtt.client.publish.side_effect = aiomqtt.MqttError("gone")
        assert await mqtt.publish("unifi/x", True) is False
        assert mqtt.is_connected is False

    @pytest.mark.asyncio
    async def test_wildcard_in_topic_is_logged_not_raised(self, mqtt):
        """A network named 'Cafe+Guest' yields a topic paho refuses to publish."""
        mqtt.client.publish.side_effect = ValueError("Publish topic cannot contain wildcards.")
        assert await mqtt.publish("unifi/status/wifi/Cafe+Guest/client/h1", True) is False
        # the broker connection is unaffected
        assert mqtt.is_connected is True
        mqtt.client.publish.side_effect = None
        assert await mqtt.publish("unifi/status/clientCount", {"val": 1}) is True


class TestReadiness:
    """Tests for MQTTClient.is_ready"""

    def test_ready_requires_drain(self, mqtt):
        drain = MagicMock()
        drain.finished = False
        mqtt.retained_drain = drain
        assert mqtt.is_ready is False
        drain.finished = True
        assert mqtt.is_ready is True

    def test_not_ready_when_disconnected(self, mqtt):
        mqtt._connected = False
        assert mqtt.is_ready is False


class TestConnect:
    """Tests for connection setup"""

    def test_will_and_identity(self, env):
        with patch("unifi2mqtt.mqtt.client.aiomqtt.Client") as client_cls:
            _ = MQTTClient(env)._build_client()
        kwargs = client_cls.call_args.kwargs
        assert kwargs["hostname"] == "broker.local"
        assert kwargs["port"] == 1883
        assert kwargs["identifier"] == "unifi"
        assert kwargs["tls_context"] is None
        assert kwargs["will"].topic == "unifi/maintenance/online"
        assert kwargs["will"].payload == b"false"
        assert kwargs["will"].retain is True

    @pytest.mark.asyncio
    async def test_on_connected_sequence(self, mqtt):
        callback = AsyncMock()
        mqtt.connect_callbacks.append(callback)
        mqtt.retained_drain = MagicMock()
        mqtt.retained_drain.start = AsyncMock()
        await mqtt._on_connected()
        mqtt.client.publish.assert_awaited_once_with("unifi/maintenance/online", b"true", qos=0, retain=True)
        callback.assert_awaited_once()
        mqtt.client.subscribe.assert_awaited_once_with("unifi/set/#", qos=0)
        mqtt.retained_drain.start.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stop_publishes_offline(self, mqtt):
        mqtt.client.__aexit__ = AsyncMock()
        await mqtt.stop()
        mqtt.client.publish.assert_awaited_once_with("unifi/maintenance/online", b"false", qos=0, retain=True)
        assert mqtt.is_connected is False


class TestReceive:
    """Tests for routing of received messages"""

    @pytest.mark.asyncio
    async def test_routes_messages(self, mqtt):
        drain = MagicMock()
        drain.matches = MagicMock(side_effect=lambda topic: "/client/" in topic)
        drain.handle = AsyncMock()
        router = MagicMock()
        mqtt.retained_drain = drain
        mqtt.command_router = router
        mqtt.client.messages = _Messages(
            [
                _message("unifi/status/wifi/home/client/laptop1", b'{"val":true}'),
                _message("unifi/set/device/ap/led", b"on"),
                _message("unifi/status/clientCount", b'{"val":1}'),
            ],
        )
        await mqtt._receive()
        drain.handle.assert_awaited_once_with("unifi/status/wifi/home/client/laptop1", b'{"val":true}')
        router.dispatch.assert_called_once_with("unifi/set/device/ap/led", b"on")
