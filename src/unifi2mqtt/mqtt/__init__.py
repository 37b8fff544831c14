"""MQTT side of the bridge: connection, published state and inbound commands."""

from unifi2mqtt.mqtt.client import MQTTClient
from unifi2mqtt.mqtt.command_routing import CommandRouter
from unifi2mqtt.mqtt.retained import RetainedClientDrain
from unifi2mqtt.mqtt.state_updates import StatePublisher

__all__ = [
    "CommandRouter",
    "MQTTClient",
    "RetainedClientDrain",
    "StatePublisher",
]
