"""Bridge between a UniFi wireless controller and an MQTT broker."""

__version__ = "0.1.0"
