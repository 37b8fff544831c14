import logging
import os

from unifi2mqtt import __version__

__all__ = [
    "CLIENTS_RETRY_DELAY",
    "CONTROLLER_CONN_DELAY",
    "CONTROLLER_TIMEOUT",
    "DEFAULTS",
    "ENV_PREFIX",
    "MQTT_CONN_DELAY",
    "RETAINED_DRAIN_WINDOW",
    "UNIFI2MQTT_LOG_FORMAT",
    "UNIFI2MQTT_LOG_HUMAN_OUTPUT",
    "UNIFI2MQTT_LOG_JSON_FILE",
    "UNIFI2MQTT_PERF_THRESHOLD_MS",
    "UNIFI2MQTT_PERF_TRACKING",
    "UNIFI2MQTT_VERSION",
    "VERBOSITY_LEVELS",
    "WIFI_REFETCH_DELAY",
    "YES_ANSWER",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", 1, "on", "o")
UNIFI2MQTT_VERSION: str = __version__
ENV_PREFIX: str = "UNIFI2MQTT_"

DEFAULTS: dict[str, object] = {
    "name": "unifi",
    "mqtt_url": "mqtt://127.0.0.1",
    "unifi_host": "127.0.0.1",
    "unifi_port": 8443,
    "unifi_user": "admin",
    "unifi_password": None,
    "unifi_site": "default",
    "insecure": False,
    "verbosity": "info",
    "resync_interval": 600,
}

VERBOSITY_LEVELS: dict[str, int] = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

# seconds
RETAINED_DRAIN_WINDOW: float = 2.0
CLIENTS_RETRY_DELAY: float = 1.0
WIFI_REFETCH_DELAY: float = 5.0
MQTT_CONN_DELAY: float = 5.0
CONTROLLER_CONN_DELAY: float = 10.0
CONTROLLER_TIMEOUT: float = 10.0

# Logging Configuration
UNIFI2MQTT_LOG_FORMAT: str = os.environ.get("UNIFI2MQTT_LOG_FORMAT", "human")  # "json", "human", or "both"
_json_file = os.environ.get("UNIFI2MQTT_LOG_JSON_FILE")
UNIFI2MQTT_LOG_JSON_FILE: str | None = _json_file if _json_file else None
UNIFI2MQTT_LOG_HUMAN_OUTPUT: str = os.environ.get("UNIFI2MQTT_LOG_HUMAN_OUTPUT", "stdout")  # "stdout", "stderr", or file path

# Performance Instrumentation
UNIFI2MQTT_PERF_TRACKING: bool = os.environ.get("UNIFI2MQTT_PERF_TRACKING", "true").casefold() in YES_ANSWER
_perf_threshold = os.environ.get("UNIFI2MQTT_PERF_THRESHOLD_MS", "1000")
UNIFI2MQTT_PERF_THRESHOLD_MS: int = int(_perf_threshold) if _perf_threshold and _perf_threshold.isdigit() else 1000
