from __future__ import annotations

import asyncio
import json
import os
import signal
import time

from unifi2mqtt.const import YES_ANSWER
from unifi2mqtt.logging_abstraction import get_logger
from unifi2mqtt.structs import GlobalObject

logger = get_logger(__name__)
g = GlobalObject()


def send_sigterm():
    """Ask the current process to shut down gracefully."""
    try:
        logger.debug("Sending SIGTERM to process %s", os.getpid())
        os.kill(os.getpid(), signal.SIGTERM)
    except OSError:
        logger.exception("Failed to send SIGTERM to process")
        raise


async def _async_signal_cleanup():
    logger.info("unifi2mqtt: Starting signal cleanup...")
    if g.bridge:
        await g.bridge.stop()
    logger.info("unifi2mqtt: Signal cleanup completed")


def signal_handler(signum: int):
    logger.info("unifi2mqtt: Intercepted signal: %s (%s)", signal.Signals(signum).name, signum)
    loop = g.loop or asyncio.get_event_loop()
    _ = loop.create_task(_async_signal_cleanup())


def now_ms() -> int:
    """Milliseconds since the epoch, the timestamp format used in published state."""
    return int(time.time() * 1000)


def coerce_bool(value: object) -> bool:
    """Interpret an MQTT value as a boolean.

    Strings count as true only when they read like a yes ("true", "on", "1", ...).
    """
    if isinstance(value, str):
        return value.strip().casefold() in YES_ANSWER
    return bool(value)


def decode_payload(payload: bytes | bytearray | str) -> object:
    """Decode an inbound MQTT payload.

    JSON is parsed when possible and ``{"val": x}`` objects are unwrapped to
    ``x``; anything else is returned as text.
    """
    text = payload.decode("utf-8", errors="replace") if isinstance(payload, (bytes, bytearray)) else payload
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return text.strip()
    if isinstance(value, dict) and "val" in value:
        return value["val"]
    return value


def encode_payload(value: object) -> bytes:
    """Encode an outbound value: text as-is, everything else as JSON."""
    if isinstance(value, str):
        return value.encode()
    return json.dumps(value, separators=(",", ":")).encode()
