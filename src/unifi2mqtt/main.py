from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
from collections.abc import Sequence
from functools import partial
from pathlib import Path
from typing import Any

import dotenv
import uvloop

from unifi2mqtt.bridge import Bridge
from unifi2mqtt.config import ConfigError, build_env, load_config_file, read_environ
from unifi2mqtt.const import DEFAULTS, ENV_PREFIX, UNIFI2MQTT_VERSION, VERBOSITY_LEVELS
from unifi2mqtt.correlation import correlation_context, ensure_correlation_id
from unifi2mqtt.logging_abstraction import get_logger, set_verbosity
from unifi2mqtt.structs import BridgeEnv, GlobalObject
from unifi2mqtt.utils import signal_handler

logger = get_logger(__name__)

# Suppress verbose MQTT library warnings
mqtt_logger = logging.getLogger("mqtt")
mqtt_logger.setLevel(logging.ERROR)
mqtt_logger.propagate = False

g = GlobalObject()


class Unifi2MQTT:
    lp: str = "unifi2mqtt:"
    _instance: Unifi2MQTT | None = None

    def __new__(cls, *args: object, **kwargs: object) -> Unifi2MQTT:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, env: BridgeEnv) -> None:
        asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
        g.loop = asyncio.new_event_loop()
        asyncio.set_event_loop(g.loop)

        logger.info("Initializing unifi2mqtt", extra={"version": UNIFI2MQTT_VERSION})

        g.loop.add_signal_handler(signal.SIGINT, partial(signal_handler, signal.SIGINT))
        g.loop.add_signal_handler(signal.SIGTERM, partial(signal_handler, signal.SIGTERM))
        logger.debug("Signal handlers configured for SIGINT & SIGTERM")

        self.env: BridgeEnv = env

    async def start(self) -> None:
        """Run the bridge until it is stopped by a signal."""
        _ = ensure_correlation_id()
        logger.info(
            "Connecting",
            extra={
                "mqtt_broker": f"{self.env.mqtt_host}:{self.env.mqtt_port}",
                "controller": f"{self.env.unifi_host}:{self.env.unifi_port}",
                "site": self.env.unifi_site,
            },
        )
        g.bridge = Bridge(self.env)
        try:
            await g.bridge.start()
        except Exception as e:
            logger.exception("Bridge failed", extra={"error": str(e)})
            await g.bridge.stop()
            raise


def parse_cli(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="unifi2mqtt", description="UniFi controller to MQTT bridge")
    # every option defaults to None so unset flags don't mask env or file values
    _ = parser.add_argument("-n", "--name", help=f"instance name, used as topic prefix (default: {DEFAULTS['name']})")
    _ = parser.add_argument("-u", "--mqtt-url", help=f"mqtt broker url (default: {DEFAULTS['mqtt_url']})")
    _ = parser.add_argument("-a", "--unifi-host", help=f"unifi hostname or address (default: {DEFAULTS['unifi_host']})")
    _ = parser.add_argument("-p", "--unifi-port", type=int, help=f"unifi port (default: {DEFAULTS['unifi_port']})")
    _ = parser.add_argument("-c", "--unifi-user", help=f"unifi user (default: {DEFAULTS['unifi_user']})")
    _ = parser.add_argument("-s", "--unifi-password", help="unifi password (required)")
    _ = parser.add_argument("-w", "--unifi-site", help=f"unifi site (default: {DEFAULTS['unifi_site']})")
    _ = parser.add_argument(
        "-k",
        "--insecure",
        action="store_true",
        default=None,
        help="allow connections to the controller without a valid certificate",
    )
    _ = parser.add_argument(
        "-v",
        "--verbosity",
        choices=sorted(VERBOSITY_LEVELS),
        type=str.casefold,
        help=f"log level (default: {DEFAULTS['verbosity']})",
    )
    _ = parser.add_argument(
        "--resync-interval",
        type=float,
        help=f"seconds between full resyncs, 0 disables (default: {DEFAULTS['resync_interval']})",
    )
    _ = parser.add_argument("--config", help="Path to a YAML config file", default=None, type=Path)
    _ = parser.add_argument("--env", help="Path to the environment file", default=None, type=Path)
    parser.add_argument("--version", action="version", version=f"%(prog)s {UNIFI2MQTT_VERSION}")
    return parser.parse_args(argv)


def load_env_file(env_file: Path) -> None:
    env_path = env_file.expanduser().resolve()
    if not env_path.exists():
        logger.error("Environment file not found", extra={"path": str(env_path)})
        return
    if dotenv.load_dotenv(env_path, override=True):
        logger.info("Environment variables loaded", extra={"source": str(env_path)})
    else:
        logger.warning("No environment variables loaded from file", extra={"path": str(env_path)})


def resolve_env(args: argparse.Namespace) -> BridgeEnv:
    """Merge defaults, config file, environment and CLI into a validated config."""
    if args.env:
        load_env_file(args.env)
    file_values: dict[str, Any] = {}
    config_file = args.config or os.environ.get(f"{ENV_PREFIX}CONFIG")
    if config_file:
        file_values = load_config_file(Path(config_file).expanduser().resolve())
    cli_values = {key: getattr(args, key, None) for key in DEFAULTS}
    return build_env(file_values, read_environ(), cli_values)


def main(argv: Sequence[str] | None = None) -> None:
    """Main entry point for unifi2mqtt."""
    with correlation_context():
        args = parse_cli(argv)
        try:
            g.env = env = resolve_env(args)
        except ConfigError as e:
            logger.error("%s", e)
            sys.exit(1)

        set_verbosity(env.log_level)
        logger.info("Starting unifi2mqtt", extra={"version": UNIFI2MQTT_VERSION, "instance": env.name})

        app = Unifi2MQTT(env)
        assert g.loop is not None
        try:
            g.loop.run_until_complete(app.start())
        except asyncio.CancelledError:
            logger.info("unifi2mqtt cancelled, shutting down...")
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received, shutting down...")
        finally:
            g.loop.close()
        logger.info("unifi2mqtt stopped")


if __name__ == "__main__":
    main()
