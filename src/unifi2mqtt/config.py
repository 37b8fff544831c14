"""Configuration loading.

Values are merged from, lowest to highest precedence: built-in defaults, an
optional YAML file, ``UNIFI2MQTT_*`` environment variables and command-line
options. The result is validated into a :class:`BridgeEnv`.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from unifi2mqtt.const import DEFAULTS, ENV_PREFIX, YES_ANSWER
from unifi2mqtt.logging_abstraction import get_logger
from unifi2mqtt.structs import BridgeEnv

logger = get_logger(__name__)

_BOOL_KEYS = frozenset({"insecure"})


class ConfigError(ValueError):
    """Configuration is missing a required value or failed validation."""


def load_config_file(config_file: Path) -> dict[str, Any]:
    """Read bridge options from a YAML mapping.

    Keys may be written like the CLI options (``mqtt-url``) or as field names
    (``mqtt_url``).
    """
    logger.debug("Parsing config file: %s", config_file)
    try:
        with config_file.open() as f:
            config_data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        msg = f"Failed to read config file {config_file}: {e}"
        raise ConfigError(msg) from e

    if config_data is None:
        return {}
    if not isinstance(config_data, dict):
        msg = f"Config file {config_file} must contain a mapping, got {type(config_data).__name__}"
        raise ConfigError(msg)
    return {str(k).replace("-", "_"): v for k, v in config_data.items() if str(k).replace("-", "_") in DEFAULTS}


def read_environ(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Collect ``UNIFI2MQTT_<OPTION>`` variables that are set and non-empty."""
    environ = os.environ if environ is None else environ
    values: dict[str, Any] = {}
    for key in DEFAULTS:
        raw = environ.get(f"{ENV_PREFIX}{key.upper()}")
        if not raw:
            continue
        values[key] = raw.casefold() in YES_ANSWER if key in _BOOL_KEYS else raw
    return values


def build_env(
    file_values: Mapping[str, Any] | None = None,
    env_values: Mapping[str, Any] | None = None,
    cli_values: Mapping[str, Any] | None = None,
) -> BridgeEnv:
    """Merge configuration layers and validate the result."""
    merged: dict[str, Any] = {k: v for k, v in DEFAULTS.items() if v is not None}
    for layer in (file_values, env_values, cli_values):
        if layer:
            merged.update({k: v for k, v in layer.items() if v is not None})

    if not merged.get("unifi_password"):
        msg = "UniFi password is required (--unifi-password or UNIFI2MQTT_UNIFI_PASSWORD)"
        raise ConfigError(msg)

    try:
        return BridgeEnv.model_validate(merged)
    except ValidationError as e:
        msg = f"Invalid configuration: {e}"
        raise ConfigError(msg) from e
