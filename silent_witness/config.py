"""Configuration loading from an optional YAML file and SW_* environment variables."""

import logging
import os
import re
from dataclasses import dataclass, fields

import yaml

logger = logging.getLogger(__name__)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class ConfigError(ValueError):
    """Configuration that cannot be loaded or does not validate."""


@dataclass(frozen=True)
class Config:
    log_file: str = "/var/www/site/wp-content/debug.log"
    root_prefix: str = "/var/www/site/"
    db_path: str = "silent_witness.sqlite"
    table_name: str = "silent_witness_logs"
    cursor_file: str = "state/silent_witness_log_offset.json"
    engine_tag: str = "PHP"
    max_message_length: int = 2000
    poll_interval: int = 300  # seconds

    def __post_init__(self):
        if not isinstance(self.table_name, str) or not _IDENTIFIER_RE.match(self.table_name):
            raise ConfigError(f"invalid table name: {self.table_name!r}")
        if self.max_message_length <= 0:
            raise ConfigError("max_message_length must be positive")
        if self.poll_interval <= 0:
            raise ConfigError("poll_interval must be positive")


_ENV_VARS = {
    "log_file": "SW_LOG_FILE",
    "root_prefix": "SW_ROOT_PREFIX",
    "db_path": "SW_DB_PATH",
    "table_name": "SW_TABLE_NAME",
    "cursor_file": "SW_CURSOR_FILE",
    "engine_tag": "SW_ENGINE_TAG",
    "max_message_length": "SW_MAX_MESSAGE_LENGTH",
    "poll_interval": "SW_POLL_INTERVAL",
}

_INT_FIELDS = {"max_message_length", "poll_interval"}


def load_yaml_config(path: str | None) -> dict:
    """Load settings from a YAML file. Returns empty dict if no path."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict):
        logger.warning("Config file %s is not a mapping, using defaults", path)
        return {}
    logger.info("Loaded YAML config from %s", path)
    return data


def load_config(yaml_data: dict, env=None) -> Config:
    """Build Config from defaults, then YAML data, then environment variables."""
    if env is None:
        env = os.environ

    known = {f.name for f in fields(Config)}
    values = {}
    for key, value in yaml_data.items():
        if key in known:
            values[key] = value
        else:
            logger.warning("Ignoring unknown config key %r", key)

    for name, var in _ENV_VARS.items():
        if var in env:
            values[name] = env[var]

    for name in _INT_FIELDS:
        if name in values:
            try:
                values[name] = int(values[name])
            except (TypeError, ValueError) as e:
                raise ConfigError(f"{name} must be an integer, got {values[name]!r}") from e

    return Config(**values)
