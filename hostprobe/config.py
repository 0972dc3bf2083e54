"""
Run settings.

Resolution order, lowest first: defaults, YAML file, HOSTPROBE_* environment
variables, explicit overrides (the command line).
"""
import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Mapping, Optional

import yaml

from hostprobe.core.dispatcher import OUTPUT_FORMATS
from hostprobe.core.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.path.join("config", "hostprobe.yaml")

ENV_VARS = {
    "probe_timeout": "HOSTPROBE_PROBE_TIMEOUT",
    "max_workers": "HOSTPROBE_MAX_WORKERS",
    "output_format": "HOSTPROBE_OUTPUT_FORMAT",
    "webhook_url": "HOSTPROBE_WEBHOOK_URL",
    "log_level": "HOSTPROBE_LOG_LEVEL",
    "snapshot": "HOSTPROBE_SNAPSHOT",
}

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class Settings:
    probe_timeout: float = 30.0
    max_workers: int = 10
    output_format: str = "text"
    output_file: Optional[str] = None
    webhook_url: Optional[str] = None
    snapshot: Optional[str] = None
    log_level: str = "INFO"
    json_logs: bool = False


def _coerce(name: str, value: Any) -> Any:
    if value is None:
        return None
    try:
        if name == "probe_timeout":
            value = float(value)
            if value < 0:
                raise ValueError("must not be negative")
        elif name == "max_workers":
            value = int(value)
            if not 1 <= value <= 100:
                raise ValueError("must be between 1 and 100")
        elif name == "output_format":
            value = str(value).lower()
            if value not in OUTPUT_FORMATS:
                raise ValueError(f"must be one of {', '.join(OUTPUT_FORMATS)}")
        elif name == "log_level":
            value = str(value).upper()
            if value not in LOG_LEVELS:
                raise ValueError(f"must be one of {', '.join(LOG_LEVELS)}")
        elif name == "json_logs":
            if isinstance(value, str):
                value = value.strip().lower() in ("1", "true", "yes", "on")
            else:
                value = bool(value)
        else:
            value = str(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for '{name}': {value!r} ({e})") from e
    return value


def _read_yaml(path: str) -> Dict[str, Any]:
    try:
        with open(path, 'r', encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except (yaml.YAMLError, OSError) as e:
        raise ConfigError(f"Could not read config file {path}: {e}") from e

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    # Settings may be nested under a top-level 'hostprobe' key
    if isinstance(raw.get("hostprobe"), dict):
        raw = raw["hostprobe"]
    return raw


def load_settings(path: Optional[str] = None, env: Optional[Mapping[str, str]] = None,
                  overrides: Optional[Mapping[str, Any]] = None) -> Settings:
    """
    Builds Settings from a YAML file, the environment and overrides.

    Without an explicit path, HOSTPROBE_CONFIG is used, then
    config/hostprobe.yaml when it exists. An explicit path that does not
    exist is an error. None values in overrides are ignored.
    """
    env = os.environ if env is None else env
    known = {f.name for f in fields(Settings)}
    values: Dict[str, Any] = {}

    config_path = path or env.get("HOSTPROBE_CONFIG")
    if config_path is None and os.path.isfile(DEFAULT_CONFIG_PATH):
        config_path = DEFAULT_CONFIG_PATH

    if config_path:
        for key, value in _read_yaml(config_path).items():
            if key not in known:
                logger.warning(f"Ignoring unknown setting '{key}' in {config_path}")
                continue
            values[key] = _coerce(key, value)
        logger.debug(f"Loaded settings from {config_path}")

    for name, var in ENV_VARS.items():
        if env.get(var):
            values[name] = _coerce(name, env[var])

    for name, value in (overrides or {}).items():
        if name not in known:
            raise ConfigError(f"Unknown setting: {name}")
        if value is not None:
            values[name] = _coerce(name, value)

    return replace(Settings(), **values)
