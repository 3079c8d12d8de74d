"""
Configuration management and loading.

Handles collector settings from a YAML file and environment variables.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from usage_collector.storage.models import Identity, UNKNOWN


CONFIG_ENV_VAR = "USAGE_COLLECTOR_CONFIG"
STATE_DIR_ENV_VAR = "USAGE_COLLECTOR_STATE_DIR"

DEFAULT_COLLECTION_INTERVAL_MINUTES = 60
DEFAULT_HEALTH_CHECK_INTERVAL_MINUTES = 5
STORAGE_DIR_SUFFIX = "-usage_collector"


class ConfigError(ValueError):
    """Raised when the collector configuration is invalid."""


def default_state_root() -> Path:
    """State root from the environment, or ``~/.usage_collector``."""
    override = os.getenv(STATE_DIR_ENV_VAR)
    if override and override.strip():
        return Path(os.path.expanduser(override.strip()))
    return Path.home() / ".usage_collector"


@dataclass(frozen=True)
class CollectorConfig:
    """Complete collector configuration."""
    state_root: Path = field(default_factory=default_state_root)
    storage_root: Optional[Path] = None
    log_directories: Tuple[Path, ...] = ()
    collection_interval_minutes: int = DEFAULT_COLLECTION_INTERVAL_MINUTES
    health_check_interval_minutes: int = DEFAULT_HEALTH_CHECK_INTERVAL_MINUTES
    archive_daily: bool = False

    def __post_init__(self):
        """Validate interval values are positive."""
        if self.collection_interval_minutes <= 0:
            raise ConfigError("collection_interval_minutes must be > 0")
        if self.health_check_interval_minutes <= 0:
            raise ConfigError("health_check_interval_minutes must be > 0")


def default_config() -> CollectorConfig:
    return CollectorConfig()


def _expand(value: Any, key: str) -> Path:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"'{key}' must be a non-empty string")
    return Path(os.path.expanduser(value.strip()))


def _positive_int(data: Dict[str, Any], key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"'{key}' must be a positive integer")
    return value


def load_collector_config(path: str) -> CollectorConfig:
    """Load and validate collector configuration from a YAML file.

    Unknown keys are rejected so a typo cannot silently fall back to a
    default location.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated CollectorConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ConfigError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Collector config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ConfigError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ConfigError("Configuration must be a mapping")

    allowed_keys = {
        'storage_root',
        'state_root',
        'log_directories',
        'collection_interval_minutes',
        'health_check_interval_minutes',
        'archive_daily',
    }
    unknown_keys = set(raw_config.keys()) - allowed_keys
    if unknown_keys:
        raise ConfigError(f"Unknown configuration keys: {unknown_keys}")

    storage_root = None
    if raw_config.get('storage_root') is not None:
        storage_root = _expand(raw_config['storage_root'], 'storage_root')

    state_root = default_state_root()
    if raw_config.get('state_root') is not None:
        state_root = _expand(raw_config['state_root'], 'state_root')

    directories = raw_config.get('log_directories') or []
    if not isinstance(directories, list):
        raise ConfigError("'log_directories' must be a list")
    log_directories = tuple(_expand(d, 'log_directories') for d in directories)

    archive_daily = raw_config.get('archive_daily', False)
    if not isinstance(archive_daily, bool):
        raise ConfigError("'archive_daily' must be true or false")

    return CollectorConfig(
        state_root=state_root,
        storage_root=storage_root,
        log_directories=log_directories,
        collection_interval_minutes=_positive_int(
            raw_config, 'collection_interval_minutes', DEFAULT_COLLECTION_INTERVAL_MINUTES
        ),
        health_check_interval_minutes=_positive_int(
            raw_config, 'health_check_interval_minutes', DEFAULT_HEALTH_CHECK_INTERVAL_MINUTES
        ),
        archive_daily=archive_daily,
    )


def resolve_config(path: Optional[str] = None) -> CollectorConfig:
    """Load the config file given, or the one named by the environment.

    Falls back to defaults when neither is set.
    """
    path = path or os.getenv(CONFIG_ENV_VAR)
    if path:
        return load_collector_config(path)
    return default_config()


def _sanitize(value: Optional[str]) -> str:
    if not value or not isinstance(value, str) or not value.strip():
        return UNKNOWN
    return re.sub(r"_+", "_", re.sub(r"[^a-zA-Z0-9]", "_", value.strip()))


def generate_directory_name(identity: Identity) -> str:
    """Directory name of the form ``<name>_<company>_<team>-usage_collector``."""
    return (
        f"{_sanitize(identity.name)}_{_sanitize(identity.company)}_"
        f"{_sanitize(identity.team)}{STORAGE_DIR_SUFFIX}"
    )


def resolve_storage_root(
    config: CollectorConfig,
    identity: Identity,
    home: Optional[Path] = None,
) -> Path:
    """User-visible report directory. Does not create it."""
    if config.storage_root is not None:
        return Path(config.storage_root).resolve()
    home = Path(home) if home is not None else Path.home()
    return home / "Desktop" / generate_directory_name(identity)
