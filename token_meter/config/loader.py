"""
Configuration management and loading.

Handles store, statistics and logging settings from YAML files.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Union

import yaml

DEFAULT_CONFIG_PATH = "token-meter.yaml"
DEFAULT_STORE_PATH = "usage/usage.jsonl"
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass(frozen=True)
class StoreConfig:
    """Location and flush policy of the usage log."""
    path: str = DEFAULT_STORE_PATH
    flush_interval_seconds: float = 30.0
    buffer_capacity: int = 50

    def __post_init__(self):
        """Validate store values."""
        if not self.path:
            raise ValueError("store path cannot be empty")
        if self.flush_interval_seconds <= 0:
            raise ValueError("flush_interval_seconds must be > 0")
        if self.buffer_capacity < 1:
            raise ValueError("buffer_capacity must be >= 1")


@dataclass(frozen=True)
class StatisticsConfig:
    """Whether usage statistics are collected."""
    enabled: bool = True


@dataclass(frozen=True)
class LoggingConfig:
    """Log verbosity."""
    level: str = "INFO"

    def __post_init__(self):
        """Validate log level."""
        if self.level not in VALID_LOG_LEVELS:
            raise ValueError(f"logging level must be one of: {list(VALID_LOG_LEVELS)}")


@dataclass(frozen=True)
class UsageConfig:
    """Complete Token Meter configuration."""
    store: StoreConfig = field(default_factory=StoreConfig)
    statistics: StatisticsConfig = field(default_factory=StatisticsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def default_config(store_path: Union[str, Path, None] = None) -> UsageConfig:
    """Build the default configuration, optionally for a given log path."""
    if store_path is None:
        return UsageConfig()
    return UsageConfig(store=StoreConfig(path=str(store_path)))


def load_usage_config(path: Union[str, Path]) -> UsageConfig:
    """Load and validate configuration from a YAML file.

    Strict validation ensures no silent misconfigurations, such as a typo
    in a key that would leave events going to an unexpected file.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated UsageConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    allowed_top_keys = {'store', 'statistics', 'logging'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    if 'store' not in raw_config:
        raise ValueError("Missing required 'store' section")

    return UsageConfig(
        store=_parse_store_config(_section(raw_config, 'store')),
        statistics=_parse_statistics_config(_section(raw_config, 'statistics')),
        logging=_parse_logging_config(_section(raw_config, 'logging')),
    )


def _section(raw_config: Dict, name: str) -> Dict[str, Any]:
    data = raw_config.get(name)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")
    return data


def _check_keys(data: Dict, allowed: set, path: str) -> None:
    unknown_keys = set(data.keys()) - allowed
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")


def _parse_store_config(data: Dict[str, Any]) -> StoreConfig:
    """Parse and validate the store section.

    Raises:
        ValueError: If configuration is invalid
    """
    _check_keys(data, {'path', 'flush_interval_seconds', 'buffer_capacity'}, "store")

    if 'path' not in data:
        raise ValueError("Missing required 'path' in store")
    path = data['path']
    if not isinstance(path, str) or not path.strip():
        raise ValueError("'path' in store must be a non-empty string")

    interval = data.get('flush_interval_seconds', 30)
    if isinstance(interval, bool) or not isinstance(interval, (int, float)) or interval <= 0:
        raise ValueError("'flush_interval_seconds' in store must be > 0")

    capacity = data.get('buffer_capacity', 50)
    if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 1:
        raise ValueError("'buffer_capacity' in store must be an integer >= 1")

    return StoreConfig(
        path=path,
        flush_interval_seconds=float(interval),
        buffer_capacity=capacity,
    )


def _parse_statistics_config(data: Dict[str, Any]) -> StatisticsConfig:
    _check_keys(data, {'enabled'}, "statistics")

    enabled = data.get('enabled', True)
    if not isinstance(enabled, bool):
        raise ValueError("'enabled' in statistics must be a boolean")
    return StatisticsConfig(enabled=enabled)


def _parse_logging_config(data: Dict[str, Any]) -> LoggingConfig:
    _check_keys(data, {'level'}, "logging")

    level = data.get('level', 'INFO')
    if not isinstance(level, str):
        raise ValueError("'level' in logging must be a string")
    level = level.upper()
    if level not in VALID_LOG_LEVELS:
        raise ValueError(f"'level' in logging must be one of: {list(VALID_LOG_LEVELS)}")
    return LoggingConfig(level=level)


def write_default_config(path: Union[str, Path]) -> Path:
    """Write the default configuration as YAML.

    Args:
        path: Destination file

    Returns:
        Path of the written file

    Raises:
        FileExistsError: If the file already exists
    """
    config_path = Path(path)
    if config_path.exists():
        raise FileExistsError(f"Config file already exists: {path}")

    defaults = UsageConfig()
    data = {
        'store': {
            'path': defaults.store.path,
            'flush_interval_seconds': defaults.store.flush_interval_seconds,
            'buffer_capacity': defaults.store.buffer_capacity,
        },
        'statistics': {'enabled': defaults.statistics.enabled},
        'logging': {'level': defaults.logging.level},
    }
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, 'w', encoding='utf-8') as f:
        yaml.safe_dump(data, f, sort_keys=False)
    return config_path
