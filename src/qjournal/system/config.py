"""
System configuration for QJournal.

Holds the knobs of the analytics engine (HOW numbers are computed), not the
trades themselves (WHAT is analysed). Configuration is loaded from YAML with
built-in defaults:

1. Explicit path passed to SystemConfig.load()
2. $QJOURNAL_CONFIG environment variable
3. ./config/qjournal.yaml
4. Built-in defaults

Partial files are deep-merged over the defaults and ${VAR} / ${VAR:-default}
placeholders are substituted from the environment.
"""

import os
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml

from qjournal.system.log_system import LoggingConfig as LoggerConfig

DEFAULT_CONFIG_PATH = Path("config/qjournal.yaml")
CONFIG_ENV_VAR = "QJOURNAL_CONFIG"

_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


@dataclass
class AnalyticsConfig:
    """Analytics engine settings."""

    default_portfolio_size: float = 100000.0
    risk_free_rate: float = 0.05
    periods_per_year: int = 252
    worker_threshold: int = 50
    xirr_cache_size: int = 2000
    xirr_max_iterations: int = 100
    xirr_tolerance: float = 1e-7

    def __post_init__(self) -> None:
        if self.default_portfolio_size <= 0:
            raise ValueError(f"default_portfolio_size must be positive, got {self.default_portfolio_size}")
        if self.periods_per_year <= 0:
            raise ValueError(f"periods_per_year must be positive, got {self.periods_per_year}")
        if self.worker_threshold < 0:
            raise ValueError(f"worker_threshold must be non-negative, got {self.worker_threshold}")
        if self.xirr_cache_size <= 0:
            raise ValueError(f"xirr_cache_size must be positive, got {self.xirr_cache_size}")
        if self.xirr_max_iterations <= 0:
            raise ValueError(f"xirr_max_iterations must be positive, got {self.xirr_max_iterations}")
        if self.xirr_tolerance <= 0:
            raise ValueError(f"xirr_tolerance must be positive, got {self.xirr_tolerance}")


@dataclass
class LoggingConfig:
    """Logging settings as they appear in the YAML file."""

    level: str = "INFO"
    format: str = "console"
    timestamp_format: str = "compact"
    enable_file: bool = False
    file_path: str = "logs/qjournal.log"
    file_level: str = "WARNING"
    file_rotation: bool = True
    max_file_size_mb: int = 10
    backup_count: int = 3

    def to_logger_config(self) -> LoggerConfig:
        """Convert to the log_system LoggingConfig used by LoggerFactory."""
        return LoggerConfig(
            level=self.level,  # type: ignore[arg-type]
            format=self.format,  # type: ignore[arg-type]
            timestamp_format=self.timestamp_format,  # type: ignore[arg-type]
            enable_file=self.enable_file,
            file_path=Path(self.file_path),
            file_level=self.file_level,  # type: ignore[arg-type]
            file_rotation=self.file_rotation,
            max_file_size_mb=self.max_file_size_mb,
            backup_count=self.backup_count,
        )


@dataclass
class SystemConfig:
    """Container for all system configuration sections."""

    analytics: AnalyticsConfig = field(default_factory=AnalyticsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, path: str | Path | None = None) -> "SystemConfig":
        """
        Load configuration from YAML, falling back to defaults.

        Args:
            path: Explicit config file. When None, $QJOURNAL_CONFIG and then
                ./config/qjournal.yaml are tried.

        Returns:
            SystemConfig with file values merged over defaults.

        Raises:
            ValueError: If the file exists but is not valid YAML or not a mapping.
        """
        config_path = cls._resolve_path(path)

        overrides: dict[str, Any] = {}
        if config_path is not None and config_path.exists():
            try:
                with open(config_path, "r") as f:
                    loaded = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {config_path}: {e}") from e

            if loaded is None:
                loaded = {}
            if not isinstance(loaded, dict):
                raise ValueError(f"Config file {config_path} must contain a mapping")
            overrides = _substitute_env_vars(loaded)

        merged = _deep_merge(asdict(cls()), overrides)
        return cls._from_dict(merged)

    @staticmethod
    def _resolve_path(path: str | Path | None) -> Path | None:
        if path is not None:
            return Path(path)
        env_path = os.environ.get(CONFIG_ENV_VAR)
        if env_path:
            return Path(env_path)
        if DEFAULT_CONFIG_PATH.exists():
            return DEFAULT_CONFIG_PATH
        return None

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> "SystemConfig":
        """Build config from a (possibly partial) dictionary."""
        analytics = data.get("analytics") or {}
        logging_section = data.get("logging") or {}

        analytics_fields = AnalyticsConfig.__dataclass_fields__
        logging_fields = LoggingConfig.__dataclass_fields__

        return cls(
            analytics=AnalyticsConfig(**{k: v for k, v in analytics.items() if k in analytics_fields}),
            logging=LoggingConfig(**{k: v for k, v in logging_section.items() if k in logging_fields}),
        )


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into a copy of base."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _substitute_env_vars(value: Any) -> Any:
    """Replace ${VAR} and ${VAR:-default} placeholders in strings, recursively.

    Undefined variables without a default keep their placeholder.
    """
    if isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_substitute_env_vars(v) for v in value]
    if isinstance(value, str):

        def replace(match: re.Match[str]) -> str:
            name, default = match.group(1), match.group(2)
            env_value = os.environ.get(name)
            if env_value is not None:
                return env_value
            if default is not None:
                return default
            return match.group(0)

        return _ENV_PATTERN.sub(replace, value)
    return value


_system_config: SystemConfig | None = None


def get_system_config() -> SystemConfig:
    """Get the process-wide configuration, loading it on first use."""
    global _system_config
    if _system_config is None:
        _system_config = SystemConfig.load()
    return _system_config


def reload_system_config(path: str | Path | None = None) -> SystemConfig:
    """Reload configuration (mainly for tests and CLI overrides)."""
    global _system_config
    _system_config = SystemConfig.load(path)
    return _system_config
