"""
System configuration package.

Provides one configuration and one logging setup for the whole analytics engine.

Exports:
    - SystemConfig: Complete system configuration dataclass
    - AnalyticsConfig: Analytics engine settings
    - get_system_config: Get system config singleton
    - reload_system_config: Force reload system config
    - LoggerFactory: Factory for creating configured loggers
    - LoggingConfig: Logging configuration model
"""

from qjournal.system.config import AnalyticsConfig, SystemConfig, get_system_config, reload_system_config
from qjournal.system.log_system import LoggerFactory, LoggingConfig

__all__ = [
    "AnalyticsConfig",
    "SystemConfig",
    "get_system_config",
    "reload_system_config",
    "LoggerFactory",
    "LoggingConfig",
]
