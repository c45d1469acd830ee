"""Configuration management for iDRAC Monitor."""

from idrac_monitor.config.loader import ConfigurationError, get_config, load_config, reload_config
from idrac_monitor.config.settings import MonitorSettings

__all__ = [
    "ConfigurationError",
    "MonitorSettings",
    "get_config",
    "load_config",
    "reload_config",
]
