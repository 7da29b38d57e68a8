"""
Configuration management.

Configuration file parsing, defaults and environment resolution.
"""

from driftfix.config.loader import Config, config_from_dict, load_config
from driftfix.config.resolver import resolve_config

__all__ = [
    "load_config",
    "config_from_dict",
    "Config",
    "resolve_config",
]
