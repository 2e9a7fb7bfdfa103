"""Configuration management.

This module handles configuration loading and validation.
"""

from __future__ import annotations

from dhtcrawl.config.config import (
    ConfigManager,
    get_config,
    get_crawler_config,
    init_config,
    reset_config,
    set_config,
)
from dhtcrawl.models import Config

__all__ = [
    "Config",
    "ConfigManager",
    "get_config",
    "get_crawler_config",
    "init_config",
    "reset_config",
    "set_config",
]
