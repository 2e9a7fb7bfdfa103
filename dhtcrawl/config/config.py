"""Configuration management for dhtcrawl.

Hierarchical loading: defaults -> TOML config file -> environment.
Values are validated by the pydantic models in :mod:`dhtcrawl.models`.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import toml

from dhtcrawl.models import Config, CrawlerConfig
from dhtcrawl.utils.exceptions import ConfigurationError
from dhtcrawl.utils.logging_config import get_logger, setup_logging

logger = get_logger(__name__)

CONFIG_FILE_NAME = "dhtcrawl.toml"

# Environment variable -> dotted config path. UDP_PORT is kept for
# deployments that configured the port before the DHTCRAWL_ prefix existed.
ENV_MAPPINGS: dict[str, str] = {
    "UDP_PORT": "crawler.port",
    "DHTCRAWL_UDP_PORT": "crawler.port",
    "DHTCRAWL_BIND_IP": "crawler.bind_ip",
    "DHTCRAWL_CRAWL_TTL": "crawler.crawl_ttl",
    "DHTCRAWL_BOOTSTRAP_NODES": "crawler.bootstrap_nodes",
    "DHTCRAWL_BOOTSTRAP_ROUNDS": "crawler.bootstrap_rounds",
    "DHTCRAWL_BOOTSTRAP_INTERVAL": "crawler.bootstrap_interval",
    "DHTCRAWL_TRANSACTION_ID_BITS": "crawler.transaction_id_bits",
    "DHTCRAWL_NODE_ID_ROTATION_INTERVAL": "crawler.node_id_rotation_interval",
    "DHTCRAWL_MAX_QUERIES_PER_JOB": "crawler.max_queries_per_job",
    "DHTCRAWL_LOG_LEVEL": "observability.log_level",
    "DHTCRAWL_LOG_FILE": "observability.log_file",
    "DHTCRAWL_STRUCTURED_LOGGING": "observability.structured_logging",
}

_LIST_PATHS = {"crawler.bootstrap_nodes"}
_STRING_PATHS = {
    "crawler.bind_ip",
    "observability.log_level",
    "observability.log_file",
}

# Global configuration instance
_config_manager: ConfigManager | None = None


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_file: str | Path | None = None):
        """Initialize configuration manager.

        Args:
            config_file: Path to TOML config file. If None, searches for dhtcrawl.toml

        """
        self.config_file = self._find_config_file(config_file)
        self.config = self._load_config()
        self._setup_logging()

    def _find_config_file(
        self,
        config_file: str | Path | None,
    ) -> Path | None:
        """Find configuration file in standard locations."""
        if config_file:
            return Path(config_file)

        search_paths = [
            Path.cwd() / CONFIG_FILE_NAME,
            Path.home() / ".config" / "dhtcrawl" / CONFIG_FILE_NAME,
            Path.home() / f".{CONFIG_FILE_NAME}",
        ]

        for path in search_paths:
            if path.exists():
                return path

        return None

    def _load_config(self) -> Config:
        """Load configuration from file and environment."""
        config_data: dict[str, Any] = {}

        if self.config_file and self.config_file.exists():
            try:
                with open(self.config_file, encoding="utf-8") as f:
                    config_data.update(toml.load(f))
            except (OSError, toml.TomlDecodeError) as e:
                logger.warning(
                    "Failed to load config file %s: %s", self.config_file, e
                )

            bootstrap = config_data.get("crawler", {}).get("bootstrap_nodes")
            if isinstance(bootstrap, str):
                config_data["crawler"]["bootstrap_nodes"] = _split_list(bootstrap)

        env_config = self._get_env_config()
        config_data = self._merge_config(config_data, env_config)

        try:
            return Config(**config_data)
        except Exception as e:
            msg = f"Invalid configuration: {e}"
            raise ConfigurationError(msg) from e

    def _get_env_config(self) -> dict[str, Any]:
        """Get configuration from environment variables."""
        env_config: dict[str, Any] = {}

        def _parse_env_value(raw: str, path: str) -> bool | int | float | str | list[str]:
            if path in _LIST_PATHS:
                return _split_list(raw)
            if path in _STRING_PATHS:
                return raw

            low = raw.lower()
            if low in {"true", "yes", "on"}:
                return True
            if low in {"false", "no", "off"}:
                return False
            try:
                if "." in raw:
                    return float(raw)
                return int(raw)
            except ValueError:
                return raw

        def _set_nested(d: dict[str, Any], path: str, value: Any) -> None:
            parts = path.split(".")
            cur = d
            for p in parts[:-1]:
                cur = cur.setdefault(p, {})
            cur[parts[-1]] = value

        # Later entries win, so DHTCRAWL_UDP_PORT overrides UDP_PORT
        for env_name, cfg_path in ENV_MAPPINGS.items():
            raw = os.getenv(env_name)
            if raw is None:
                continue
            _set_nested(env_config, cfg_path, _parse_env_value(raw, cfg_path))

        return env_config

    def _merge_config(
        self,
        base: dict[str, Any],
        override: dict[str, Any],
    ) -> dict[str, Any]:
        """Merge configuration dictionaries recursively."""
        result = base.copy()

        for key, value in override.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value

        return result

    def export(self) -> str:
        """Export current configuration as TOML."""
        data = self.config.model_dump(mode="json", exclude_none=True)
        return toml.dumps(data)

    def _setup_logging(self) -> None:
        """Set up logging configuration."""
        setup_logging(self.config.observability)


def _split_list(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager.config


def init_config(config_file: str | Path | None = None) -> ConfigManager:
    """Initialize the global configuration manager."""
    global _config_manager
    _config_manager = ConfigManager(config_file)
    return _config_manager


def set_config(new_config: Config) -> None:
    """Replace the global configuration at runtime."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager(None)
    _config_manager.config = new_config
    _config_manager._setup_logging()  # noqa: SLF001


def reset_config() -> None:
    """Drop the global configuration so the next access reloads it."""
    global _config_manager
    _config_manager = None


def get_crawler_config() -> CrawlerConfig:
    """Get crawler configuration."""
    return get_config().crawler
