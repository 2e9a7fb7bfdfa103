"""dhtcrawl - find the peers and nodes behind an info hash on the BitTorrent DHT."""

from __future__ import annotations

__version__ = "0.1.0"

from dhtcrawl.config.config import ConfigManager, get_config, init_config
from dhtcrawl.discovery.crawler import (
    DHTCrawler,
    crawl,
    get_crawler,
    init_crawler,
    shutdown_crawler,
)
from dhtcrawl.discovery.jobs import CrawlResult
from dhtcrawl.models import Config, CrawlerConfig, ObservabilityConfig
from dhtcrawl.utils.exceptions import (
    CrawlJobInProgressError,
    DHTCrawlError,
    InvalidInfoHashError,
    TransportBindError,
)

__all__ = [
    "Config",
    "ConfigManager",
    "CrawlJobInProgressError",
    "CrawlResult",
    "CrawlerConfig",
    "DHTCrawlError",
    "DHTCrawler",
    "InvalidInfoHashError",
    "ObservabilityConfig",
    "TransportBindError",
    "__version__",
    "crawl",
    "get_config",
    "get_crawler",
    "init_config",
    "init_crawler",
    "shutdown_crawler",
]
