"""DHT crawling: wire helpers, transaction correlation, job state and the engine."""

from __future__ import annotations

from dhtcrawl.discovery.crawler import DHTCrawler, DHTCrawlProtocol
from dhtcrawl.discovery.jobs import CrawlJob, CrawlJobRegistry, CrawlResult
from dhtcrawl.discovery.transactions import TransactionTable

__all__ = [
    "CrawlJob",
    "CrawlJobRegistry",
    "CrawlResult",
    "DHTCrawlProtocol",
    "DHTCrawler",
    "TransactionTable",
]
