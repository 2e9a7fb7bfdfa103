"""Shared utilities and infrastructure.

This module contains common utilities used throughout the application.
"""

from __future__ import annotations

from dhtcrawl.utils.exceptions import (
    BencodeError,
    ConfigurationError,
    CrawlJobInProgressError,
    DHTCrawlError,
    DHTError,
    InvalidInfoHashError,
    NetworkError,
    TransportBindError,
    ValidationError,
)
from dhtcrawl.utils.logging_config import get_logger, setup_logging

__all__ = [
    # Exceptions
    "BencodeError",
    "ConfigurationError",
    "CrawlJobInProgressError",
    "DHTCrawlError",
    "DHTError",
    "InvalidInfoHashError",
    "NetworkError",
    "TransportBindError",
    "ValidationError",
    # Logging
    "get_logger",
    "setup_logging",
]
