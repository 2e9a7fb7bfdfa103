"""Exception hierarchy for dhtcrawl.

Only a handful of these ever reach a caller: a duplicate crawl job, an
invalid info hash, a failed UDP bind and invalid configuration. Faults in
inbound traffic are handled where they occur and never raised.
"""

from __future__ import annotations

from typing import Any


class DHTCrawlError(Exception):
    """Base exception for all dhtcrawl errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize dhtcrawl error."""
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} (Details: {self.details})"
        return self.message


class NetworkError(DHTCrawlError):
    """Network-related errors."""


class TransportBindError(NetworkError):
    """The UDP endpoint could not be bound."""


class DHTError(NetworkError):
    """DHT (Distributed Hash Table) errors."""


class CrawlJobInProgressError(DHTError):
    """A crawl job for the info hash is already running."""


class ValidationError(DHTCrawlError):
    """Data validation errors."""


class ConfigurationError(ValidationError):
    """Configuration validation errors."""


class InvalidInfoHashError(ValidationError):
    """Info hash is not a 40 character hex string."""


class BencodeError(ValidationError):
    """Bencode encoding/decoding errors."""
