"""Tests for the exception hierarchy."""

from __future__ import annotations

import pytest

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

pytestmark = [pytest.mark.unit]


@pytest.mark.parametrize(
    ("error_class", "parents"),
    [
        (TransportBindError, (NetworkError, DHTCrawlError)),
        (CrawlJobInProgressError, (DHTError, NetworkError, DHTCrawlError)),
        (ConfigurationError, (ValidationError, DHTCrawlError)),
        (InvalidInfoHashError, (ValidationError, DHTCrawlError)),
        (BencodeError, (ValidationError, DHTCrawlError)),
    ],
)
def test_hierarchy(error_class, parents):
    error = error_class("failure")

    for parent in parents:
        assert isinstance(error, parent)


def test_message_without_details():
    error = DHTCrawlError("Crawl job already in progress")

    assert str(error) == "Crawl job already in progress"
    assert error.details == {}


def test_message_with_details():
    error = CrawlJobInProgressError("Crawl job already in progress", {"info_hash": "ab" * 20})

    assert error.message == "Crawl job already in progress"
    assert error.details == {"info_hash": "ab" * 20}
    assert str(error) == f"Crawl job already in progress (Details: {{'info_hash': '{'ab' * 20}'}})"
