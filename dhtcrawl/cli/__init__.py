"""Command line interface for dhtcrawl."""

from dhtcrawl.cli.main import cli, main

__all__ = [
    "cli",
    "main",
]
