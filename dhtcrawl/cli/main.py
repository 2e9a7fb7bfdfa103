"""Command line interface for dhtcrawl.

Provides:
- ``crawl``: run one crawl job and print the peers and nodes found
- ``config show``: print the effective configuration
"""

from __future__ import annotations

import asyncio
import json
import logging

import click
from rich.console import Console
from rich.table import Table

from dhtcrawl import __version__
from dhtcrawl.config.config import ConfigManager, get_config, init_config, set_config
from dhtcrawl.discovery.crawler import DHTCrawler
from dhtcrawl.discovery.jobs import CrawlResult
from dhtcrawl.discovery.krpc import normalize_info_hash
from dhtcrawl.models import CrawlerConfig, LogLevel
from dhtcrawl.utils.exceptions import (
    ConfigurationError,
    InvalidInfoHashError,
    TransportBindError,
)
from dhtcrawl.utils.logging_config import LoggingContext, get_logger

logger = get_logger(__name__)


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False),
    help="Configuration file path",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="dhtcrawl")
@click.pass_context
def cli(ctx, config, verbose):
    """Dhtcrawl - find the peers and nodes behind an info hash."""
    ctx.ensure_object(dict)
    try:
        config_manager = init_config(config)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e

    if verbose:
        new_config = config_manager.config.model_copy(deep=True)
        new_config.observability.log_level = LogLevel.DEBUG
        set_config(new_config)

    ctx.obj["config_manager"] = config_manager


@cli.command("crawl")
@click.argument("info_hash", type=str)
@click.option(
    "--port",
    "-p",
    type=click.IntRange(0, 65535),
    help="Local UDP port (0 picks a free one)",
)
@click.option(
    "--ttl",
    type=click.FloatRange(min=0.0, min_open=True),
    help="Seconds to crawl before reporting",
)
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@click.pass_context
def crawl_cmd(_ctx, info_hash: str, port: int | None, ttl: float | None, as_json: bool):
    """Crawl the DHT for INFO_HASH (40 hex characters).

    Args:
        _ctx: Click context (unused but required by decorator)
        info_hash: Info hash to search for
        port: Override for the local UDP port
        ttl: Override for the crawl duration
        as_json: Emit JSON instead of a table

    """
    console = Console()

    try:
        info_hash = normalize_info_hash(info_hash)
    except InvalidInfoHashError as e:
        raise click.BadParameter(e.message, param_hint="INFO_HASH") from e

    overrides: dict[str, object] = {}
    if port is not None:
        overrides["port"] = port
    if ttl is not None:
        overrides["crawl_ttl"] = ttl
    crawler_config = get_config().crawler.model_copy(update=overrides)

    if not as_json:
        console.print(
            f"Crawling [cyan]{info_hash}[/cyan] for {crawler_config.crawl_ttl:g}s..."
        )

    try:
        result = asyncio.run(_run_crawl(crawler_config, info_hash))
    except TransportBindError as e:
        raise click.ClickException(str(e)) from e

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return
    _print_result(console, result)


async def _run_crawl(config: CrawlerConfig, info_hash: str) -> CrawlResult:
    """Bind a crawler, run one job and shut it down."""
    with LoggingContext(
        "crawl", corr_id=info_hash[:12], log_level=logging.DEBUG, info_hash=info_hash
    ):
        crawler = DHTCrawler(config)
        await crawler.start()
        logger.debug("Crawler bound to %s:%s", crawler.bind_ip, crawler.bind_port)
        try:
            return await crawler.crawl(info_hash)
        finally:
            await crawler.stop()


def _print_result(console: Console, result: CrawlResult) -> None:
    table = Table(title=f"DHT crawl {result.info_hash}")
    table.add_column("Type", style="cyan")
    table.add_column("Address", style="green")
    for peer in result.peers:
        table.add_row("peer", peer)
    for node in result.nodes:
        table.add_row("node", node)

    console.print(table)
    console.print(
        f"Found [bold]{len(result.peers)}[/bold] peers and "
        f"[bold]{len(result.nodes)}[/bold] nodes in {result.duration:.1f}s"
    )


@cli.group("config")
def config_group():
    """Inspect configuration."""


@config_group.command("show")
@click.pass_context
def config_show(ctx):
    """Print the effective configuration as TOML."""
    config_manager: ConfigManager = ctx.obj["config_manager"]
    click.echo(config_manager.export())


def main():
    """Main CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
