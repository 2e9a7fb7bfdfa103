"""One-shot DHT crawl jobs (BEP 5 ``get_peers``).

A crawl job starts from a fixed set of bootstrap nodes, follows every peer
and node reference returned in replies, and after a fixed time-to-live
reports the deduplicated peers and nodes it found. Each
:class:`DHTCrawler` owns its transaction table, job registry, follow-up
work queue and UDP transport, so several instances can run side by side.
"""

from __future__ import annotations

import asyncio
import contextlib
import contextvars
import random
import socket
from typing import Any

from dhtcrawl.config.config import get_crawler_config
from dhtcrawl.discovery.jobs import CrawlJobRegistry, CrawlResult
from dhtcrawl.discovery.krpc import (
    decode_compact_address,
    decode_message,
    encode_get_peers,
    generate_node_id,
    is_ip_literal,
    iter_compact_nodes,
    normalize_info_hash,
    parse_address,
)
from dhtcrawl.discovery.transactions import TransactionTable
from dhtcrawl.models import CrawlerConfig
from dhtcrawl.utils.exceptions import BencodeError, DHTError, TransportBindError
from dhtcrawl.utils.logging_config import get_logger, log_exception, set_correlation_id

logger = get_logger(__name__)


class DHTCrawler:
    """Crawl engine: dispatches queries, correlates replies, runs job lifecycles."""

    def __init__(self, config: CrawlerConfig | None = None):
        """Initialize DHT crawler.

        Args:
            config: Crawler settings, the global configuration when omitted

        """
        self.config = config if config is not None else get_crawler_config()

        # Node identity, rotated by a background task
        self.node_id = generate_node_id()

        # Network
        self.bind_ip = self.config.bind_ip
        self.bind_port = self.config.port
        self.transport: asyncio.DatagramTransport | None = None
        self.protocol: DHTCrawlProtocol | None = None

        self.bootstrap_nodes: tuple[str, ...] = tuple(self.config.bootstrap_nodes)

        self.transactions = TransactionTable(ttl=self.config.crawl_ttl)
        self.jobs = CrawlJobRegistry()

        # Follow-up queries found in replies, drained by the dispatch task
        self._queue: asyncio.Queue[tuple[str, str]] = asyncio.Queue()

        # Background tasks
        self._dispatch_task: asyncio.Task | None = None
        self._rotation_task: asyncio.Task | None = None
        self._cleanup_task: asyncio.Task | None = None

        self.logger = logger

    async def start(self) -> None:
        """Bind the UDP endpoint and start background tasks.

        Raises:
            TransportBindError: the endpoint could not be bound

        """
        loop = asyncio.get_running_loop()
        try:
            self.transport, self.protocol = await loop.create_datagram_endpoint(
                lambda: DHTCrawlProtocol(self),
                local_addr=(self.bind_ip, self.bind_port),
            )
        except OSError as e:
            self.logger.exception(
                "Failed to bind DHT crawler to %s:%s", self.bind_ip, self.bind_port
            )
            msg = f"Could not bind UDP {self.bind_ip}:{self.bind_port}: {e}"
            raise TransportBindError(
                msg, {"bind_ip": self.bind_ip, "port": self.bind_port}
            ) from e

        sockname = self.transport.get_extra_info("sockname")
        if sockname:
            self.bind_port = sockname[1]

        self._start_background_tasks()
        self.logger.info("DHT crawler listening on %s:%s", self.bind_ip, self.bind_port)

    def _start_background_tasks(self) -> None:
        self._dispatch_task = asyncio.create_task(self._dispatch_loop())
        self._rotation_task = asyncio.create_task(self._rotation_loop())
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def stop(self) -> None:
        """Stop the crawler, abandoning any jobs still running."""
        for job in self.jobs.clear():
            if job.expiry_handle:
                job.expiry_handle.cancel()
            if job.bootstrap_task and not job.bootstrap_task.done():
                job.bootstrap_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await job.bootstrap_task
            if job.result_future and not job.result_future.done():
                job.result_future.cancel()

        for task in (self._dispatch_task, self._rotation_task, self._cleanup_task):
            if task:
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._dispatch_task = self._rotation_task = self._cleanup_task = None

        if self.transport:
            self.transport.close()
            self.transport = None

        self.logger.info("DHT crawler stopped")

    # Job lifecycle

    def start_crawl(self, info_hash: str) -> asyncio.Future[CrawlResult]:
        """Start a crawl job and return a future for its result.

        The future resolves once ``crawl_ttl`` seconds have passed.

        Raises:
            InvalidInfoHashError: ``info_hash`` is not 40 hex characters
            CrawlJobInProgressError: a job for ``info_hash`` is already active

        """
        info_hash = normalize_info_hash(info_hash)
        job = self.jobs.start(info_hash)
        self.logger.info("Crawling %s...", info_hash)

        loop = asyncio.get_running_loop()
        # Timer and bootstrap task log under the job's correlation id
        context = contextvars.copy_context()
        context.run(set_correlation_id, info_hash[:12])

        job.result_future = loop.create_future()
        job.expiry_handle = loop.call_later(
            self.config.crawl_ttl, self._expire_job, info_hash, context=context
        )
        job.bootstrap_task = context.run(
            loop.create_task, self._bootstrap_job(info_hash)
        )
        return job.result_future

    async def crawl(self, info_hash: str) -> CrawlResult:
        """Crawl the DHT for ``info_hash`` and return the peers and nodes found."""
        return await self.start_crawl(info_hash)

    def _expire_job(self, info_hash: str) -> None:
        job = self.jobs.get(info_hash)
        future = job.result_future if job else None
        result = self.jobs.snapshot_and_delete(info_hash)
        if result is None:
            return

        self.logger.info("Done crawling %s.", info_hash)
        self.logger.info("Found %d peers for %s.", len(result.peers), info_hash)
        self.logger.info("Found %d nodes for %s.", len(result.nodes), info_hash)

        if future is not None and not future.done():
            future.set_result(result)

    async def _bootstrap_job(self, info_hash: str) -> None:
        """Query every bootstrap node ``bootstrap_rounds`` times.

        Datagrams get lost and bootstrap routers are sometimes down, so the
        same queries are repeated instead of tracking acknowledgements.
        """
        addresses = await self._resolve_bootstrap_nodes()
        if not addresses:
            self.logger.warning("No bootstrap node could be resolved for %s", info_hash)
            return

        rounds = self.config.bootstrap_rounds
        for round_no in range(rounds):
            for address in addresses:
                self.send_get_peers(info_hash, address)
            if round_no < rounds - 1:
                await asyncio.sleep(self.config.bootstrap_interval)

    async def _resolve_bootstrap_nodes(self) -> list[str]:
        """Resolve bootstrap host names to ``ip:port`` strings."""
        loop = asyncio.get_running_loop()
        resolved: list[str] = []
        for node in self.bootstrap_nodes:
            parsed = parse_address(node)
            if parsed is None:
                self.logger.warning("Invalid bootstrap node format: %s (expected host:port)", node)
                continue
            host, port = parsed
            if is_ip_literal(host):
                resolved.append(node)
                continue
            try:
                infos = await loop.getaddrinfo(
                    host, port, family=socket.AF_INET, type=socket.SOCK_DGRAM
                )
            except OSError as e:
                self.logger.debug("Bootstrap resolution failed for %s: %s", node, e)
                continue
            if infos:
                resolved.append(f"{infos[0][4][0]}:{port}")
        return resolved

    # Query dispatch

    def send_get_peers(self, info_hash: str, address: str) -> int | None:
        """Send a ``get_peers`` query for ``info_hash`` to ``address``.

        Fire and forget. Addresses without a valid port are dropped, as
        are queries beyond the job's query budget. Returns the transaction
        id used, or None if nothing was sent.
        """
        parsed = parse_address(address)
        if parsed is None:
            self.logger.debug("Dropping get_peers to invalid address %r", address)
            return None
        if self.transport is None:
            self.logger.debug("Dropping get_peers to %s: transport not bound", address)
            return None

        job = self.jobs.get(info_hash)
        if job is not None:
            if job.queries_sent >= self.config.max_queries_per_job:
                self.logger.debug(
                    "Query budget of %d exhausted for %s",
                    self.config.max_queries_per_job,
                    info_hash,
                )
                return None
            job.queries_sent += 1

        transaction_id = random.getrandbits(self.config.transaction_id_bits)  # nosec B311
        self.transactions.register(transaction_id, info_hash)
        data = encode_get_peers(transaction_id, self.node_id, bytes.fromhex(info_hash))

        try:
            self.transport.sendto(data, parsed)
        except (OSError, ValueError) as e:
            self.logger.debug("Failed to send get_peers to %s: %s", address, e)
        return transaction_id

    def _schedule_query(self, info_hash: str, address: str) -> None:
        self._queue.put_nowait((info_hash, address))

    async def _dispatch_loop(self) -> None:
        """Background task sending follow-up queries found in replies.

        Entries whose job has already expired are skipped.
        """
        while True:
            info_hash, address = await self._queue.get()
            try:
                if self.jobs.is_active(info_hash):
                    self.send_get_peers(info_hash, address)
                else:
                    self.logger.debug(
                        "Skipping follow-up to %s, job %s has ended", address, info_hash
                    )
            except BencodeError as e:
                log_exception(self.logger, e, f"Failed to build get_peers for {info_hash}")
            finally:
                self._queue.task_done()

    async def wait_idle(self) -> None:
        """Wait until every queued follow-up query has been dispatched."""
        await self._queue.join()

    # Reply handling

    def handle_datagram(self, data: bytes, addr: tuple[str, int]) -> None:
        """Process one inbound datagram.

        Unusable traffic is dropped: undecodable payloads, missing or
        malformed transaction ids, and replies to unknown transactions.
        Peers (``values``) and nodes (``nodes``) new to the owning job are
        recorded and queued for one follow-up query each. An address the job
        already holds is not queried again, and queued follow-ups are
        dropped once the job has expired (see :meth:`_dispatch_loop`).
        """
        message = decode_message(data)
        if message is None:
            self.logger.debug("Malformed message from %s:%s", *addr[:2])
            return

        info_hash = self.transactions.resolve(message.transaction_id)
        if info_hash is None:
            self.logger.debug(
                "Unknown transaction %d from %s:%s",
                message.transaction_id,
                *addr[:2],
            )
            return

        if message.values is not None:
            for value in message.values:
                peer = decode_compact_address(value)
                if peer is None:
                    continue
                if self.jobs.record_peer(info_hash, peer):
                    self.logger.debug("Found new peer %s for %s", peer, info_hash)
                    self._schedule_query(info_hash, peer)

        if message.nodes is not None:
            for compact in iter_compact_nodes(message.nodes):
                node = decode_compact_address(compact)
                if node is None:
                    continue
                if self.jobs.record_node(info_hash, node):
                    self.logger.debug("Found new node %s for %s", node, info_hash)
                    self._schedule_query(info_hash, node)

    # Background maintenance

    async def _rotation_loop(self) -> None:
        """Regenerate the node id periodically.

        Crawling sends a lot of queries; a changing id makes it harder for
        other nodes to single us out.
        """
        while True:
            try:
                await asyncio.sleep(self.config.node_id_rotation_interval)
                self.node_id = generate_node_id()
                self.logger.debug("Rotated node id to %s", self.node_id.hex())
            except asyncio.CancelledError:
                break

    async def _cleanup_loop(self) -> None:
        """Drop transactions older than the crawl ttl."""
        while True:
            try:
                await asyncio.sleep(self.config.cleanup_interval)
                evicted = self.transactions.evict_expired()
                if evicted:
                    self.logger.debug("Evicted %d expired transactions", evicted)
            except asyncio.CancelledError:
                break

    def get_stats(self) -> dict[str, Any]:
        """Get crawler statistics."""
        return {
            "node_id": self.node_id.hex(),
            "port": self.bind_port,
            "active_jobs": list(self.jobs),
            "transactions": len(self.transactions),
            "queued_queries": self._queue.qsize(),
        }


class DHTCrawlProtocol(asyncio.DatagramProtocol):
    """Datagram protocol feeding inbound packets to the crawler."""

    def __init__(self, crawler: DHTCrawler):
        """Initialize protocol for ``crawler``."""
        self.crawler = crawler

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        """Handle incoming UDP datagram."""
        self.crawler.handle_datagram(data, addr)

    def error_received(self, exc: Exception) -> None:
        """Handle UDP error."""
        self.crawler.logger.debug("DHT error: %s", exc)


# Global crawler instance
_crawler: DHTCrawler | None = None


def get_crawler() -> DHTCrawler | None:
    """Get the global crawler, None until :func:`init_crawler` ran."""
    return _crawler


async def init_crawler(config: CrawlerConfig | None = None) -> DHTCrawler:
    """Create, bind and install the global crawler.

    Raises:
        TransportBindError: the UDP endpoint could not be bound

    """
    global _crawler
    if _crawler is not None:
        await _crawler.stop()
        _crawler = None
    crawler = DHTCrawler(config)
    await crawler.start()
    _crawler = crawler
    return crawler


async def crawl(info_hash: str) -> CrawlResult:
    """Crawl ``info_hash`` with the global crawler."""
    if _crawler is None:
        msg = "DHT crawler is not initialized, call init_crawler() first"
        raise DHTError(msg)
    return await _crawler.crawl(info_hash)


async def shutdown_crawler() -> None:
    """Shutdown the global crawler."""
    global _crawler
    if _crawler:
        await _crawler.stop()
        _crawler = None
