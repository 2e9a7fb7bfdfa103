"""Crawl job state and the registry that owns it."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Iterator

from dhtcrawl.utils.exceptions import CrawlJobInProgressError


@dataclass
class CrawlResult:
    """Final peers and nodes found for one info hash."""

    info_hash: str
    peers: list[str] = field(default_factory=list)
    nodes: list[str] = field(default_factory=list)
    duration: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Return the report in its plain form."""
        return {
            "info_hash": self.info_hash,
            "peers": list(self.peers),
            "nodes": list(self.nodes),
        }


@dataclass
class CrawlJob:
    """An in-progress search for one info hash."""

    info_hash: str
    peers: set[str] = field(default_factory=set)
    nodes: set[str] = field(default_factory=set)
    started_at: float = field(default_factory=time.monotonic)
    queries_sent: int = 0

    # Lifecycle handles, owned by the crawler
    expiry_handle: asyncio.TimerHandle | None = None
    bootstrap_task: asyncio.Task | None = None
    result_future: asyncio.Future | None = None


class CrawlJobRegistry:
    """Active crawl jobs keyed by info hash (lowercase hex)."""

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._jobs: dict[str, CrawlJob] = {}

    def start(self, info_hash: str) -> CrawlJob:
        """Create the job for ``info_hash``.

        Raises:
            CrawlJobInProgressError: a job for ``info_hash`` is already active

        """
        if info_hash in self._jobs:
            msg = "Crawl job already in progress"
            raise CrawlJobInProgressError(msg, {"info_hash": info_hash})
        job = CrawlJob(info_hash)
        self._jobs[info_hash] = job
        return job

    def get(self, info_hash: str) -> CrawlJob | None:
        """Return the active job for ``info_hash``, if any."""
        return self._jobs.get(info_hash)

    def is_active(self, info_hash: str) -> bool:
        """Return True while a job for ``info_hash`` exists."""
        return info_hash in self._jobs

    def record_peer(self, info_hash: str, address: str) -> bool:
        """Add a peer to the job; True only if the job exists and it is new."""
        job = self._jobs.get(info_hash)
        if job is None or address in job.peers:
            return False
        job.peers.add(address)
        return True

    def record_node(self, info_hash: str, address: str) -> bool:
        """Add a node to the job; True only if the job exists and it is new."""
        job = self._jobs.get(info_hash)
        if job is None or address in job.nodes:
            return False
        job.nodes.add(address)
        return True

    def snapshot_and_delete(self, info_hash: str) -> CrawlResult | None:
        """Remove the job and return what it found, None if already gone."""
        job = self._jobs.pop(info_hash, None)
        if job is None:
            return None
        return CrawlResult(
            info_hash=info_hash,
            peers=sorted(job.peers),
            nodes=sorted(job.nodes),
            duration=time.monotonic() - job.started_at,
        )

    def clear(self) -> list[CrawlJob]:
        """Remove every job and return them."""
        jobs = list(self._jobs.values())
        self._jobs.clear()
        return jobs

    def __len__(self) -> int:
        return len(self._jobs)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._jobs))
