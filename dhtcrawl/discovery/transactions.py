"""Correlation of outstanding ``get_peers`` queries with crawl jobs."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable


@dataclass
class TransactionEntry:
    """An outstanding query's owning info hash."""

    info_hash: str
    registered_at: float = field(default_factory=time.monotonic)


class TransactionTable:
    """Maps transaction ids to the info hash of the job that sent the query.

    Ids are reused freely: registering an id that is already present
    replaces the older entry. Entries older than ``ttl`` are treated as
    unknown and dropped by :meth:`evict_expired`.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic):
        """Initialize transaction table.

        Args:
            ttl: Seconds an entry stays resolvable
            clock: Monotonic time source

        """
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[int, TransactionEntry] = {}

    def register(self, transaction_id: int, info_hash: str) -> None:
        """Record that ``transaction_id`` was sent on behalf of ``info_hash``."""
        self._entries[transaction_id] = TransactionEntry(info_hash, self._clock())

    def resolve(self, transaction_id: int) -> str | None:
        """Return the info hash for ``transaction_id``, or None if unknown."""
        entry = self._entries.get(transaction_id)
        if entry is None:
            return None
        if self._clock() - entry.registered_at > self.ttl:
            return None
        return entry.info_hash

    def evict_expired(self) -> int:
        """Drop entries older than the ttl and return how many were removed."""
        now = self._clock()
        expired = [
            tid
            for tid, entry in self._entries.items()
            if now - entry.registered_at > self.ttl
        ]
        for tid in expired:
            del self._entries[tid]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, transaction_id: object) -> bool:
        return transaction_id in self._entries
