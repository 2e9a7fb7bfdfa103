"""Tests for crawl job state and the job registry."""

from __future__ import annotations

import pytest

from dhtcrawl.discovery.jobs import CrawlJobRegistry, CrawlResult
from dhtcrawl.utils.exceptions import CrawlJobInProgressError, DHTError

pytestmark = [pytest.mark.unit, pytest.mark.discovery]

INFO_HASH = "aa" * 20
OTHER_HASH = "bb" * 20


@pytest.fixture
def registry():
    return CrawlJobRegistry()


class TestStart:
    """Tests for starting jobs."""

    def test_start_creates_empty_job(self, registry):
        job = registry.start(INFO_HASH)

        assert job.info_hash == INFO_HASH
        assert job.peers == set()
        assert job.nodes == set()
        assert registry.is_active(INFO_HASH)
        assert registry.get(INFO_HASH) is job
        assert len(registry) == 1

    def test_duplicate_start_is_rejected(self, registry):
        registry.start(INFO_HASH)

        with pytest.raises(CrawlJobInProgressError, match="already in progress") as exc_info:
            registry.start(INFO_HASH)

        assert isinstance(exc_info.value, DHTError)
        assert exc_info.value.details == {"info_hash": INFO_HASH}

    def test_different_hashes_are_independent(self, registry):
        registry.start(INFO_HASH)
        registry.start(OTHER_HASH)

        assert sorted(registry) == [INFO_HASH, OTHER_HASH]

    def test_start_again_after_delete(self, registry):
        registry.start(INFO_HASH)
        registry.snapshot_and_delete(INFO_HASH)

        assert registry.start(INFO_HASH).peers == set()


class TestRecording:
    """Tests for recording discoveries."""

    def test_peers_are_deduplicated(self, registry):
        registry.start(INFO_HASH)

        assert registry.record_peer(INFO_HASH, "1.2.3.4:5000") is True
        assert registry.record_peer(INFO_HASH, "1.2.3.4:5000") is False
        assert registry.record_peer(INFO_HASH, "1.2.3.4:5001") is True

        assert registry.get(INFO_HASH).peers == {"1.2.3.4:5000", "1.2.3.4:5001"}

    def test_nodes_are_deduplicated(self, registry):
        registry.start(INFO_HASH)

        for _ in range(3):
            registry.record_node(INFO_HASH, "5.6.7.8:6881")

        assert registry.get(INFO_HASH).nodes == {"5.6.7.8:6881"}

    def test_peer_and_node_sets_are_separate(self, registry):
        registry.start(INFO_HASH)
        registry.record_peer(INFO_HASH, "1.2.3.4:5000")

        assert registry.record_node(INFO_HASH, "1.2.3.4:5000") is True

    def test_recording_without_job_is_a_noop(self, registry):
        assert registry.record_peer(INFO_HASH, "1.2.3.4:5000") is False
        assert registry.record_node(INFO_HASH, "1.2.3.4:5000") is False
        assert not registry.is_active(INFO_HASH)


class TestSnapshot:
    """Tests for snapshot_and_delete."""

    def test_snapshot_returns_sets_and_removes_job(self, registry):
        registry.start(INFO_HASH)
        registry.record_peer(INFO_HASH, "9.9.9.9:1")
        registry.record_peer(INFO_HASH, "1.1.1.1:1")
        registry.record_node(INFO_HASH, "2.2.2.2:2")

        result = registry.snapshot_and_delete(INFO_HASH)

        assert isinstance(result, CrawlResult)
        assert result.peers == ["1.1.1.1:1", "9.9.9.9:1"]
        assert result.nodes == ["2.2.2.2:2"]
        assert result.duration >= 0.0
        assert not registry.is_active(INFO_HASH)

    def test_snapshot_happens_once(self, registry):
        registry.start(INFO_HASH)
        registry.snapshot_and_delete(INFO_HASH)

        assert registry.snapshot_and_delete(INFO_HASH) is None

    def test_discoveries_after_snapshot_are_ignored(self, registry):
        registry.start(INFO_HASH)
        result = registry.snapshot_and_delete(INFO_HASH)

        registry.record_peer(INFO_HASH, "1.2.3.4:5000")

        assert result.peers == []
        assert registry.get(INFO_HASH) is None

    def test_clear(self, registry):
        registry.start(INFO_HASH)
        registry.start(OTHER_HASH)

        jobs = registry.clear()

        assert {job.info_hash for job in jobs} == {INFO_HASH, OTHER_HASH}
        assert len(registry) == 0


def test_result_to_dict():
    result = CrawlResult(INFO_HASH, peers=["1.2.3.4:5000"], nodes=[], duration=1.5)

    assert result.to_dict() == {
        "info_hash": INFO_HASH,
        "peers": ["1.2.3.4:5000"],
        "nodes": [],
    }
