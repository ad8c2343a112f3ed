"""Tests for discovery progress trackers."""

from __future__ import annotations

import pytest

from drover.discovery import NullProgressTracker, StoreProgressTracker
from drover.errors import InternalError
from drover.store import DiscoveryPhase, DiscoveryType, SqlAlchemyStore


class _FailingStore:
    """Store double whose progress writes always fail."""

    async def update_discovery(self, progress_id: int, **fields: object) -> None:
        raise InternalError.store_failure("update_discovery")

    async def increment_discovery(self, progress_id: int, **counts: int) -> None:
        raise InternalError.store_failure("increment_discovery")

    async def record_discovery_error(self, progress_id: int, message: str) -> None:
        raise InternalError.store_failure("record_discovery_error")


class TestStoreProgressTracker:
    """Tests for StoreProgressTracker."""

    @pytest.mark.asyncio
    async def test_buffers_processed_repositories(self, store: SqlAlchemyStore) -> None:
        """Processed counts are written once the buffer reaches its limit."""
        progress = await store.create_discovery(
            DiscoveryType.ORGANIZATION, "acme", total_orgs=1
        )
        tracker = StoreProgressTracker(store, progress.id, flush_every=3)

        for _ in range(4):
            await tracker.increment_processed_repos()
        partial = await store.get_discovery(progress.id)
        await tracker.flush()
        flushed = await store.get_discovery(progress.id)

        assert partial is not None
        assert partial.processed_repos == 3, "Only the full buffer is written"
        assert tracker.pending == 0
        assert flushed is not None
        assert flushed.processed_repos == 4

    @pytest.mark.asyncio
    async def test_unit_lifecycle(self, store: SqlAlchemyStore) -> None:
        """Starting and completing a unit updates labels and counters."""
        progress = await store.create_discovery(
            DiscoveryType.ENTERPRISE, "acme-ent", total_orgs=0
        )
        tracker = StoreProgressTracker(store, progress.id, flush_every=10)

        await tracker.set_total_orgs(2)
        await tracker.start_org("acme")
        await tracker.add_repos(2)
        await tracker.set_phase(DiscoveryPhase.PROFILING_REPOS)
        await tracker.increment_processed_repos(2)
        await tracker.record_error("acme/api: boom")
        await tracker.complete_org("acme")

        record = await store.get_discovery(progress.id)
        assert record is not None
        assert record.total_orgs == 2
        assert record.current_org == "acme"
        assert record.phase == DiscoveryPhase.PROFILING_REPOS
        assert (record.total_repos, record.processed_repos) == (2, 2)
        assert record.processed_orgs == 1
        assert (record.error_count, record.last_error) == (1, "acme/api: boom")

    @pytest.mark.asyncio
    async def test_store_failures_are_not_raised(self) -> None:
        """Progress is best effort; write failures never stop a crawl."""
        tracker = StoreProgressTracker(_FailingStore(), 1, flush_every=1)  # type: ignore[arg-type]

        await tracker.set_total_orgs(1)
        await tracker.start_org("acme")
        await tracker.add_repos(1)
        await tracker.increment_processed_repos()
        await tracker.record_error("boom")
        await tracker.complete_org("acme")

        assert tracker.pending == 0


@pytest.mark.asyncio
async def test_null_tracker_accepts_everything() -> None:
    """The null tracker satisfies the protocol without side effects."""
    tracker = NullProgressTracker()

    await tracker.set_total_orgs(1)
    await tracker.start_org("acme")
    await tracker.increment_processed_repos(5)
    await tracker.flush()
