"""Progress reporting for discovery runs.

Processed-repository increments are buffered and written in batches to keep
the progress row from becoming a write hotspot while repositories are
profiled concurrently. Progress writes are best effort: a failure is logged
and the crawl carries on.
"""

from __future__ import annotations

import asyncio
import typing as typ

from drover.errors import DroverError
from drover.logging import get_logger, log_warning
from drover.store import DiscoveryPhase

if typ.TYPE_CHECKING:
    from drover.store import Store

logger = get_logger(__name__)


class ProgressTracker(typ.Protocol):
    """Sink for discovery progress updates."""

    async def set_total_orgs(self, total: int) -> None:
        """Record how many organizations or projects will be crawled."""
        ...

    async def start_org(self, unit: str) -> None:
        """Mark an organization or project as the current sub-unit."""
        ...

    async def complete_org(self, unit: str) -> None:
        """Mark the current sub-unit as processed."""
        ...

    async def add_repos(self, count: int) -> None:
        """Add newly listed repositories to the total."""
        ...

    async def increment_processed_repos(self, count: int = 1) -> None:
        """Count profiled repositories, successful or not."""
        ...

    async def set_phase(self, phase: str) -> None:
        """Record the current phase label."""
        ...

    async def record_error(self, message: str) -> None:
        """Record a non-fatal error."""
        ...

    async def flush(self) -> None:
        """Write any buffered counters."""
        ...


class NullProgressTracker:
    """Tracker that discards every update."""

    async def set_total_orgs(self, total: int) -> None:
        """Discard the update."""

    async def start_org(self, unit: str) -> None:
        """Discard the update."""

    async def complete_org(self, unit: str) -> None:
        """Discard the update."""

    async def add_repos(self, count: int) -> None:
        """Discard the update."""

    async def increment_processed_repos(self, count: int = 1) -> None:
        """Discard the update."""

    async def set_phase(self, phase: str) -> None:
        """Discard the update."""

    async def record_error(self, message: str) -> None:
        """Discard the update."""

    async def flush(self) -> None:
        """Nothing is buffered."""


class StoreProgressTracker:
    """Write discovery progress to the store."""

    def __init__(self, store: Store, progress_id: int, *, flush_every: int = 5) -> None:
        """Track progress for ``progress_id``, flushing every ``flush_every``."""
        self._store = store
        self._progress_id = progress_id
        self._flush_every = max(1, flush_every)
        self._pending = 0
        self._lock = asyncio.Lock()

    @property
    def pending(self) -> int:
        """Return the number of processed repositories not yet written."""
        return self._pending

    async def set_total_orgs(self, total: int) -> None:
        """Record how many organizations or projects will be crawled."""
        await self._write("set_total_orgs", total_orgs=total)

    async def start_org(self, unit: str) -> None:
        """Mark ``unit`` as current and return to the listing phase."""
        await self._write(
            "start_org", current_org=unit, phase=DiscoveryPhase.LISTING_REPOS
        )

    async def complete_org(self, unit: str) -> None:
        """Flush buffered repositories and count ``unit`` as processed."""
        await self.flush()
        try:
            await self._store.increment_discovery(self._progress_id, processed_orgs=1)
        except DroverError as exc:
            log_warning(
                logger,
                "Failed to complete org %s on discovery %d: %s",
                unit,
                self._progress_id,
                exc,
            )

    async def add_repos(self, count: int) -> None:
        """Add ``count`` listed repositories to the total."""
        if count <= 0:
            return
        try:
            await self._store.increment_discovery(self._progress_id, total_repos=count)
        except DroverError as exc:
            log_warning(
                logger,
                "Failed to add %d repos to discovery %d: %s",
                count,
                self._progress_id,
                exc,
            )

    async def increment_processed_repos(self, count: int = 1) -> None:
        """Buffer ``count`` processed repositories, flushing when due."""
        async with self._lock:
            self._pending += count
            if self._pending < self._flush_every:
                return
            await self._flush_locked()

    async def set_phase(self, phase: str) -> None:
        """Record the current phase label."""
        await self._write("set_phase", phase=phase)

    async def record_error(self, message: str) -> None:
        """Increment the error count and keep ``message`` as the last error."""
        try:
            await self._store.record_discovery_error(self._progress_id, message)
        except DroverError as exc:
            log_warning(
                logger,
                "Failed to record error on discovery %d: %s",
                self._progress_id,
                exc,
            )

    async def flush(self) -> None:
        """Write any buffered processed-repository count."""
        async with self._lock:
            await self._flush_locked()

    async def _flush_locked(self) -> None:
        if self._pending == 0:
            return
        count = self._pending
        self._pending = 0
        try:
            await self._store.increment_discovery(
                self._progress_id, processed_repos=count
            )
        except DroverError as exc:
            log_warning(
                logger,
                "Failed to flush %d processed repos on discovery %d: %s",
                count,
                self._progress_id,
                exc,
            )

    async def _write(self, operation: str, **fields: object) -> None:
        try:
            await self._store.update_discovery(self._progress_id, **fields)
        except DroverError as exc:
            log_warning(
                logger,
                "Progress update %s failed on discovery %d: %s",
                operation,
                self._progress_id,
                exc,
            )
