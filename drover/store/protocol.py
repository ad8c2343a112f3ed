"""Abstract persistence interface consumed by the orchestration core."""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    from drover.store.records import (
        BatchRecord,
        BatchType,
        DependencyPair,
        DependencyRecord,
        DependencyRef,
        DiscoveryProgressRecord,
        DiscoveryStatus,
        DiscoveryType,
        HistoryRecord,
        LogRecord,
        RepositoryProfile,
        RepositoryRecord,
    )


class Store(typ.Protocol):
    """Durable state for repositories, batches, discoveries and dependencies.

    Implementations must provide two atomic guarantees: creating a discovery
    run succeeds only when no other run is in progress, and resetting a run
    only affects it while it is still in progress.
    """

    # Repositories

    async def get_repository(self, full_name: str) -> RepositoryRecord | None:
        """Return the repository with the given full name, if any."""
        ...

    async def get_repositories(
        self, full_names: cabc.Sequence[str]
    ) -> list[RepositoryRecord]:
        """Return the repositories that exist among ``full_names``."""
        ...

    async def get_repositories_by_id(
        self, repository_ids: cabc.Sequence[int]
    ) -> list[RepositoryRecord]:
        """Return the repositories that exist among ``repository_ids``."""
        ...

    async def list_batch_repositories(self, batch_id: int) -> list[RepositoryRecord]:
        """Return the current members of a batch."""
        ...

    async def upsert_repository(
        self, profile: RepositoryProfile, *, discovered_at: dt.datetime
    ) -> RepositoryRecord:
        """Insert or refresh a discovered repository, preserving its status."""
        ...

    async def update_repository(self, record: RepositoryRecord) -> None:
        """Persist the lifecycle fields of ``record``."""
        ...

    async def add_history(  # noqa: PLR0913
        self,
        repository_id: int,
        *,
        status: str,
        phase: str,
        message: str | None,
        started_at: dt.datetime,
        completed_at: dt.datetime | None = None,
        error_message: str | None = None,
    ) -> int:
        """Append a migration history entry and return its id."""
        ...

    async def add_log(  # noqa: PLR0913
        self,
        repository_id: int,
        *,
        phase: str,
        operation: str,
        message: str,
        level: str = "INFO",
        initiated_by: str | None = None,
        history_id: int | None = None,
        details: str | None = None,
    ) -> int:
        """Append a migration log entry and return its id."""
        ...

    async def list_history(self, repository_id: int) -> list[HistoryRecord]:
        """Return history entries for a repository, oldest first."""
        ...

    async def list_logs(self, repository_id: int) -> list[LogRecord]:
        """Return log entries for a repository, oldest first."""
        ...

    # Batches

    async def create_batch(
        self,
        name: str,
        *,
        batch_type: BatchType,
        destination_org: str | None = None,
        description: str | None = None,
    ) -> BatchRecord:
        """Create a batch; raise ``ConflictError`` if the name is taken."""
        ...

    async def get_batch(self, batch_id: int) -> BatchRecord | None:
        """Return the batch with the given id, if any."""
        ...

    async def update_batch(self, record: BatchRecord) -> None:
        """Persist the mutable fields of ``record``."""
        ...

    async def recount_batch(self, batch_id: int) -> int:
        """Recompute a batch's repository count from its members."""
        ...

    # Discovery progress

    async def get_active_discovery(self) -> DiscoveryProgressRecord | None:
        """Return the in-progress discovery run, if any."""
        ...

    async def get_latest_discovery(self) -> DiscoveryProgressRecord | None:
        """Return the most recently started discovery run, if any."""
        ...

    async def get_discovery(self, progress_id: int) -> DiscoveryProgressRecord | None:
        """Return a discovery run by id."""
        ...

    async def create_discovery(
        self, discovery_type: DiscoveryType, target: str, *, total_orgs: int
    ) -> DiscoveryProgressRecord:
        """Create an in-progress run iff none is active.

        Raises ``ConflictError`` when another run is in progress.
        """
        ...

    async def update_discovery(self, progress_id: int, **fields: object) -> None:
        """Overwrite progress fields of a run."""
        ...

    async def increment_discovery(
        self,
        progress_id: int,
        *,
        processed_repos: int = 0,
        processed_orgs: int = 0,
        total_repos: int = 0,
    ) -> None:
        """Add to the counters of a run without reading them first."""
        ...

    async def record_discovery_error(self, progress_id: int, message: str) -> None:
        """Increment a run's error count and remember the latest error."""
        ...

    async def finish_discovery(
        self,
        progress_id: int,
        status: DiscoveryStatus,
        *,
        last_error: str | None = None,
    ) -> None:
        """Move a run to a terminal status."""
        ...

    async def reset_discovery_if_active(self, progress_id: int) -> int:
        """Cancel a run only if it is still in progress; return rows affected."""
        ...

    async def recover_stuck_discoveries(self, started_before: dt.datetime) -> int:
        """Cancel in-progress runs that started before a cut-off."""
        ...

    # Dependencies

    async def replace_dependencies(
        self, repository_id: int, dependencies: cabc.Sequence[DependencyRef]
    ) -> None:
        """Replace all dependency edges owned by a repository."""
        ...

    async def update_local_dependency_flags(self) -> int:
        """Mark edges whose target is a known repository as local."""
        ...

    async def list_dependencies(self, repository_id: int) -> list[DependencyRecord]:
        """Return the dependency edges owned by a repository."""
        ...

    async def list_dependents(self, full_name: str) -> list[RepositoryRecord]:
        """Return repositories with an edge targeting ``full_name``."""
        ...

    async def list_local_dependency_pairs(
        self,
        dependency_types: cabc.Sequence[str] | None = None,
        *,
        source_repository_id: int | None = None,
    ) -> list[DependencyPair]:
        """Return local edges as name pairs, optionally filtered."""
        ...
