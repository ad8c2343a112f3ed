"""SQLAlchemy implementation of the :class:`~drover.store.protocol.Store`."""

from __future__ import annotations

import contextlib
import typing as typ

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from drover.common.time import utcnow
from drover.errors import ConflictError, InternalError
from drover.store.records import (
    BatchRecord,
    BatchStatus,
    BatchType,
    DependencyPair,
    DependencyRecord,
    DiscoveryPhase,
    DiscoveryProgressRecord,
    DiscoveryStatus,
    DiscoveryType,
    HistoryRecord,
    LogRecord,
    RepositoryRecord,
    RepositoryStatus,
)
from drover.store.tables import (
    Batch,
    DiscoveryProgress,
    MigrationHistory,
    MigrationLog,
    Repository,
    RepositoryDependency,
)

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from drover.store.records import DependencyRef, RepositoryProfile

    SessionFactory: typ.TypeAlias = async_sessionmaker[AsyncSession]

FORCE_RESET_MESSAGE = "Force reset: discovery was stuck in progress state"
STARTUP_RECOVERY_MESSAGE = "Discovery was interrupted and reset at startup"

_TERMINAL_DISCOVERY_STATUSES = (
    DiscoveryStatus.COMPLETE.value,
    DiscoveryStatus.FAILED.value,
    DiscoveryStatus.CANCELLED.value,
)

_PROFILE_FIELDS = (
    "source",
    "source_url",
    "default_branch",
    "total_size",
    "visibility",
    "ado_project",
    "is_archived",
    "has_lfs",
    "has_submodules",
    "has_large_files",
    "has_oversized_repository",
)


def _repository_record(row: Repository) -> RepositoryRecord:
    return RepositoryRecord(
        id=row.id,
        full_name=row.full_name,
        status=RepositoryStatus(row.status),
        source=row.source,
        source_url=row.source_url,
        batch_id=row.batch_id,
        priority=row.priority,
        destination_full_name=row.destination_full_name,
        default_branch=row.default_branch,
        total_size=row.total_size,
        visibility=row.visibility,
        ado_project=row.ado_project,
        is_archived=row.is_archived,
        has_lfs=row.has_lfs,
        has_submodules=row.has_submodules,
        has_large_files=row.has_large_files,
        has_oversized_repository=row.has_oversized_repository,
        migrated_at=row.migrated_at,
        last_dry_run_at=row.last_dry_run_at,
        last_discovery_at=row.last_discovery_at,
    )


def _batch_record(row: Batch) -> BatchRecord:
    return BatchRecord(
        id=row.id,
        name=row.name,
        type=BatchType(row.type),
        status=BatchStatus(row.status),
        repository_count=row.repository_count,
        destination_org=row.destination_org,
        description=row.description,
        created_at=row.created_at,
        started_at=row.started_at,
        completed_at=row.completed_at,
    )


def _discovery_record(row: DiscoveryProgress) -> DiscoveryProgressRecord:
    return DiscoveryProgressRecord(
        id=row.id,
        discovery_type=DiscoveryType(row.discovery_type),
        target=row.target,
        status=DiscoveryStatus(row.status),
        phase=row.phase,
        started_at=row.started_at,
        completed_at=row.completed_at,
        total_orgs=row.total_orgs,
        processed_orgs=row.processed_orgs,
        current_org=row.current_org,
        total_repos=row.total_repos,
        processed_repos=row.processed_repos,
        error_count=row.error_count,
        last_error=row.last_error,
    )


class SqlAlchemyStore:
    """Persist Drover state through an async SQLAlchemy session factory.

    Every public method runs in its own transaction. Database failures are
    re-raised as :class:`~drover.errors.InternalError` naming the operation,
    except unique-index violations that signal a domain conflict.

    Parameters
    ----------
    session_factory:
        Async session factory bound to an engine whose schema was created
        with :func:`drover.store.init_store`.

    """

    def __init__(self, session_factory: SessionFactory) -> None:
        """Configure the store with a session factory."""
        self._sf = session_factory

    @contextlib.asynccontextmanager
    async def _transaction(self, operation: str) -> typ.AsyncIterator[AsyncSession]:
        try:
            async with self._sf() as session, session.begin():
                yield session
        except SQLAlchemyError as exc:
            raise InternalError.store_failure(operation) from exc

    # Repositories

    async def get_repository(self, full_name: str) -> RepositoryRecord | None:
        """Return the repository with the given full name, if any."""
        async with self._transaction("get_repository") as session:
            row = await session.scalar(
                select(Repository).where(Repository.full_name == full_name)
            )
            return None if row is None else _repository_record(row)

    async def get_repositories(
        self, full_names: cabc.Sequence[str]
    ) -> list[RepositoryRecord]:
        """Return the repositories that exist among ``full_names``."""
        if not full_names:
            return []
        async with self._transaction("get_repositories") as session:
            rows = await session.scalars(
                select(Repository)
                .where(Repository.full_name.in_(list(full_names)))
                .order_by(Repository.id)
            )
            return [_repository_record(row) for row in rows]

    async def get_repositories_by_id(
        self, repository_ids: cabc.Sequence[int]
    ) -> list[RepositoryRecord]:
        """Return the repositories that exist among ``repository_ids``."""
        if not repository_ids:
            return []
        async with self._transaction("get_repositories_by_id") as session:
            rows = await session.scalars(
                select(Repository)
                .where(Repository.id.in_(list(repository_ids)))
                .order_by(Repository.id)
            )
            return [_repository_record(row) for row in rows]

    async def list_batch_repositories(self, batch_id: int) -> list[RepositoryRecord]:
        """Return the current members of a batch."""
        async with self._transaction("list_batch_repositories") as session:
            rows = await session.scalars(
                select(Repository)
                .where(Repository.batch_id == batch_id)
                .order_by(Repository.id)
            )
            return [_repository_record(row) for row in rows]

    async def upsert_repository(
        self, profile: RepositoryProfile, *, discovered_at: dt.datetime
    ) -> RepositoryRecord:
        """Insert or refresh a discovered repository.

        Lifecycle fields (status, batch, priority, destination) of an existing
        repository are left untouched so rediscovery never resets progress.
        """
        async with self._transaction("upsert_repository") as session:
            row = await session.scalar(
                select(Repository).where(Repository.full_name == profile.full_name)
            )
            if row is None:
                row = Repository(
                    full_name=profile.full_name,
                    status=RepositoryStatus.PENDING.value,
                    discovered_at=discovered_at,
                )
                session.add(row)
            for field in _PROFILE_FIELDS:
                setattr(row, field, getattr(profile, field))
            row.last_discovery_at = discovered_at
            await session.flush()
            return _repository_record(row)

    async def update_repository(self, record: RepositoryRecord) -> None:
        """Persist the lifecycle fields of ``record``."""
        async with self._transaction("update_repository") as session:
            await session.execute(
                update(Repository)
                .where(Repository.id == record.id)
                .values(
                    status=record.status.value,
                    batch_id=record.batch_id,
                    priority=record.priority,
                    destination_full_name=record.destination_full_name,
                    migrated_at=record.migrated_at,
                    last_dry_run_at=record.last_dry_run_at,
                    updated_at=utcnow(),
                )
            )

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
        async with self._transaction("add_history") as session:
            row = MigrationHistory(
                repository_id=repository_id,
                status=status,
                phase=phase,
                message=message,
                error_message=error_message,
                started_at=started_at,
                completed_at=completed_at,
            )
            session.add(row)
            await session.flush()
            return row.id

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
        async with self._transaction("add_log") as session:
            row = MigrationLog(
                repository_id=repository_id,
                history_id=history_id,
                level=level,
                phase=phase,
                operation=operation,
                message=message,
                details=details,
                initiated_by=initiated_by,
                timestamp=utcnow(),
            )
            session.add(row)
            await session.flush()
            return row.id

    async def list_history(self, repository_id: int) -> list[HistoryRecord]:
        """Return history entries for a repository, oldest first."""
        async with self._transaction("list_history") as session:
            rows = await session.scalars(
                select(MigrationHistory)
                .where(MigrationHistory.repository_id == repository_id)
                .order_by(MigrationHistory.id)
            )
            return [
                HistoryRecord(
                    id=row.id,
                    repository_id=row.repository_id,
                    status=row.status,
                    phase=row.phase,
                    message=row.message,
                    started_at=row.started_at,
                    completed_at=row.completed_at,
                    error_message=row.error_message,
                )
                for row in rows
            ]

    async def list_logs(self, repository_id: int) -> list[LogRecord]:
        """Return log entries for a repository, oldest first."""
        async with self._transaction("list_logs") as session:
            rows = await session.scalars(
                select(MigrationLog)
                .where(MigrationLog.repository_id == repository_id)
                .order_by(MigrationLog.id)
            )
            return [
                LogRecord(
                    id=row.id,
                    repository_id=row.repository_id,
                    level=row.level,
                    phase=row.phase,
                    operation=row.operation,
                    message=row.message,
                    timestamp=row.timestamp,
                    initiated_by=row.initiated_by,
                    history_id=row.history_id,
                    details=row.details,
                )
                for row in rows
            ]

    # Batches

    async def create_batch(
        self,
        name: str,
        *,
        batch_type: BatchType,
        destination_org: str | None = None,
        description: str | None = None,
    ) -> BatchRecord:
        """Create a ready batch; raise ``ConflictError`` if the name is taken."""
        try:
            async with self._sf() as session, session.begin():
                existing = await session.scalar(
                    select(Batch.id).where(Batch.name == name)
                )
                if existing is not None:
                    raise ConflictError.batch_name_taken(name)
                row = Batch(
                    name=name,
                    type=batch_type.value,
                    status=BatchStatus.READY.value,
                    destination_org=destination_org,
                    description=description,
                    repository_count=0,
                    created_at=utcnow(),
                )
                session.add(row)
                await session.flush()
                record = _batch_record(row)
        except IntegrityError as exc:
            raise ConflictError.batch_name_taken(name) from exc
        except SQLAlchemyError as exc:
            raise InternalError.store_failure("create_batch") from exc
        return record

    async def get_batch(self, batch_id: int) -> BatchRecord | None:
        """Return the batch with the given id, if any."""
        async with self._transaction("get_batch") as session:
            row = await session.get(Batch, batch_id)
            return None if row is None else _batch_record(row)

    async def update_batch(self, record: BatchRecord) -> None:
        """Persist status, destination and timestamps of ``record``."""
        async with self._transaction("update_batch") as session:
            await session.execute(
                update(Batch)
                .where(Batch.id == record.id)
                .values(
                    status=record.status.value,
                    destination_org=record.destination_org,
                    description=record.description,
                    started_at=record.started_at,
                    completed_at=record.completed_at,
                )
            )

    async def recount_batch(self, batch_id: int) -> int:
        """Recompute a batch's repository count in a single statement."""
        members = (
            select(func.count(Repository.id))
            .where(Repository.batch_id == batch_id)
            .scalar_subquery()
        )
        async with self._transaction("recount_batch") as session:
            await session.execute(
                update(Batch)
                .where(Batch.id == batch_id)
                .values(repository_count=members)
            )
            count = await session.scalar(
                select(Batch.repository_count).where(Batch.id == batch_id)
            )
            return count or 0

    # Discovery progress

    async def get_active_discovery(self) -> DiscoveryProgressRecord | None:
        """Return the in-progress discovery run, if any."""
        async with self._transaction("get_active_discovery") as session:
            row = await session.scalar(
                select(DiscoveryProgress).where(
                    DiscoveryProgress.status == DiscoveryStatus.IN_PROGRESS.value
                )
            )
            return None if row is None else _discovery_record(row)

    async def get_latest_discovery(self) -> DiscoveryProgressRecord | None:
        """Return the most recently started discovery run, if any."""
        async with self._transaction("get_latest_discovery") as session:
            row = await session.scalar(
                select(DiscoveryProgress)
                .order_by(
                    DiscoveryProgress.started_at.desc(), DiscoveryProgress.id.desc()
                )
                .limit(1)
            )
            return None if row is None else _discovery_record(row)

    async def get_discovery(self, progress_id: int) -> DiscoveryProgressRecord | None:
        """Return a discovery run by id."""
        async with self._transaction("get_discovery") as session:
            row = await session.get(DiscoveryProgress, progress_id)
            return None if row is None else _discovery_record(row)

    async def create_discovery(
        self, discovery_type: DiscoveryType, target: str, *, total_orgs: int
    ) -> DiscoveryProgressRecord:
        """Create an in-progress run iff none is active.

        The check and insert share one transaction, and the partial unique
        index on ``status`` rejects a second in-progress row that slips past
        the check from another connection.

        Raises
        ------
        ConflictError
            If another discovery is in progress.

        """
        try:
            async with self._sf() as session, session.begin():
                active = await session.scalar(
                    select(DiscoveryProgress).where(
                        DiscoveryProgress.status == DiscoveryStatus.IN_PROGRESS.value
                    )
                )
                if active is not None:
                    raise ConflictError.discovery_in_progress(active.id, active.target)
                await session.execute(
                    delete(DiscoveryProgress).where(
                        DiscoveryProgress.status.in_(_TERMINAL_DISCOVERY_STATUSES)
                    )
                )
                row = DiscoveryProgress(
                    discovery_type=discovery_type.value,
                    target=target,
                    status=DiscoveryStatus.IN_PROGRESS.value,
                    phase=DiscoveryPhase.LISTING_REPOS.value,
                    started_at=utcnow(),
                    total_orgs=total_orgs,
                )
                session.add(row)
                await session.flush()
                record = _discovery_record(row)
        except IntegrityError as exc:
            raise ConflictError.discovery_in_progress_unknown() from exc
        except SQLAlchemyError as exc:
            raise InternalError.store_failure("create_discovery") from exc
        return record

    async def update_discovery(self, progress_id: int, **fields: object) -> None:
        """Overwrite progress fields of a run."""
        if not fields:
            return
        async with self._transaction("update_discovery") as session:
            await session.execute(
                update(DiscoveryProgress)
                .where(DiscoveryProgress.id == progress_id)
                .values(**fields)
            )

    async def increment_discovery(
        self,
        progress_id: int,
        *,
        processed_repos: int = 0,
        processed_orgs: int = 0,
        total_repos: int = 0,
    ) -> None:
        """Add to the counters of a run in SQL."""
        values: dict[str, typ.Any] = {}
        if processed_repos:
            values["processed_repos"] = (
                DiscoveryProgress.processed_repos + processed_repos
            )
        if processed_orgs:
            values["processed_orgs"] = DiscoveryProgress.processed_orgs + processed_orgs
        if total_repos:
            values["total_repos"] = DiscoveryProgress.total_repos + total_repos
        if not values:
            return
        async with self._transaction("increment_discovery") as session:
            await session.execute(
                update(DiscoveryProgress)
                .where(DiscoveryProgress.id == progress_id)
                .values(**values)
            )

    async def record_discovery_error(self, progress_id: int, message: str) -> None:
        """Increment a run's error count and remember the latest error."""
        async with self._transaction("record_discovery_error") as session:
            await session.execute(
                update(DiscoveryProgress)
                .where(DiscoveryProgress.id == progress_id)
                .values(
                    error_count=DiscoveryProgress.error_count + 1,
                    last_error=message,
                )
            )

    async def finish_discovery(
        self,
        progress_id: int,
        status: DiscoveryStatus,
        *,
        last_error: str | None = None,
    ) -> None:
        """Move a run to a terminal status if it is still in progress.

        A run that was force-reset in the meantime keeps its reset state.
        """
        values: dict[str, typ.Any] = {"status": status.value, "completed_at": utcnow()}
        if status is DiscoveryStatus.COMPLETE:
            values["phase"] = DiscoveryPhase.COMPLETED.value
        elif status is DiscoveryStatus.CANCELLED:
            values["phase"] = DiscoveryPhase.CANCELLING.value
        if last_error is not None:
            values["last_error"] = last_error
        async with self._transaction("finish_discovery") as session:
            await session.execute(
                update(DiscoveryProgress)
                .where(
                    DiscoveryProgress.id == progress_id,
                    DiscoveryProgress.status == DiscoveryStatus.IN_PROGRESS.value,
                )
                .values(**values)
            )

    async def reset_discovery_if_active(self, progress_id: int) -> int:
        """Cancel a run only while it is still in progress."""
        async with self._transaction("reset_discovery_if_active") as session:
            result = await session.execute(
                update(DiscoveryProgress)
                .where(
                    DiscoveryProgress.id == progress_id,
                    DiscoveryProgress.status == DiscoveryStatus.IN_PROGRESS.value,
                )
                .values(
                    status=DiscoveryStatus.CANCELLED.value,
                    phase=DiscoveryPhase.CANCELLING.value,
                    completed_at=utcnow(),
                    last_error=FORCE_RESET_MESSAGE,
                )
            )
            return result.rowcount

    async def recover_stuck_discoveries(self, started_before: dt.datetime) -> int:
        """Cancel in-progress runs that started before a cut-off."""
        async with self._transaction("recover_stuck_discoveries") as session:
            result = await session.execute(
                update(DiscoveryProgress)
                .where(
                    DiscoveryProgress.status == DiscoveryStatus.IN_PROGRESS.value,
                    DiscoveryProgress.started_at < started_before,
                )
                .values(
                    status=DiscoveryStatus.CANCELLED.value,
                    phase=DiscoveryPhase.CANCELLING.value,
                    completed_at=utcnow(),
                    last_error=STARTUP_RECOVERY_MESSAGE,
                )
            )
            return result.rowcount

    # Dependencies

    async def replace_dependencies(
        self, repository_id: int, dependencies: cabc.Sequence[DependencyRef]
    ) -> None:
        """Replace all dependency edges owned by a repository atomically."""
        now = utcnow()
        unique: dict[tuple[str, str], DependencyRef] = {}
        for dependency in dependencies:
            key = (dependency.dependency_full_name, dependency.dependency_type)
            unique.setdefault(key, dependency)
        async with self._transaction("replace_dependencies") as session:
            await session.execute(
                delete(RepositoryDependency).where(
                    RepositoryDependency.repository_id == repository_id
                )
            )
            session.add_all(
                RepositoryDependency(
                    repository_id=repository_id,
                    dependency_full_name=dependency.dependency_full_name,
                    dependency_type=dependency.dependency_type,
                    dependency_url=dependency.dependency_url,
                    is_local=False,
                    discovered_at=now,
                    details=dict(dependency.metadata),
                )
                for dependency in unique.values()
            )

    async def update_local_dependency_flags(self) -> int:
        """Mark edges whose target is a known repository as local."""
        known = select(Repository.full_name)
        async with self._transaction("update_local_dependency_flags") as session:
            await session.execute(
                update(RepositoryDependency).values(
                    is_local=RepositoryDependency.dependency_full_name.in_(known)
                )
            )
            count = await session.scalar(
                select(func.count(RepositoryDependency.id)).where(
                    RepositoryDependency.is_local.is_(True)
                )
            )
            return count or 0

    async def list_dependencies(self, repository_id: int) -> list[DependencyRecord]:
        """Return the dependency edges owned by a repository."""
        async with self._transaction("list_dependencies") as session:
            rows = await session.scalars(
                select(RepositoryDependency)
                .where(RepositoryDependency.repository_id == repository_id)
                .order_by(
                    RepositoryDependency.dependency_type,
                    RepositoryDependency.dependency_full_name,
                )
            )
            return [
                DependencyRecord(
                    repository_id=row.repository_id,
                    dependency_full_name=row.dependency_full_name,
                    dependency_type=row.dependency_type,
                    is_local=row.is_local,
                    dependency_url=row.dependency_url,
                    discovered_at=row.discovered_at,
                    metadata=dict(row.details or {}),
                )
                for row in rows
            ]

    async def list_dependents(self, full_name: str) -> list[RepositoryRecord]:
        """Return repositories with an edge targeting ``full_name``."""
        async with self._transaction("list_dependents") as session:
            rows = await session.scalars(
                select(Repository)
                .where(
                    Repository.id.in_(
                        select(RepositoryDependency.repository_id).where(
                            RepositoryDependency.dependency_full_name == full_name
                        )
                    )
                )
                .order_by(Repository.full_name)
            )
            return [_repository_record(row) for row in rows]

    async def list_local_dependency_pairs(
        self,
        dependency_types: cabc.Sequence[str] | None = None,
        *,
        source_repository_id: int | None = None,
    ) -> list[DependencyPair]:
        """Return local, non-self-referencing edges as name pairs."""
        stmt = (
            select(
                Repository.full_name,
                RepositoryDependency.dependency_full_name,
                RepositoryDependency.dependency_type,
                RepositoryDependency.dependency_url,
                Repository.source_url,
            )
            .join(Repository, Repository.id == RepositoryDependency.repository_id)
            .where(
                RepositoryDependency.is_local.is_(True),
                RepositoryDependency.dependency_full_name != Repository.full_name,
            )
            .order_by(
                Repository.full_name,
                RepositoryDependency.dependency_full_name,
                RepositoryDependency.dependency_type,
            )
        )
        if dependency_types:
            stmt = stmt.where(
                RepositoryDependency.dependency_type.in_(list(dependency_types))
            )
        if source_repository_id is not None:
            stmt = stmt.where(
                RepositoryDependency.repository_id == source_repository_id
            )
        async with self._transaction("list_local_dependency_pairs") as session:
            result = await session.execute(stmt)
            return [
                DependencyPair(
                    source_repo=source,
                    target_repo=target,
                    dependency_type=dependency_type,
                    dependency_url=url,
                    source_repo_url=source_url,
                )
                for source, target, dependency_type, url, source_url in result
            ]
