"""Repository lifecycle service: queuing, bulk status updates and rollback."""

from __future__ import annotations

import dataclasses as dc
import typing as typ

from drover.common.time import utcnow
from drover.errors import BadRequestError, DroverError, NotFoundError
from drover.lifecycle.models import (
    BulkAction,
    BulkStatusResult,
    MigrationQueueResult,
)
from drover.lifecycle.status import (
    MARK_MIGRATED_STATUSES,
    WONT_MIGRATE_STATUSES,
    can_migrate,
)
from drover.logging import get_logger, log_info, log_warning
from drover.store.records import RepositoryStatus

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    from drover.store.protocol import Store
    from drover.store.records import RepositoryRecord

    _Handler: typ.TypeAlias = cabc.Callable[
        [RepositoryRecord, str | None, str | None], cabc.Awaitable[None]
    ]

logger = get_logger(__name__)

BULK_ROLLBACK_REASON = "Repository rolled back via batch operation"
DEFAULT_ROLLBACK_MESSAGE = "Repository rolled back"


def _with_actor(message: str, initiated_by: str | None) -> str:
    return message if initiated_by is None else f"{message} (by {initiated_by})"


class RepositoryLifecycleService:
    """Apply the repository status machine against a store.

    Operations never call out to the network; they only read and write
    repository state, history and logs.

    Parameters
    ----------
    store:
        Persistence backend.

    """

    def __init__(self, store: Store) -> None:
        """Configure the service with a store."""
        self._store = store
        self._handlers: dict[BulkAction, _Handler] = {
            BulkAction.MARK_MIGRATED: self._mark_migrated,
            BulkAction.MARK_WONT_MIGRATE: self._mark_wont_migrate,
            BulkAction.UNMARK_WONT_MIGRATE: self._unmark_wont_migrate,
            BulkAction.ROLLBACK: self._bulk_rollback,
        }

    async def start_migration(
        self,
        full_names: cabc.Sequence[str],
        *,
        dry_run: bool = False,
        priority: int = 0,
        initiated_by: str | None = None,
    ) -> MigrationQueueResult:
        """Queue dry runs or migrations for the named repositories.

        Parameters
        ----------
        full_names:
            Repositories to queue.
        dry_run:
            Queue a rehearsal instead of the real migration.
        priority:
            Ordering hint recorded on each queued repository.
        initiated_by:
            Operator who requested the migration, when known.

        Returns
        -------
        MigrationQueueResult
            Queued repositories and the reasons others were skipped.

        Raises
        ------
        BadRequestError
            If no repositories were named.
        NotFoundError
            If none of the named repositories exist.

        """
        if not full_names:
            raise BadRequestError.missing_field("full_names")
        requested = list(dict.fromkeys(full_names))
        repositories = await self._store.get_repositories(requested)
        if not repositories:
            raise NotFoundError.no_repositories()
        return await self.queue_repositories(
            repositories,
            dry_run=dry_run,
            priority=priority,
            initiated_by=initiated_by,
        )

    async def queue_repositories(
        self,
        repositories: cabc.Iterable[RepositoryRecord],
        *,
        dry_run: bool,
        priority: int,
        initiated_by: str | None = None,
    ) -> MigrationQueueResult:
        """Queue already-loaded repositories, skipping those that cannot migrate."""
        result = MigrationQueueResult(dry_run=dry_run)
        target = (
            RepositoryStatus.DRY_RUN_QUEUED
            if dry_run
            else RepositoryStatus.QUEUED_FOR_MIGRATION
        )
        phase = "dry_run" if dry_run else "migration"
        message = "Dry run queued" if dry_run else "Migration queued"

        for repository in repositories:
            if not can_migrate(repository.status):
                reason = f"repository status '{repository.status}' cannot be migrated"
                log_warning(
                    logger,
                    "Skipping repository %s: %s",
                    repository.full_name,
                    reason,
                )
                result.skipped[repository.full_name] = reason
                continue
            try:
                await self._store.update_repository(
                    dc.replace(repository, status=target, priority=priority)
                )
            except DroverError as exc:
                log_warning(
                    logger,
                    "Failed to queue repository %s: %s",
                    repository.full_name,
                    exc,
                )
                result.skipped[repository.full_name] = str(exc)
                continue
            await self._log_quietly(
                repository,
                phase=phase,
                operation="queue",
                message=message,
                initiated_by=initiated_by,
            )
            result.queued_ids.append(repository.id)
            result.queued_names.append(repository.full_name)

        log_info(
            logger,
            "%s for %d repositories (%d skipped, priority %d)",
            message,
            result.count,
            len(result.skipped),
            priority,
        )
        return result

    async def batch_update_status(
        self,
        full_names: cabc.Sequence[str],
        action: BulkAction | str,
        *,
        reason: str | None = None,
        initiated_by: str | None = None,
    ) -> BulkStatusResult:
        """Apply a status action to each repository independently.

        A failure for one repository is recorded in the result and does not
        undo or prevent updates to the others.

        Raises
        ------
        BadRequestError
            If the action is unknown or no repositories were named.
        NotFoundError
            If none of the named repositories exist.

        """
        try:
            bulk_action = BulkAction(action)
        except ValueError:
            raise BadRequestError.unknown_action(str(action)) from None
        if not full_names:
            raise BadRequestError.missing_field("full_names")

        requested = list(dict.fromkeys(full_names))
        found = {
            repository.full_name: repository
            for repository in await self._store.get_repositories(requested)
        }
        if not found:
            raise NotFoundError.no_repositories()
        result = BulkStatusResult(action=bulk_action, requested=len(requested))
        handler = self._handlers[bulk_action]

        for name in requested:
            repository = found.get(name)
            if repository is None:
                result.errors.append(f"{name}: repository not found")
                continue
            try:
                await handler(repository, reason, initiated_by)
            except DroverError as exc:
                log_warning(
                    logger,
                    "Bulk %s failed for %s: %s",
                    bulk_action,
                    name,
                    exc,
                )
                result.failed_ids.append(repository.id)
                result.errors.append(f"{name}: {exc}")
                continue
            result.updated_ids.append(repository.id)
            result.updated_names.append(name)

        log_info(logger, "Bulk %s: %s", bulk_action, result.message)
        return result

    async def rollback(
        self,
        full_name: str,
        *,
        reason: str | None = None,
        initiated_by: str | None = None,
    ) -> RepositoryRecord:
        """Roll back a completed migration.

        Parameters
        ----------
        full_name:
            Repository to roll back.
        reason:
            Optional explanation recorded in the migration history.
        initiated_by:
            Operator who requested the rollback, when known.

        Returns
        -------
        RepositoryRecord
            The repository in its rolled-back state.

        Raises
        ------
        NotFoundError
            If the repository does not exist.
        BadRequestError
            If the repository is not ``complete``.

        """
        repository = await self._store.get_repository(full_name)
        if repository is None:
            raise NotFoundError.repository(full_name)
        updated = await self._rollback(repository, reason)
        await self._log_quietly(
            repository,
            phase="rollback",
            operation="rollback",
            message=reason or DEFAULT_ROLLBACK_MESSAGE,
            initiated_by=initiated_by,
        )
        return updated

    async def _rollback(
        self, repository: RepositoryRecord, reason: str | None
    ) -> RepositoryRecord:
        if repository.status != RepositoryStatus.COMPLETE:
            raise BadRequestError.illegal_transition(
                "only completed migrations can be rolled back "
                f"(current status: {repository.status})"
            )
        now = utcnow()
        updated = dc.replace(
            repository, status=RepositoryStatus.ROLLED_BACK, batch_id=None
        )
        await self._store.update_repository(updated)
        if repository.batch_id is not None:
            await self._recount_quietly(repository.batch_id)
        await self._history_quietly(
            repository,
            status="rolled_back",
            phase="rollback",
            message=reason or DEFAULT_ROLLBACK_MESSAGE,
            at=now,
        )
        log_info(logger, "Rolled back repository %s", repository.full_name)
        return updated

    async def _recount_quietly(self, batch_id: int) -> None:
        """Refresh a batch's member count; failures are logged, not raised."""
        try:
            await self._store.recount_batch(batch_id)
        except DroverError as exc:
            log_warning(
                logger,
                "Failed to update repository count for batch %d: %s",
                batch_id,
                exc,
            )

    async def _history_quietly(
        self,
        repository: RepositoryRecord,
        *,
        status: str,
        phase: str,
        message: str,
        at: dt.datetime,
    ) -> int | None:
        """Append an instantaneous history entry; failures are logged, not raised."""
        try:
            return await self._store.add_history(
                repository.id,
                status=status,
                phase=phase,
                message=message,
                started_at=at,
                completed_at=at,
            )
        except DroverError as exc:
            log_warning(
                logger,
                "Failed to record %s history for repository %s: %s",
                phase,
                repository.full_name,
                exc,
            )
            return None

    async def _log_quietly(  # noqa: PLR0913
        self,
        repository: RepositoryRecord,
        *,
        phase: str,
        operation: str,
        message: str,
        initiated_by: str | None,
        history_id: int | None = None,
    ) -> None:
        """Append a migration log entry; failures are logged, not raised."""
        try:
            await self._store.add_log(
                repository.id,
                phase=phase,
                operation=operation,
                message=message,
                initiated_by=initiated_by,
                history_id=history_id,
            )
        except DroverError as exc:
            log_warning(
                logger,
                "Failed to record %s log for repository %s: %s",
                operation,
                repository.full_name,
                exc,
            )

    async def _mark_migrated(
        self,
        repository: RepositoryRecord,
        _reason: str | None,
        initiated_by: str | None,
    ) -> None:
        if repository.status not in MARK_MIGRATED_STATUSES:
            raise BadRequestError.illegal_transition(
                f"cannot mark repository with status '{repository.status}' "
                "as migrated"
            )
        now = utcnow()
        await self._store.update_repository(
            dc.replace(
                repository,
                status=RepositoryStatus.COMPLETE,
                migrated_at=now,
                batch_id=None,
            )
        )
        if repository.batch_id is not None:
            await self._recount_quietly(repository.batch_id)
        message = (
            "Repository marked as migrated (external migration)"
            if initiated_by is None
            else f"Repository marked as migrated by {initiated_by} (external migration)"
        )
        history_id = await self._history_quietly(
            repository,
            status="completed",
            phase="migration",
            message=message,
            at=now,
        )
        await self._log_quietly(
            repository,
            phase="migration",
            operation="mark_migrated",
            message=message,
            initiated_by=initiated_by,
            history_id=history_id,
        )

    async def _mark_wont_migrate(
        self,
        repository: RepositoryRecord,
        reason: str | None,
        initiated_by: str | None,
    ) -> None:
        if repository.status not in WONT_MIGRATE_STATUSES:
            raise BadRequestError.illegal_transition(
                f"cannot mark repository with status '{repository.status}' "
                "as won't migrate"
            )
        await self._store.update_repository(
            dc.replace(repository, status=RepositoryStatus.WONT_MIGRATE, batch_id=None)
        )
        if repository.batch_id is not None:
            await self._recount_quietly(repository.batch_id)
        message = "Repository marked as won't migrate"
        await self._log_quietly(
            repository,
            phase="status_update",
            operation="mark_wont_migrate",
            message=f"{message}: {reason}" if reason else message,
            initiated_by=initiated_by,
        )

    async def _unmark_wont_migrate(
        self,
        repository: RepositoryRecord,
        _reason: str | None,
        initiated_by: str | None,
    ) -> None:
        if repository.status != RepositoryStatus.WONT_MIGRATE:
            raise BadRequestError.illegal_transition(
                "repository is not marked as won't migrate"
            )
        await self._store.update_repository(
            dc.replace(repository, status=RepositoryStatus.PENDING)
        )
        await self._log_quietly(
            repository,
            phase="status_update",
            operation="unmark_wont_migrate",
            message="Repository returned to pending",
            initiated_by=initiated_by,
        )

    async def _bulk_rollback(
        self,
        repository: RepositoryRecord,
        reason: str | None,
        initiated_by: str | None,
    ) -> None:
        message = reason or _with_actor(BULK_ROLLBACK_REASON, initiated_by)
        await self._rollback(repository, message)
        await self._log_quietly(
            repository,
            phase="rollback",
            operation="batch_rollback",
            message=message,
            initiated_by=initiated_by,
        )
