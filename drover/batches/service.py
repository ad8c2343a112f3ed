"""Batch lifecycle service.

Batches group repositories for a coordinated start, retry and destination
change. Membership and destination may only change while a batch is
``ready``; starting a batch queues every member exactly as a direct
migration request would.
"""

from __future__ import annotations

import dataclasses as dc
import typing as typ

from drover.batches.models import (
    DestinationUpdateResult,
    MembershipResult,
    RetryResult,
    StartBatchResult,
)
from drover.common.names import default_destination
from drover.common.time import utcnow
from drover.errors import BadRequestError, DroverError, NotFoundError
from drover.lifecycle.service import RepositoryLifecycleService
from drover.lifecycle.status import batch_ineligibility_reason
from drover.logging import get_logger, log_info, log_warning
from drover.store.records import BatchStatus, BatchType, RepositoryStatus

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from drover.store.protocol import Store
    from drover.store.records import BatchRecord

logger = get_logger(__name__)

PILOT_PRIORITY = 1
DEFAULT_PRIORITY = 0
NOT_FOUND_REASON = "repository not found"
NOT_A_MEMBER_REASON = "repository is not a member of this batch"

_STARTABLE_STATUSES = frozenset({BatchStatus.PENDING, BatchStatus.READY})


class BatchLifecycleService:
    """Create batches and move them through their lifecycle.

    Parameters
    ----------
    store:
        Persistence backend.
    lifecycle:
        Repository lifecycle service used to queue members when a batch
        starts. A service over the same store is created when omitted.

    """

    def __init__(
        self,
        store: Store,
        lifecycle: RepositoryLifecycleService | None = None,
    ) -> None:
        """Configure the service with a store and lifecycle service."""
        self._store = store
        self._lifecycle = lifecycle or RepositoryLifecycleService(store)

    async def create_batch(
        self,
        name: str,
        *,
        batch_type: BatchType | str = BatchType.WAVE,
        destination_org: str | None = None,
        description: str | None = None,
    ) -> BatchRecord:
        """Create a new ``ready`` batch.

        Raises
        ------
        BadRequestError
            If the name is blank or the batch type is unknown.
        ConflictError
            If another batch already uses the name.

        """
        if not name.strip():
            raise BadRequestError.missing_field("name")
        try:
            kind = BatchType(batch_type)
        except ValueError:
            msg = f"unknown batch type: {batch_type}"
            raise BadRequestError(msg, field="type") from None
        batch = await self._store.create_batch(
            name.strip(),
            batch_type=kind,
            destination_org=(destination_org or "").strip() or None,
            description=description,
        )
        log_info(
            logger, "Created %s batch %s (id %d)", batch.type, batch.name, batch.id
        )
        return batch

    async def get_batch(self, batch_id: int) -> BatchRecord:
        """Return a batch or raise ``NotFoundError``."""
        batch = await self._store.get_batch(batch_id)
        if batch is None:
            raise NotFoundError.batch(batch_id)
        return batch

    async def _get_ready_batch(self, batch_id: int) -> BatchRecord:
        batch = await self.get_batch(batch_id)
        if batch.status != BatchStatus.READY:
            raise BadRequestError.batch_not_ready(batch.status)
        return batch

    async def add_repositories(
        self, batch_id: int, repository_ids: cabc.Sequence[int]
    ) -> MembershipResult:
        """Assign eligible repositories to a ready batch.

        Each repository is checked on its own; ineligible ones are reported
        with a reason instead of failing the call. Members without a custom
        destination receive the batch-default destination.

        Raises
        ------
        BadRequestError
            If no ids were given or the batch is not ``ready``.
        NotFoundError
            If the batch does not exist, or none of the repositories do.

        """
        if not repository_ids:
            raise BadRequestError.missing_field("repository_ids")
        batch = await self._get_ready_batch(batch_id)
        requested = list(dict.fromkeys(repository_ids))
        found = {
            repository.id: repository
            for repository in await self._store.get_repositories_by_id(requested)
        }
        if not found:
            raise NotFoundError.no_repositories()
        result = MembershipResult(batch_id=batch.id, requested=len(requested))

        for repository_id in requested:
            repository = found.get(repository_id)
            if repository is None:
                result.rejected[repository_id] = NOT_FOUND_REASON
                continue
            reason = batch_ineligibility_reason(repository)
            if reason is not None:
                result.rejected[repository_id] = reason
                continue
            destination = repository.destination_full_name
            if destination is None and batch.destination_org:
                destination = default_destination(
                    batch.destination_org, repository.full_name
                )
                result.defaults_applied += 1
            await self._store.update_repository(
                dc.replace(
                    repository,
                    batch_id=batch.id,
                    destination_full_name=destination,
                )
            )
            result.applied_ids.append(repository.id)
            result.applied_names.append(repository.full_name)

        result.repository_count = await self._store.recount_batch(batch.id)
        log_info(
            logger,
            "Added %d of %d repositories to batch %d (%d defaults applied)",
            len(result.applied_ids),
            result.requested,
            batch.id,
            result.defaults_applied,
        )
        return result

    async def remove_repositories(
        self, batch_id: int, repository_ids: cabc.Sequence[int]
    ) -> MembershipResult:
        """Detach repositories from a ready batch.

        Repositories that are not members of the batch are reported as
        rejected and left untouched.
        """
        if not repository_ids:
            raise BadRequestError.missing_field("repository_ids")
        batch = await self._get_ready_batch(batch_id)
        requested = list(dict.fromkeys(repository_ids))
        found = {
            repository.id: repository
            for repository in await self._store.get_repositories_by_id(requested)
        }
        if not found:
            raise NotFoundError.no_repositories()
        result = MembershipResult(batch_id=batch.id, requested=len(requested))

        for repository_id in requested:
            repository = found.get(repository_id)
            if repository is None:
                result.rejected[repository_id] = NOT_FOUND_REASON
                continue
            if repository.batch_id != batch.id:
                result.rejected[repository_id] = NOT_A_MEMBER_REASON
                continue
            await self._store.update_repository(dc.replace(repository, batch_id=None))
            result.applied_ids.append(repository.id)
            result.applied_names.append(repository.full_name)

        result.repository_count = await self._store.recount_batch(batch.id)
        log_info(
            logger,
            "Removed %d repositories from batch %d",
            len(result.applied_ids),
            batch.id,
        )
        return result

    async def start_batch(
        self,
        batch_id: int,
        *,
        dry_run: bool = False,
        initiated_by: str | None = None,
    ) -> StartBatchResult:
        """Queue every member of a batch and mark the batch in progress.

        Pilot batches are queued at a higher priority than other batches.

        Raises
        ------
        BadRequestError
            If the batch has already started or has no members.
        NotFoundError
            If the batch does not exist.

        """
        batch = await self.get_batch(batch_id)
        if batch.status not in _STARTABLE_STATUSES:
            raise BadRequestError.batch_not_startable(batch.status)
        members = await self._store.list_batch_repositories(batch.id)
        if not members:
            raise BadRequestError.batch_empty()

        priority = PILOT_PRIORITY if batch.type == BatchType.PILOT else DEFAULT_PRIORITY
        queued = await self._lifecycle.queue_repositories(
            members,
            dry_run=dry_run,
            priority=priority,
            initiated_by=initiated_by,
        )
        started = dc.replace(batch, status=BatchStatus.IN_PROGRESS, started_at=utcnow())
        await self._store.update_batch(started)
        log_info(
            logger,
            "Started batch %d (%s): %d queued, %d skipped",
            batch.id,
            "dry run" if dry_run else "migration",
            queued.count,
            len(queued.skipped),
        )
        return StartBatchResult(batch=started, queued=queued)

    async def retry_batch_failures(
        self,
        batch_id: int,
        repository_ids: cabc.Sequence[int] | None = None,
        *,
        initiated_by: str | None = None,
    ) -> RetryResult:
        """Re-queue members whose migration failed.

        Parameters
        ----------
        batch_id:
            Batch whose failures should be retried.
        repository_ids:
            Optional subset of members to retry. Members of the subset that
            are not ``migration_failed`` are skipped.
        initiated_by:
            Operator who requested the retry, when known.

        Raises
        ------
        NotFoundError
            If the batch does not exist, or none of the given ids are
            members of it.
        BadRequestError
            If no ids were given and the batch has no failed members.

        """
        batch = await self.get_batch(batch_id)
        members = await self._store.list_batch_repositories(batch.id)
        result = RetryResult(batch_id=batch.id)

        if repository_ids is None:
            targets = [
                member
                for member in members
                if member.status == RepositoryStatus.MIGRATION_FAILED
            ]
            if not targets:
                msg = "No failed repositories to retry"
                raise BadRequestError(msg)
        else:
            by_id = {member.id: member for member in members}
            targets = []
            for repository_id in dict.fromkeys(repository_ids):
                member = by_id.get(repository_id)
                if member is None:
                    result.skipped[repository_id] = NOT_A_MEMBER_REASON
                elif member.status != RepositoryStatus.MIGRATION_FAILED:
                    result.skipped[repository_id] = (
                        f"repository status '{member.status}' is not migration_failed"
                    )
                else:
                    targets.append(member)
            if not any(repository_id in by_id for repository_id in repository_ids):
                raise NotFoundError.no_repositories()

        for repository in targets:
            await self._store.update_repository(
                dc.replace(repository, status=RepositoryStatus.QUEUED_FOR_MIGRATION)
            )
            try:
                await self._store.add_log(
                    repository.id,
                    phase="migration",
                    operation="retry",
                    message="Migration retry queued",
                    initiated_by=initiated_by,
                )
            except DroverError as exc:
                log_warning(
                    logger,
                    "Failed to record retry log for repository %s: %s",
                    repository.full_name,
                    exc,
                )
            result.retried_ids.append(repository.id)
            result.retried_names.append(repository.full_name)

        log_info(
            logger,
            "Retried %d failed repositories in batch %d",
            result.retried_count,
            batch.id,
        )
        return result

    async def update_destination_org(
        self, batch_id: int, destination_org: str | None
    ) -> DestinationUpdateResult:
        """Change a ready batch's default destination organization.

        Only members still using the previous batch-default destination
        (``previous_org/basename``) are rewritten; custom destinations are
        left exactly as they were. When the batch had no default, members
        without any destination receive the new default. Clearing the
        default clears the destinations derived from it.
        """
        batch = await self._get_ready_batch(batch_id)
        previous = batch.destination_org or ""
        new = (destination_org or "").strip()
        members = await self._store.list_batch_repositories(batch.id)
        result = DestinationUpdateResult(
            batch_id=batch.id,
            previous_org=previous or None,
            destination_org=new or None,
        )

        for repository in members:
            current = repository.destination_full_name
            if not previous:
                if not new or current is not None:
                    result.unchanged_ids.append(repository.id)
                    continue
            elif current != default_destination(previous, repository.full_name):
                result.unchanged_ids.append(repository.id)
                continue
            rewritten = default_destination(new, repository.full_name) if new else None
            await self._store.update_repository(
                dc.replace(repository, destination_full_name=rewritten)
            )
            result.updated_ids.append(repository.id)

        await self._store.update_batch(dc.replace(batch, destination_org=new or None))
        log_info(
            logger,
            "Batch %d destination changed from %s to %s; %d repositories updated",
            batch.id,
            previous or "-",
            new or "-",
            len(result.updated_ids),
        )
        return result
