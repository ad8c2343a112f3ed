"""Status predicates for the repository migration state machine.

The predicates are authoritative: services consult them before every
transition rather than encoding a full transition table, because several
transitions are reachable from many states.
"""

from __future__ import annotations

import typing as typ

from drover.store.records import RepositoryStatus

if typ.TYPE_CHECKING:
    from drover.store.records import RepositoryRecord

#: Statuses from which a repository may be assigned to a batch.
BATCH_ELIGIBLE_STATUSES: frozenset[RepositoryStatus] = frozenset(
    {
        RepositoryStatus.PENDING,
        RepositoryStatus.DRY_RUN_COMPLETE,
        RepositoryStatus.DRY_RUN_FAILED,
        RepositoryStatus.MIGRATION_FAILED,
        RepositoryStatus.ROLLED_BACK,
    }
)

#: Statuses from which a dry run or migration may be queued.
MIGRATABLE_STATUSES: frozenset[RepositoryStatus] = BATCH_ELIGIBLE_STATUSES | {
    RepositoryStatus.DRY_RUN_QUEUED
}

#: Statuses from which a repository may be marked as migrated externally.
MARK_MIGRATED_STATUSES = BATCH_ELIGIBLE_STATUSES

#: Statuses from which a repository may be excluded from migration.
WONT_MIGRATE_STATUSES = BATCH_ELIGIBLE_STATUSES

ALREADY_IN_BATCH_REASON = "repository is already assigned to a batch"
OVERSIZED_REASON = (
    "repository exceeds GitHub's 40 GiB size limit and requires remediation"
)


def can_migrate(status: RepositoryStatus | str) -> bool:
    """Return whether a repository in ``status`` may be queued for migration.

    ``wont_migrate`` is never migratable, whatever else changes.

    Examples
    --------
    >>> can_migrate("pending")
    True
    >>> can_migrate(RepositoryStatus.WONT_MIGRATE)
    False

    """
    if status == RepositoryStatus.WONT_MIGRATE:
        return False
    return status in MIGRATABLE_STATUSES


def is_batch_eligible_status(status: RepositoryStatus | str) -> bool:
    """Return whether ``status`` alone permits batch assignment."""
    return status in BATCH_ELIGIBLE_STATUSES


def batch_ineligibility_reason(repository: RepositoryRecord) -> str | None:
    """Explain why a repository cannot join a batch.

    Parameters
    ----------
    repository:
        Repository being considered for batch assignment.

    Returns
    -------
    str | None
        A human-readable reason, or ``None`` when the repository is eligible.

    """
    if repository.batch_id is not None:
        return ALREADY_IN_BATCH_REASON
    if repository.has_oversized_repository:
        return OVERSIZED_REASON
    if not is_batch_eligible_status(repository.status):
        return (
            f"repository status '{repository.status}' "
            "is not eligible for batch assignment"
        )
    return None


def is_eligible_for_batch(repository: RepositoryRecord) -> bool:
    """Return whether a repository may be assigned to a batch."""
    return batch_ineligibility_reason(repository) is None
