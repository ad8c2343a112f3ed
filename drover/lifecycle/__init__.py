"""Repository migration status machine.

Usage
-----
Check whether a repository can be queued::

    from drover.lifecycle import can_migrate

    if can_migrate(repository.status):
        ...

Apply a bulk status action::

    service = RepositoryLifecycleService(store)
    result = await service.batch_update_status(
        ["acme/api", "acme/web"], "mark_migrated", initiated_by="octocat"
    )
    print(result.outcome, result.message)

"""

from drover.lifecycle.models import (
    BulkAction,
    BulkOutcome,
    BulkStatusResult,
    MigrationQueueResult,
)
from drover.lifecycle.service import RepositoryLifecycleService
from drover.lifecycle.status import (
    BATCH_ELIGIBLE_STATUSES,
    MIGRATABLE_STATUSES,
    batch_ineligibility_reason,
    can_migrate,
    is_eligible_for_batch,
)

__all__ = [
    "BATCH_ELIGIBLE_STATUSES",
    "MIGRATABLE_STATUSES",
    "BulkAction",
    "BulkOutcome",
    "BulkStatusResult",
    "MigrationQueueResult",
    "RepositoryLifecycleService",
    "batch_ineligibility_reason",
    "can_migrate",
    "is_eligible_for_batch",
]
