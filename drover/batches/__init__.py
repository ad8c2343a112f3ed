"""Batch lifecycle: grouping repositories for coordinated migration.

Usage
-----
Create a batch, fill it and start it::

    from drover.batches import BatchLifecycleService

    service = BatchLifecycleService(store)
    batch = await service.create_batch("wave-1", destination_org="acme-cloud")
    await service.add_repositories(batch.id, [12, 13, 14])
    result = await service.start_batch(batch.id)

"""

from drover.batches.models import (
    DestinationUpdateResult,
    MembershipResult,
    RetryResult,
    StartBatchResult,
)
from drover.batches.service import BatchLifecycleService

__all__ = [
    "BatchLifecycleService",
    "DestinationUpdateResult",
    "MembershipResult",
    "RetryResult",
    "StartBatchResult",
]
