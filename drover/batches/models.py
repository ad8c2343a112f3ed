"""Result objects for batch lifecycle operations."""

from __future__ import annotations

import dataclasses
import typing as typ

from drover.lifecycle.models import BulkOutcome

if typ.TYPE_CHECKING:
    from drover.lifecycle.models import MigrationQueueResult
    from drover.store.records import BatchRecord


@dataclasses.dataclass(slots=True)
class MembershipResult:
    """Outcome of adding repositories to, or removing them from, a batch.

    ``rejected`` maps each repository id that was not applied to the reason.
    """

    batch_id: int
    requested: int
    applied_ids: list[int] = dataclasses.field(default_factory=list)
    applied_names: list[str] = dataclasses.field(default_factory=list)
    rejected: dict[int, str] = dataclasses.field(default_factory=dict)
    defaults_applied: int = 0
    repository_count: int = 0

    @property
    def outcome(self) -> BulkOutcome:
        """Classify the result as all, some, or none applied."""
        if not self.rejected:
            return BulkOutcome.SUCCEEDED
        if not self.applied_ids:
            return BulkOutcome.FAILED
        return BulkOutcome.PARTIAL


@dataclasses.dataclass(frozen=True, slots=True)
class StartBatchResult:
    """A started batch and the queuing outcome for its members."""

    batch: BatchRecord
    queued: MigrationQueueResult


@dataclasses.dataclass(slots=True)
class RetryResult:
    """Repositories re-queued after a failed migration."""

    batch_id: int
    retried_ids: list[int] = dataclasses.field(default_factory=list)
    retried_names: list[str] = dataclasses.field(default_factory=list)
    skipped: dict[int, str] = dataclasses.field(default_factory=dict)

    @property
    def retried_count(self) -> int:
        """Return how many repositories were re-queued."""
        return len(self.retried_ids)


@dataclasses.dataclass(slots=True)
class DestinationUpdateResult:
    """Repositories whose batch-default destination was rewritten."""

    batch_id: int
    previous_org: str | None
    destination_org: str | None
    updated_ids: list[int] = dataclasses.field(default_factory=list)
    unchanged_ids: list[int] = dataclasses.field(default_factory=list)
