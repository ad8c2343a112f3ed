"""Result objects for repository lifecycle operations."""

from __future__ import annotations

import dataclasses
import enum


class BulkAction(enum.StrEnum):
    """Actions accepted by bulk status updates."""

    MARK_MIGRATED = "mark_migrated"
    MARK_WONT_MIGRATE = "mark_wont_migrate"
    UNMARK_WONT_MIGRATE = "unmark_wont_migrate"
    ROLLBACK = "rollback"


class BulkOutcome(enum.StrEnum):
    """Overall outcome of an operation applied item by item.

    ``PARTIAL`` is distinct from both extremes so callers can report
    multi-status responses.
    """

    SUCCEEDED = "succeeded"
    PARTIAL = "partial"
    FAILED = "failed"


@dataclasses.dataclass(slots=True)
class MigrationQueueResult:
    """Summary of a request to queue dry runs or migrations.

    Repositories that could not be queued are listed in ``skipped`` with the
    reason; skipping is not an error.
    """

    dry_run: bool
    queued_ids: list[int] = dataclasses.field(default_factory=list)
    queued_names: list[str] = dataclasses.field(default_factory=list)
    skipped: dict[str, str] = dataclasses.field(default_factory=dict)

    @property
    def count(self) -> int:
        """Return how many repositories were queued."""
        return len(self.queued_ids)

    @property
    def message(self) -> str:
        """Return an operator-facing summary."""
        noun = "Dry run" if self.dry_run else "Migration"
        return f"{noun} queued for {self.count} repositories"


@dataclasses.dataclass(slots=True)
class BulkStatusResult:
    """Per-repository outcome of a bulk status update."""

    action: BulkAction
    requested: int
    updated_ids: list[int] = dataclasses.field(default_factory=list)
    updated_names: list[str] = dataclasses.field(default_factory=list)
    failed_ids: list[int] = dataclasses.field(default_factory=list)
    errors: list[str] = dataclasses.field(default_factory=list)

    @property
    def updated_count(self) -> int:
        """Return how many repositories were updated."""
        return len(self.updated_names)

    @property
    def failed_count(self) -> int:
        """Return how many repositories failed."""
        return len(self.errors)

    @property
    def outcome(self) -> BulkOutcome:
        """Classify the result as all, some, or none succeeded."""
        if self.failed_count == 0:
            return BulkOutcome.SUCCEEDED
        if self.updated_count == 0:
            return BulkOutcome.FAILED
        return BulkOutcome.PARTIAL

    @property
    def message(self) -> str:
        """Return an operator-facing summary."""
        if self.failed_count == 0:
            return f"Successfully updated {self.updated_count} repositories"
        if self.updated_count == 0:
            return f"Failed to update all {self.requested} repositories"
        return (
            f"Updated {self.updated_count} of {self.requested} repositories "
            f"({self.failed_count} failed)"
        )
