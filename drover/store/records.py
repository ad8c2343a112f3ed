"""Enumerations and frozen records describing persisted Drover state.

Records are immutable snapshots handed out by the :class:`~drover.store.Store`.
Services derive updated copies with :func:`dataclasses.replace` and hand them
back to the store to persist.
"""

from __future__ import annotations

import dataclasses as dc
import enum
import typing as typ

if typ.TYPE_CHECKING:
    import datetime as dt


class RepositoryStatus(enum.StrEnum):
    """Migration status of a repository."""

    PENDING = "pending"
    DRY_RUN_QUEUED = "dry_run_queued"
    DRY_RUN_IN_PROGRESS = "dry_run_in_progress"
    DRY_RUN_COMPLETE = "dry_run_complete"
    DRY_RUN_FAILED = "dry_run_failed"
    PRE_MIGRATION = "pre_migration"
    ARCHIVE_GENERATING = "archive_generating"
    QUEUED_FOR_MIGRATION = "queued_for_migration"
    MIGRATING_CONTENT = "migrating_content"
    MIGRATION_COMPLETE = "migration_complete"
    MIGRATION_FAILED = "migration_failed"
    POST_MIGRATION = "post_migration"
    COMPLETE = "complete"
    ROLLED_BACK = "rolled_back"
    WONT_MIGRATE = "wont_migrate"


class BatchStatus(enum.StrEnum):
    """Lifecycle status of a batch."""

    PENDING = "pending"
    READY = "ready"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class BatchType(enum.StrEnum):
    """Kinds of batch; pilots are queued ahead of regular waves."""

    PILOT = "pilot"
    WAVE = "wave"
    SELF_SERVICE = "self_service"


class DiscoveryType(enum.StrEnum):
    """Scope of a discovery run."""

    ORGANIZATION = "organization"
    ENTERPRISE = "enterprise"
    ADO_ORGANIZATION = "ado_organization"
    ADO_PROJECT = "ado_project"


class DiscoveryStatus(enum.StrEnum):
    """Status of a discovery run."""

    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"


class DiscoveryPhase(enum.StrEnum):
    """Well-known phase labels recorded on a discovery run."""

    LISTING_REPOS = "listing_repos"
    PROFILING_REPOS = "profiling_repos"
    COMPLETED = "completed"
    CANCELLING = "cancelling"


class DependencyType(enum.StrEnum):
    """Kinds of cross-repository reference."""

    SUBMODULE = "submodule"
    WORKFLOW = "workflow"
    PACKAGE = "package"


@dc.dataclass(frozen=True, slots=True)
class DependencyRef:
    """A dependency found while profiling a repository."""

    dependency_full_name: str
    dependency_type: str
    dependency_url: str | None = None
    metadata: dict[str, typ.Any] = dc.field(default_factory=dict)


@dc.dataclass(frozen=True, slots=True)
class RepositoryProfile:
    """Metadata gathered for one repository during discovery."""

    full_name: str
    source: str = "github"
    source_url: str | None = None
    default_branch: str | None = None
    total_size: int | None = None
    visibility: str | None = None
    ado_project: str | None = None
    is_archived: bool = False
    has_lfs: bool = False
    has_submodules: bool = False
    has_large_files: bool = False
    has_oversized_repository: bool = False
    dependencies: tuple[DependencyRef, ...] = ()


@dc.dataclass(frozen=True, slots=True)
class RepositoryRecord:
    """Snapshot of a persisted repository."""

    id: int
    full_name: str
    status: RepositoryStatus
    source: str = "github"
    source_url: str | None = None
    batch_id: int | None = None
    priority: int = 0
    destination_full_name: str | None = None
    default_branch: str | None = None
    total_size: int | None = None
    visibility: str | None = None
    ado_project: str | None = None
    is_archived: bool = False
    has_lfs: bool = False
    has_submodules: bool = False
    has_large_files: bool = False
    has_oversized_repository: bool = False
    migrated_at: dt.datetime | None = None
    last_dry_run_at: dt.datetime | None = None
    last_discovery_at: dt.datetime | None = None


@dc.dataclass(frozen=True, slots=True)
class BatchRecord:
    """Snapshot of a persisted batch."""

    id: int
    name: str
    type: BatchType
    status: BatchStatus
    repository_count: int = 0
    destination_org: str | None = None
    description: str | None = None
    created_at: dt.datetime | None = None
    started_at: dt.datetime | None = None
    completed_at: dt.datetime | None = None


@dc.dataclass(frozen=True, slots=True)
class DiscoveryProgressRecord:
    """Snapshot of one discovery run's progress."""

    id: int
    discovery_type: DiscoveryType
    target: str
    status: DiscoveryStatus
    phase: str
    started_at: dt.datetime
    completed_at: dt.datetime | None = None
    total_orgs: int = 0
    processed_orgs: int = 0
    current_org: str | None = None
    total_repos: int = 0
    processed_repos: int = 0
    error_count: int = 0
    last_error: str | None = None


@dc.dataclass(frozen=True, slots=True)
class DependencyRecord:
    """A persisted dependency edge owned by one repository."""

    repository_id: int
    dependency_full_name: str
    dependency_type: str
    is_local: bool
    dependency_url: str | None = None
    discovered_at: dt.datetime | None = None
    metadata: dict[str, typ.Any] = dc.field(default_factory=dict)


@dc.dataclass(frozen=True, slots=True)
class DependencyPair:
    """A local dependency edge resolved to repository names."""

    source_repo: str
    target_repo: str
    dependency_type: str
    dependency_url: str | None = None
    source_repo_url: str | None = None


@dc.dataclass(frozen=True, slots=True)
class HistoryRecord:
    """A migration history entry."""

    id: int
    repository_id: int
    status: str
    phase: str
    message: str | None
    started_at: dt.datetime
    completed_at: dt.datetime | None = None
    error_message: str | None = None


@dc.dataclass(frozen=True, slots=True)
class LogRecord:
    """An append-only migration log entry."""

    id: int
    repository_id: int
    level: str
    phase: str
    operation: str
    message: str
    timestamp: dt.datetime
    initiated_by: str | None = None
    history_id: int | None = None
    details: str | None = None
