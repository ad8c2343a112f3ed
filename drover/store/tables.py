"""SQLAlchemy tables backing the Drover store."""

from __future__ import annotations

import datetime as dt
import typing as typ

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from drover.common.time import utcnow
from drover.store.errors import TimezoneAwareRequiredError
from drover.store.records import (
    BatchStatus,
    BatchType,
    DiscoveryPhase,
    DiscoveryStatus,
    RepositoryStatus,
)

if typ.TYPE_CHECKING:
    from sqlalchemy.engine import Dialect
    from sqlalchemy.ext.asyncio import AsyncEngine

_ACTIVE_DISCOVERY = text(f"status = '{DiscoveryStatus.IN_PROGRESS}'")


class Base(DeclarativeBase):
    """Base declarative class for Drover tables."""


class UTCDateTime(TypeDecorator[dt.datetime]):
    """DateTime wrapper that round-trips UTC tzinfo even on SQLite."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Force bound datetime values to UTC with tzinfo."""
        if value is None:
            return None
        if value.tzinfo is None:
            raise TimezoneAwareRequiredError.for_column()
        return value.astimezone(dt.UTC)

    def process_result_value(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Ensure result datetimes are UTC and timezone aware."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.UTC)
        return value.astimezone(dt.UTC)


class Batch(Base):
    """A group of repositories migrated together."""

    __tablename__ = "batches"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), unique=True)
    type: Mapped[str] = mapped_column(String(32), default=BatchType.WAVE.value)
    status: Mapped[str] = mapped_column(String(32), default=BatchStatus.READY.value)
    description: Mapped[str | None] = mapped_column(Text(), default=None)
    destination_org: Mapped[str | None] = mapped_column(String(255), default=None)
    repository_count: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    started_at: Mapped[dt.datetime | None] = mapped_column(UTCDateTime(), default=None)
    completed_at: Mapped[dt.datetime | None] = mapped_column(
        UTCDateTime(), default=None
    )


class Repository(Base):
    """A source repository tracked through the migration lifecycle."""

    __tablename__ = "repositories"
    __table_args__ = (
        Index("ix_repositories_status", "status"),
        Index("ix_repositories_batch", "batch_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    full_name: Mapped[str] = mapped_column(String(512), unique=True)
    source: Mapped[str] = mapped_column(String(32), default="github")
    source_url: Mapped[str | None] = mapped_column(String(1024), default=None)
    status: Mapped[str] = mapped_column(
        String(32), default=RepositoryStatus.PENDING.value
    )
    batch_id: Mapped[int | None] = mapped_column(
        ForeignKey("batches.id", ondelete="SET NULL"), default=None
    )
    priority: Mapped[int] = mapped_column(Integer, default=0)
    destination_full_name: Mapped[str | None] = mapped_column(
        String(512), default=None
    )
    default_branch: Mapped[str | None] = mapped_column(String(255), default=None)
    total_size: Mapped[int | None] = mapped_column(BigInteger, default=None)
    visibility: Mapped[str | None] = mapped_column(String(32), default=None)
    ado_project: Mapped[str | None] = mapped_column(String(255), default=None)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False)
    has_lfs: Mapped[bool] = mapped_column(Boolean, default=False)
    has_submodules: Mapped[bool] = mapped_column(Boolean, default=False)
    has_large_files: Mapped[bool] = mapped_column(Boolean, default=False)
    has_oversized_repository: Mapped[bool] = mapped_column(Boolean, default=False)
    discovered_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow
    )
    last_discovery_at: Mapped[dt.datetime | None] = mapped_column(
        UTCDateTime(), default=None
    )
    last_dry_run_at: Mapped[dt.datetime | None] = mapped_column(
        UTCDateTime(), default=None
    )
    migrated_at: Mapped[dt.datetime | None] = mapped_column(
        UTCDateTime(), default=None
    )


class DiscoveryProgress(Base):
    """One discovery run; at most one row may be in progress."""

    __tablename__ = "discovery_progress"
    __table_args__ = (
        Index(
            "uq_discovery_progress_single_active",
            "status",
            unique=True,
            sqlite_where=_ACTIVE_DISCOVERY,
            postgresql_where=_ACTIVE_DISCOVERY,
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    discovery_type: Mapped[str] = mapped_column(String(32))
    target: Mapped[str] = mapped_column(String(1024))
    status: Mapped[str] = mapped_column(
        String(32), default=DiscoveryStatus.IN_PROGRESS.value
    )
    phase: Mapped[str] = mapped_column(
        String(64), default=DiscoveryPhase.LISTING_REPOS.value
    )
    started_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    completed_at: Mapped[dt.datetime | None] = mapped_column(
        UTCDateTime(), default=None
    )
    total_orgs: Mapped[int] = mapped_column(Integer, default=0)
    processed_orgs: Mapped[int] = mapped_column(Integer, default=0)
    current_org: Mapped[str | None] = mapped_column(String(255), default=None)
    total_repos: Mapped[int] = mapped_column(Integer, default=0)
    processed_repos: Mapped[int] = mapped_column(Integer, default=0)
    error_count: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[str | None] = mapped_column(Text(), default=None)


class RepositoryDependency(Base):
    """A directed reference from one repository to another."""

    __tablename__ = "repository_dependencies"
    __table_args__ = (
        UniqueConstraint(
            "repository_id",
            "dependency_full_name",
            "dependency_type",
            name="uq_repository_dependency",
        ),
        Index("ix_repository_dependencies_target", "dependency_full_name"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    repository_id: Mapped[int] = mapped_column(
        ForeignKey("repositories.id", ondelete="CASCADE")
    )
    dependency_full_name: Mapped[str] = mapped_column(String(512))
    dependency_type: Mapped[str] = mapped_column(String(32))
    dependency_url: Mapped[str | None] = mapped_column(String(1024), default=None)
    is_local: Mapped[bool] = mapped_column(Boolean, default=False)
    discovered_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    details: Mapped[dict[str, typ.Any]] = mapped_column(JSON, default=dict)


class MigrationHistory(Base):
    """A phase of a repository's migration, or an instantaneous event."""

    __tablename__ = "migration_history"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    repository_id: Mapped[int] = mapped_column(
        ForeignKey("repositories.id", ondelete="CASCADE")
    )
    status: Mapped[str] = mapped_column(String(32))
    phase: Mapped[str] = mapped_column(String(32))
    message: Mapped[str | None] = mapped_column(Text(), default=None)
    error_message: Mapped[str | None] = mapped_column(Text(), default=None)
    started_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    completed_at: Mapped[dt.datetime | None] = mapped_column(
        UTCDateTime(), default=None
    )


class MigrationLog(Base):
    """Append-only operator-facing log of migration operations."""

    __tablename__ = "migration_logs"
    __table_args__ = (
        Index("ix_migration_logs_repo_time", "repository_id", "timestamp"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    repository_id: Mapped[int] = mapped_column(
        ForeignKey("repositories.id", ondelete="CASCADE")
    )
    history_id: Mapped[int | None] = mapped_column(
        ForeignKey("migration_history.id", ondelete="SET NULL"), default=None
    )
    level: Mapped[str] = mapped_column(String(16), default="INFO")
    phase: Mapped[str] = mapped_column(String(32))
    operation: Mapped[str] = mapped_column(String(64))
    message: Mapped[str] = mapped_column(Text())
    details: Mapped[str | None] = mapped_column(Text(), default=None)
    initiated_by: Mapped[str | None] = mapped_column(String(255), default=None)
    timestamp: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)


async def init_store(engine: AsyncEngine) -> None:
    """Create all Drover tables if they are absent."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
