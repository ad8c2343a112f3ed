"""Persistence for repositories, batches, discovery runs and dependencies.

The orchestration core depends only on the :class:`Store` protocol.
:class:`SqlAlchemyStore` implements it on top of SQLAlchemy's asyncio
extension and works with SQLite (via aiosqlite) and PostgreSQL.

Usage
-----
Create the schema and a store::

    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

    from drover.store import SqlAlchemyStore, init_store

    engine = create_async_engine("sqlite+aiosqlite:///drover.db")
    await init_store(engine)
    store = SqlAlchemyStore(async_sessionmaker(engine, expire_on_commit=False))

"""

from drover.store.database import (
    FORCE_RESET_MESSAGE,
    STARTUP_RECOVERY_MESSAGE,
    SqlAlchemyStore,
)
from drover.store.protocol import Store
from drover.store.records import (
    BatchRecord,
    BatchStatus,
    BatchType,
    DependencyPair,
    DependencyRecord,
    DependencyRef,
    DependencyType,
    DiscoveryPhase,
    DiscoveryProgressRecord,
    DiscoveryStatus,
    DiscoveryType,
    HistoryRecord,
    LogRecord,
    RepositoryProfile,
    RepositoryRecord,
    RepositoryStatus,
)
from drover.store.tables import init_store

__all__ = [
    "FORCE_RESET_MESSAGE",
    "STARTUP_RECOVERY_MESSAGE",
    "BatchRecord",
    "BatchStatus",
    "BatchType",
    "DependencyPair",
    "DependencyRecord",
    "DependencyRef",
    "DependencyType",
    "DiscoveryPhase",
    "DiscoveryProgressRecord",
    "DiscoveryStatus",
    "DiscoveryType",
    "HistoryRecord",
    "LogRecord",
    "RepositoryProfile",
    "RepositoryRecord",
    "RepositoryStatus",
    "SqlAlchemyStore",
    "Store",
    "init_store",
]
