"""Shared fixtures for BDD feature tests.

Step functions are synchronous and drive the async services with
``asyncio.run``. The engine uses ``NullPool`` so no connection outlives the
event loop that opened it.
"""

from __future__ import annotations

import asyncio
import typing as typ

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from drover.store import SqlAlchemyStore, init_store

if typ.TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture
def feature_store(tmp_path: Path) -> typ.Iterator[SqlAlchemyStore]:
    """Provision a fresh sqlite store for each scenario."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'feature.db'}", poolclass=NullPool
    )
    asyncio.run(init_store(engine))
    yield SqlAlchemyStore(async_sessionmaker(engine, expire_on_commit=False))
    asyncio.run(engine.dispose())
