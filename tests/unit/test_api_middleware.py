"""Unit tests for drover.api.middleware.LifespanManager.

Usage
-----
Run with pytest::

    pytest tests/unit/test_api_middleware.py

"""

from __future__ import annotations

import typing as typ
from unittest import mock

import pytest
from sqlalchemy import inspect
from sqlalchemy.ext.asyncio import create_async_engine

from drover.api.middleware import LifespanManager
from drover.errors import InternalError

if typ.TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine


def _engine(tmp_path: Path) -> AsyncEngine:
    return create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'lifespan.db'}")


def _orchestrator(recovered: int = 0) -> mock.MagicMock:
    orchestrator = mock.MagicMock()
    orchestrator.recover_stuck_discoveries = mock.AsyncMock(return_value=recovered)
    orchestrator.aclose = mock.AsyncMock()
    return orchestrator


class TestStartup:
    """process_startup prepares the schema and recovers abandoned runs."""

    @pytest.mark.asyncio
    async def test_creates_tables_and_recovers(self, tmp_path: Path) -> None:
        """Tables exist and recovery ran once start-up completes."""
        engine = _engine(tmp_path)
        orchestrator = _orchestrator(recovered=2)

        await LifespanManager(engine, orchestrator).process_startup({}, {})

        async with engine.connect() as conn:
            tables = await conn.run_sync(
                lambda sync_conn: inspect(sync_conn).get_table_names()
            )
        await engine.dispose()
        assert "repositories" in tables, "schema must be created at start-up"
        orchestrator.recover_stuck_discoveries.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_recovery_failure_does_not_block_startup(
        self, tmp_path: Path
    ) -> None:
        """A failed recovery is logged and start-up carries on."""
        engine = _engine(tmp_path)
        orchestrator = _orchestrator()
        orchestrator.recover_stuck_discoveries.side_effect = (
            InternalError.store_failure("recover_stuck_discoveries")
        )

        await LifespanManager(engine, orchestrator).process_startup({}, {})
        await engine.dispose()

        orchestrator.recover_stuck_discoveries.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_without_orchestrator(self, tmp_path: Path) -> None:
        """Start-up works for health-only deployments."""
        engine = _engine(tmp_path)

        await LifespanManager(engine).process_startup({}, {})
        await LifespanManager(engine).process_shutdown({}, {})


class TestShutdown:
    """process_shutdown stops discoveries and disposes the engine."""

    @pytest.mark.asyncio
    async def test_closes_orchestrator_and_engine(self) -> None:
        """Running discoveries are cancelled before connections are released."""
        engine = mock.MagicMock()
        engine.dispose = mock.AsyncMock()
        orchestrator = _orchestrator()

        await LifespanManager(engine, orchestrator).process_shutdown({}, {})

        orchestrator.aclose.assert_awaited_once()
        engine.dispose.assert_awaited_once()
