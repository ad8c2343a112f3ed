"""Tests for DiscoveryOrchestrator.

Usage
-----
Run with::

    pytest tests/unit/test_discovery_orchestrator.py

Provider clients are faked in-process; runs execute as real asyncio tasks
against a temporary sqlite store.
"""

from __future__ import annotations

import asyncio
import typing as typ

import pytest

from drover.config import DroverConfig
from drover.discovery import (
    ALREADY_FINISHED_MESSAGE,
    NO_STUCK_DISCOVERY_MESSAGE,
    RESET_APPLIED_MESSAGE,
    DiscoveryOrchestrator,
    DiscoveryScope,
    ProviderKind,
)
from drover.errors import (
    BadRequestError,
    ConflictError,
    NotFoundError,
    ServiceUnavailableError,
)
from drover.store import (
    FORCE_RESET_MESSAGE,
    DependencyRef,
    DiscoveryStatus,
    DiscoveryType,
    SqlAlchemyStore,
)
from tests.helpers.fakes import FakeEstate, FakeProviderFactory


def _orchestrator(
    store: SqlAlchemyStore,
    *factories: FakeProviderFactory,
) -> DiscoveryOrchestrator:
    return DiscoveryOrchestrator(
        store,
        {factory.kind: factory for factory in factories},
        config=DroverConfig(discovery_workers=2, progress_flush_every=2),
    )


async def _wait_for_unit(store: SqlAlchemyStore, progress_id: int, unit: str) -> None:
    """Poll until a run reports that it started crawling ``unit``."""
    for _ in range(200):
        record = await store.get_discovery(progress_id)
        if record is not None and record.current_org == unit:
            return
        await asyncio.sleep(0.01)
    pytest.fail(f"discovery {progress_id} never started {unit}")


class _CompletingStore:
    """Store wrapper that completes a run just before it is reset."""

    def __init__(self, store: SqlAlchemyStore) -> None:
        self._store = store

    def __getattr__(self, name: str) -> typ.Any:  # noqa: ANN401
        return getattr(self._store, name)

    async def reset_discovery_if_active(self, progress_id: int) -> int:
        await self._store.finish_discovery(progress_id, DiscoveryStatus.COMPLETE)
        return await self._store.reset_discovery_if_active(progress_id)


class TestStartDiscovery:
    """Tests for launching runs."""

    @pytest.mark.asyncio
    async def test_organization_run_completes(self, store: SqlAlchemyStore) -> None:
        """A single-organization run profiles every repository and completes."""
        estate = FakeEstate(
            repositories={"acme": ["api", "lib", "web"]},
            dependencies={"acme/api": (DependencyRef("acme/lib", "submodule"),)},
        )
        factory = FakeProviderFactory(estate)
        orchestrator = _orchestrator(store, factory)

        progress = await orchestrator.start_discovery(
            DiscoveryScope.for_organization("acme")
        )
        await orchestrator.wait_closed()

        assert progress.discovery_type is DiscoveryType.ORGANIZATION
        assert progress.status is DiscoveryStatus.IN_PROGRESS
        finished = await orchestrator.get_progress()
        assert finished is not None
        assert finished.id == progress.id
        assert finished.status is DiscoveryStatus.COMPLETE
        assert (finished.total_repos, finished.processed_repos) == (3, 3)
        assert finished.processed_orgs == 1
        assert sorted(estate.profiled) == ["acme/api", "acme/lib", "acme/web"]
        pairs = await store.list_local_dependency_pairs()
        assert [(pair.source_repo, pair.target_repo) for pair in pairs] == [
            ("acme/api", "acme/lib")
        ], "Local flags must be recomputed after the crawl"
        assert estate.closed_clients == 1, "Clients must be closed after use"
        assert len(orchestrator.registry) == 0, "Finished runs leave the registry"
        assert not orchestrator.is_running()

    @pytest.mark.asyncio
    async def test_second_start_conflicts(self, store: SqlAlchemyStore) -> None:
        """Only one discovery may run at a time."""
        estate = FakeEstate(repositories={"acme": ["api"]}, gate=asyncio.Event())
        orchestrator = _orchestrator(store, FakeProviderFactory(estate))

        first = await orchestrator.start_discovery(
            DiscoveryScope.for_organization("acme")
        )
        with pytest.raises(ConflictError) as excinfo:
            await orchestrator.start_discovery(DiscoveryScope.for_organization("acme2"))
        assert orchestrator.is_running()
        assert estate.gate is not None
        estate.gate.set()
        await orchestrator.wait_closed()

        assert str(excinfo.value) == (
            f"discovery already in progress (id: {first.id}, target: acme)"
        )

    @pytest.mark.asyncio
    async def test_unconfigured_provider(self, store: SqlAlchemyStore) -> None:
        """A scope whose provider has no factory is unavailable."""
        orchestrator = _orchestrator(store, FakeProviderFactory(FakeEstate()))

        with pytest.raises(ServiceUnavailableError, match="azure_devops"):
            await orchestrator.start_discovery(
                DiscoveryScope.for_ado_organization("contoso")
            )

        assert await store.get_active_discovery() is None

    @pytest.mark.asyncio
    async def test_rejects_non_positive_workers(self, store: SqlAlchemyStore) -> None:
        """Worker counts must be positive."""
        orchestrator = _orchestrator(store, FakeProviderFactory(FakeEstate()))

        with pytest.raises(BadRequestError) as excinfo:
            await orchestrator.start_discovery(
                DiscoveryScope.for_organization("acme"), workers=0
            )

        assert excinfo.value.field == "workers"

    @pytest.mark.asyncio
    async def test_profile_failure_fails_organization_run(
        self, store: SqlAlchemyStore
    ) -> None:
        """A single-organization run fails when any repository fails."""
        estate = FakeEstate(
            repositories={"acme": ["api", "web"]},
            failing_repositories={"acme/web"},
        )
        orchestrator = _orchestrator(store, FakeProviderFactory(estate))

        await orchestrator.start_discovery(DiscoveryScope.for_organization("acme"))
        await orchestrator.wait_closed()

        progress = await orchestrator.get_progress()
        assert progress is not None
        assert progress.status is DiscoveryStatus.FAILED
        assert progress.error_count == 1
        assert progress.processed_repos == 2, "Failed profiles still count"
        assert progress.last_error == (
            "encountered 1 errors during discovery of acme (see logs for details)"
        )
        assert await store.get_repository("acme/api") is not None

    @pytest.mark.asyncio
    async def test_enterprise_continues_past_failing_org(
        self, store: SqlAlchemyStore
    ) -> None:
        """One failing organization does not stop the enterprise crawl."""
        estate = FakeEstate(
            organizations={"acme-ent": ["acme", "broken", "beta"]},
            repositories={"acme": ["api"], "beta": ["web"]},
            failing_units={"broken"},
        )
        factory = FakeProviderFactory(estate)
        orchestrator = _orchestrator(store, factory)

        await orchestrator.start_discovery(DiscoveryScope.for_enterprise("acme-ent"))
        await orchestrator.wait_closed()

        progress = await orchestrator.get_progress()
        assert progress is not None
        assert progress.status is DiscoveryStatus.COMPLETE
        assert (progress.total_orgs, progress.processed_orgs) == (3, 3)
        assert progress.error_count == 1
        assert progress.last_error == "broken: listing failed for broken"
        assert sorted(estate.profiled) == ["acme/api", "beta/web"]
        assert factory.requested == [None, "acme", "broken", "beta"], (
            "Each organization gets its own client"
        )

    @pytest.mark.asyncio
    async def test_ado_projects_fail_with_last_error(
        self, store: SqlAlchemyStore
    ) -> None:
        """ADO project runs crawl every project, then fail with the last error."""
        estate = FakeEstate(
            repositories={"contoso/web": ["site"]},
            failing_units={"contoso/api"},
        )
        orchestrator = _orchestrator(
            store, FakeProviderFactory(estate, ProviderKind.AZURE_DEVOPS)
        )

        progress = await orchestrator.start_discovery(
            DiscoveryScope.for_ado_projects("contoso", ["api", "web"])
        )
        await orchestrator.wait_closed()

        assert progress.target == "contoso/api,web"
        finished = await orchestrator.get_progress()
        assert finished is not None
        assert finished.status is DiscoveryStatus.FAILED
        assert finished.last_error == "listing failed for contoso/api"
        assert estate.profiled == ["contoso/web/site"]

    @pytest.mark.asyncio
    async def test_ado_organization_lists_projects(
        self, store: SqlAlchemyStore
    ) -> None:
        """ADO organization runs crawl every listed project."""
        estate = FakeEstate(
            projects={"contoso": ["api", "web"]},
            repositories={"contoso/api": ["svc"], "contoso/web": ["site"]},
        )
        orchestrator = _orchestrator(
            store, FakeProviderFactory(estate, ProviderKind.AZURE_DEVOPS)
        )

        await orchestrator.start_discovery(
            DiscoveryScope.for_ado_organization("contoso")
        )
        await orchestrator.wait_closed()

        finished = await orchestrator.get_progress()
        assert finished is not None
        assert finished.status is DiscoveryStatus.COMPLETE
        assert finished.total_orgs == 2
        repository = await store.get_repository("contoso/api/svc")
        assert repository is not None
        assert repository.ado_project == "api"


class TestCancelDiscovery:
    """Tests for cooperative cancellation."""

    @pytest.mark.asyncio
    async def test_nothing_to_cancel(self, store: SqlAlchemyStore) -> None:
        """Cancelling without an active run is NotFound."""
        orchestrator = _orchestrator(store, FakeProviderFactory(FakeEstate()))

        with pytest.raises(NotFoundError, match="No active discovery to cancel"):
            await orchestrator.cancel_discovery()

    @pytest.mark.asyncio
    async def test_run_owned_elsewhere(self, store: SqlAlchemyStore) -> None:
        """An active run without a local handle cannot be cancelled here."""
        await store.create_discovery(DiscoveryType.ORGANIZATION, "acme", total_orgs=1)
        orchestrator = _orchestrator(store, FakeProviderFactory(FakeEstate()))

        with pytest.raises(NotFoundError, match="cancel function not found"):
            await orchestrator.cancel_discovery()

    @pytest.mark.asyncio
    async def test_cancel_running_enterprise(self, store: SqlAlchemyStore) -> None:
        """A cancelled run stops before its next organization."""
        estate = FakeEstate(
            organizations={"acme-ent": ["acme", "beta"]},
            repositories={"acme": ["api"], "beta": ["web"]},
            gate=asyncio.Event(),
        )
        orchestrator = _orchestrator(store, FakeProviderFactory(estate))
        progress = await orchestrator.start_discovery(
            DiscoveryScope.for_enterprise("acme-ent")
        )

        result = await orchestrator.cancel_discovery()
        assert estate.gate is not None
        estate.gate.set()
        await orchestrator.wait_closed()

        assert (result.progress_id, result.target) == (progress.id, "acme-ent")
        assert result.status == "cancelling"
        finished = await store.get_discovery(progress.id)
        assert finished is not None
        assert finished.status is DiscoveryStatus.CANCELLED
        assert "beta/web" not in estate.profiled, "Remaining orgs must be skipped"

    @pytest.mark.asyncio
    async def test_aclose_cancels_running_tasks(self, store: SqlAlchemyStore) -> None:
        """Shutting down marks an unfinished run as cancelled."""
        estate = FakeEstate(repositories={"acme": ["api"]}, gate=asyncio.Event())
        orchestrator = _orchestrator(store, FakeProviderFactory(estate))
        progress = await orchestrator.start_discovery(
            DiscoveryScope.for_organization("acme")
        )
        await _wait_for_unit(store, progress.id, "acme")

        await orchestrator.aclose()

        finished = await store.get_discovery(progress.id)
        assert finished is not None
        assert finished.status is DiscoveryStatus.CANCELLED
        assert not orchestrator.is_running()


class TestForceResetDiscovery:
    """Tests for operator force resets."""

    @pytest.mark.asyncio
    async def test_no_stuck_discovery(self, store: SqlAlchemyStore) -> None:
        """Without an active run nothing happens."""
        orchestrator = _orchestrator(store, FakeProviderFactory(FakeEstate()))

        result = await orchestrator.force_reset_discovery()

        assert result.action_taken is False
        assert result.records_reset == 0
        assert result.message == NO_STUCK_DISCOVERY_MESSAGE
        assert result.discovery is None

    @pytest.mark.asyncio
    async def test_reset_is_idempotent(self, store: SqlAlchemyStore) -> None:
        """A second reset in a row takes no action."""
        stuck = await store.create_discovery(
            DiscoveryType.ORGANIZATION, "acme", total_orgs=1
        )
        orchestrator = _orchestrator(store, FakeProviderFactory(FakeEstate()))

        first = await orchestrator.force_reset_discovery()
        second = await orchestrator.force_reset_discovery()

        assert (first.action_taken, first.records_reset) == (True, 1)
        assert first.message == RESET_APPLIED_MESSAGE
        assert first.discovery is not None
        assert first.discovery.id == stuck.id
        assert (second.action_taken, second.records_reset) == (False, 0)
        record = await store.get_discovery(stuck.id)
        assert record is not None
        assert record.status is DiscoveryStatus.CANCELLED
        assert record.last_error == FORCE_RESET_MESSAGE

    @pytest.mark.asyncio
    async def test_completion_race(self, store: SqlAlchemyStore) -> None:
        """A run that completes before the reset lands is left alone."""
        running = await store.create_discovery(
            DiscoveryType.ORGANIZATION, "acme", total_orgs=1
        )
        orchestrator = DiscoveryOrchestrator(
            _CompletingStore(store),  # type: ignore[arg-type]
            {},
        )

        result = await orchestrator.force_reset_discovery()

        assert result.action_taken is False
        assert result.records_reset == 0
        assert result.message == ALREADY_FINISHED_MESSAGE
        assert result.discovery is not None
        assert (result.discovery.id, result.discovery.target) == (running.id, "acme")
        record = await store.get_discovery(running.id)
        assert record is not None
        assert record.status is DiscoveryStatus.COMPLETE

    @pytest.mark.asyncio
    async def test_reset_live_run_stops_it(self, store: SqlAlchemyStore) -> None:
        """Resetting a run owned by this process also cancels it."""
        estate = FakeEstate(repositories={"acme": ["api"]}, gate=asyncio.Event())
        orchestrator = _orchestrator(store, FakeProviderFactory(estate))
        progress = await orchestrator.start_discovery(
            DiscoveryScope.for_organization("acme")
        )

        result = await orchestrator.force_reset_discovery()
        assert progress.id not in orchestrator.registry
        assert estate.gate is not None
        estate.gate.set()
        await orchestrator.wait_closed()

        assert result.action_taken is True
        record = await store.get_discovery(progress.id)
        assert record is not None
        assert record.status is DiscoveryStatus.CANCELLED
        assert record.last_error == FORCE_RESET_MESSAGE, (
            "The finishing run must not overwrite the reset"
        )


@pytest.mark.asyncio
async def test_recover_ignores_recent_runs(store: SqlAlchemyStore) -> None:
    """Start-up recovery leaves runs younger than the stuck timeout alone."""
    await store.create_discovery(DiscoveryType.ORGANIZATION, "acme", total_orgs=1)
    orchestrator = _orchestrator(store, FakeProviderFactory(FakeEstate()))

    assert await orchestrator.recover_stuck_discoveries() == 0
    assert await store.get_active_discovery() is not None
