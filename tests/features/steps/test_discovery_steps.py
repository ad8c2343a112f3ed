"""Behavioural tests for repository discovery."""

from __future__ import annotations

import asyncio
import typing as typ

import pytest
from pytest_bdd import given, parsers, scenario, then, when

from drover.config import DroverConfig
from drover.discovery import DiscoveryOrchestrator, DiscoveryScope
from drover.errors import ConflictError
from tests.helpers.fakes import FakeEstate, FakeProviderFactory

if typ.TYPE_CHECKING:
    T = typ.TypeVar("T")

    from drover.store import DiscoveryProgressRecord, SqlAlchemyStore


def run_async(coro: typ.Coroutine[typ.Any, typ.Any, T]) -> T:
    """Run async coroutines in sync BDD step functions."""
    return asyncio.run(coro)


def _names(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class DiscoveryContext(typ.TypedDict, total=False):
    """Shared state used by BDD steps."""

    store: SqlAlchemyStore
    estate: FakeEstate
    first: DiscoveryProgressRecord
    final: DiscoveryProgressRecord | None
    conflict: ConflictError | None


@scenario(
    "../discovery.feature",
    "A discovery crawls every repository in an organization",
)
def test_discovery_crawls_organization() -> None:
    """Behavioural test: a finished discovery fills the inventory."""


@scenario(
    "../discovery.feature",
    "A second discovery conflicts with the running one",
)
def test_second_discovery_conflicts() -> None:
    """Behavioural test: concurrent discoveries are rejected."""


@pytest.fixture
def discovery_context(feature_store: SqlAlchemyStore) -> DiscoveryContext:
    """Provide the per-scenario store."""
    return {"store": feature_store}


def _orchestrator(context: DiscoveryContext) -> DiscoveryOrchestrator:
    factory = FakeProviderFactory(context["estate"])
    return DiscoveryOrchestrator(
        context["store"],
        {factory.kind: factory},
        config=DroverConfig(discovery_workers=2, progress_flush_every=1),
    )


@given(
    parsers.parse(
        'a GitHub organization "{organization}" with repositories "{repositories}"'
    )
)
def github_organization(
    discovery_context: DiscoveryContext, organization: str, repositories: str
) -> None:
    """Describe the source estate served by the fake provider."""
    discovery_context["estate"] = FakeEstate(
        repositories={organization: _names(repositories)}
    )


@when(
    parsers.parse(
        'I start a discovery of organization "{organization}" and wait for it'
    )
)
def start_and_wait(discovery_context: DiscoveryContext, organization: str) -> None:
    """Run one discovery to completion."""

    async def _run() -> DiscoveryProgressRecord | None:
        orchestrator = _orchestrator(discovery_context)
        await orchestrator.start_discovery(
            DiscoveryScope.for_organization(organization)
        )
        await orchestrator.wait_closed()
        return await orchestrator.get_progress()

    discovery_context["final"] = run_async(_run())


@when(
    parsers.parse(
        'I start a discovery of "{first}" and then of "{second}" before it finishes'
    )
)
def start_two(discovery_context: DiscoveryContext, first: str, second: str) -> None:
    """Start a discovery, then a second one while the first is blocked."""
    estate = discovery_context["estate"]

    async def _run() -> tuple[DiscoveryProgressRecord, ConflictError | None]:
        estate.gate = asyncio.Event()
        orchestrator = _orchestrator(discovery_context)
        progress = await orchestrator.start_discovery(
            DiscoveryScope.for_organization(first)
        )
        conflict: ConflictError | None = None
        try:
            await orchestrator.start_discovery(DiscoveryScope.for_organization(second))
        except ConflictError as exc:
            conflict = exc
        finally:
            estate.gate.set()
            await orchestrator.wait_closed()
        return progress, conflict

    discovery_context["first"], discovery_context["conflict"] = run_async(_run())


@then(parsers.parse('the discovery status is "{status}"'))
def discovery_status(discovery_context: DiscoveryContext, status: str) -> None:
    """Assert the final status of the discovery."""
    final = discovery_context["final"]
    assert final is not None, "expected a discovery record"
    assert final.status == status, f"expected {status}, got {final.status}"


@then(parsers.parse('the inventory contains "{full_names}"'))
def inventory_contains(discovery_context: DiscoveryContext, full_names: str) -> None:
    """Assert every named repository was recorded."""
    expected = _names(full_names)
    found = run_async(discovery_context["store"].get_repositories(expected))
    assert sorted(repository.full_name for repository in found) == sorted(expected)


@then(
    parsers.parse('the first discovery was accepted as an "{discovery_type}" discovery')
)
def first_accepted(discovery_context: DiscoveryContext, discovery_type: str) -> None:
    """Assert the first run was created for the requested scope."""
    first = discovery_context["first"]
    assert first.id > 0, "expected a new progress id"
    assert first.discovery_type == discovery_type
    assert first.status == "in_progress"


@then("the second discovery was rejected as a conflict")
def second_rejected(discovery_context: DiscoveryContext) -> None:
    """Assert the second start raised a conflict naming the first run."""
    conflict = discovery_context["conflict"]
    assert conflict is not None, "expected the second start to conflict"
    assert f"id: {discovery_context['first'].id}" in conflict.message
