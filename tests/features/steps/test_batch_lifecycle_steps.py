"""Behavioural tests for batch retries."""

from __future__ import annotations

import asyncio
import typing as typ

import pytest
from pytest_bdd import given, parsers, scenario, then, when

from drover.batches import BatchLifecycleService
from drover.store import BatchType, RepositoryStatus
from tests.helpers.seed import seed_repository

if typ.TYPE_CHECKING:
    T = typ.TypeVar("T")

    from drover.batches import RetryResult
    from drover.store import BatchRecord, SqlAlchemyStore


def run_async(coro: typ.Coroutine[typ.Any, typ.Any, T]) -> T:
    """Run async coroutines in sync BDD step functions."""
    return asyncio.run(coro)


class BatchContext(typ.TypedDict, total=False):
    """Shared state used by BDD steps."""

    store: SqlAlchemyStore
    service: BatchLifecycleService
    batch: BatchRecord
    retry: RetryResult


@scenario(
    "../batch_lifecycle.feature",
    "Retrying a batch re-queues only failed members",
)
def test_retry_requeues_failed_members() -> None:
    """Behavioural test: retry leaves non-failed members alone."""


@pytest.fixture
def batch_context(feature_store: SqlAlchemyStore) -> BatchContext:
    """Provide the store and batch service for a scenario."""
    return {"store": feature_store, "service": BatchLifecycleService(feature_store)}


@given(parsers.parse('a batch named "{name}"'))
def batch_named(batch_context: BatchContext, name: str) -> None:
    """Create an empty ready batch."""
    batch_context["batch"] = run_async(
        batch_context["service"].create_batch(name, batch_type=BatchType.WAVE)
    )


@given(parsers.parse('the batch has member "{full_name}" with status "{status}"'))
def batch_member(batch_context: BatchContext, full_name: str, status: str) -> None:
    """Record a repository as a member of the batch."""
    run_async(
        seed_repository(
            batch_context["store"],
            full_name,
            status=RepositoryStatus(status),
            batch_id=batch_context["batch"].id,
        )
    )


@when("I retry the batch failures")
def retry_failures(batch_context: BatchContext) -> None:
    """Retry every failed member of the batch."""
    batch_context["retry"] = run_async(
        batch_context["service"].retry_batch_failures(
            batch_context["batch"].id, initiated_by="octocat"
        )
    )


@then(parsers.parse('only "{full_name}" was retried'))
def only_retried(batch_context: BatchContext, full_name: str) -> None:
    """Assert the retry result lists exactly one repository."""
    retry = batch_context["retry"]
    assert retry.retried_names == [full_name], (
        f"expected only {full_name}, got {retry.retried_names}"
    )
    assert retry.skipped == {}, "members that never failed are not reported"


@then(parsers.parse('repository "{full_name}" has status "{status}"'))
def repository_status(batch_context: BatchContext, full_name: str, status: str) -> None:
    """Assert the stored status of a repository."""
    repository = run_async(batch_context["store"].get_repository(full_name))
    assert repository is not None, f"{full_name} should exist"
    assert repository.status == status, f"expected {status}, got {repository.status}"
