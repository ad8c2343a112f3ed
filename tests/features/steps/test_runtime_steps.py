"""Behavioural tests for the runtime's health-only and database modes."""

from __future__ import annotations

import asyncio
import typing as typ

import falcon.testing
import pytest
from pytest_bdd import given, parsers, scenario, then, when

from drover.runtime import create_app

if typ.TYPE_CHECKING:
    T = typ.TypeVar("T")

    from pathlib import Path

    from falcon.testing.client import Result


def run_async(coro: typ.Coroutine[typ.Any, typ.Any, T]) -> T:
    """Run async coroutines in sync BDD step functions."""
    return asyncio.run(coro)


class RuntimeContext(typ.TypedDict):
    """Responses keyed by ``METHOD path``."""

    responses: dict[str, Result]


@scenario(
    "../runtime.feature",
    "Without a database only the health routes are mounted",
)
def test_health_only_mode() -> None:
    """Behavioural test: the API is absent without a database."""


@scenario("../runtime.feature", "A database mounts the migration API")
def test_database_mode() -> None:
    """Behavioural test: a database URL enables the API and lifespan."""


@scenario("../runtime.feature", "Discovery needs GitHub credentials")
def test_discovery_without_token() -> None:
    """Behavioural test: discovery reports a missing provider."""


@pytest.fixture
def runtime_context() -> RuntimeContext:
    """Collect the responses produced by each scenario."""
    return {"responses": {}}


async def _serve(
    method: str, path: str, body: dict[str, typ.Any] | None = None
) -> Result:
    """Build the app from the environment and serve one request.

    The conductor runs the lifespan, so the schema exists before the request
    and the engine is disposed before the event loop closes.
    """
    async with falcon.testing.ASGIConductor(create_app()) as conductor:
        return await conductor.simulate_request(method, path, json=body)


@given("the runtime has no database configured")
def no_database(monkeypatch: pytest.MonkeyPatch) -> None:
    """Start the runtime in health-only mode."""
    monkeypatch.delenv("DROVER_DATABASE_URL", raising=False)


@given("the runtime uses a fresh SQLite database")
def sqlite_database(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Point the runtime at an empty database file."""
    monkeypatch.setenv(
        "DROVER_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'runtime.db'}"
    )


@given("no GitHub token is configured")
def no_github_token(monkeypatch: pytest.MonkeyPatch) -> None:
    """Leave GitHub discovery disabled."""
    monkeypatch.delenv("DROVER_GITHUB_TOKEN", raising=False)


@when(parsers.parse('the runtime serves GET "{path}"'))
def serve_get(runtime_context: RuntimeContext, path: str) -> None:
    """Serve a GET request from a freshly built app."""
    runtime_context["responses"][f"GET {path}"] = run_async(_serve("GET", path))


@when(parsers.parse('the runtime is asked to discover organization "{organization}"'))
def request_discovery(runtime_context: RuntimeContext, organization: str) -> None:
    """Post a discovery request for one organization."""
    path = "/api/v1/discovery"
    runtime_context["responses"][f"POST {path}"] = run_async(
        _serve("POST", path, {"organization": organization})
    )


def _response(runtime_context: RuntimeContext, request: str) -> Result:
    responses = runtime_context["responses"]
    assert request in responses, f"no response recorded for {request}"
    return responses[request]


@then(parsers.parse('{method} "{path}" answered {status:d} with status "{value}"'))
def answered_with_status(
    runtime_context: RuntimeContext, method: str, path: str, status: int, value: str
) -> None:
    """Assert the status code and the ``status`` field of the body."""
    response = _response(runtime_context, f"{method} {path}")
    assert response.status_code == status, response.text
    assert response.json["status"] == value


@then(parsers.parse('{method} "{path}" answered {status:d}'))
def answered(
    runtime_context: RuntimeContext, method: str, path: str, status: int
) -> None:
    """Assert only the status code."""
    response = _response(runtime_context, f"{method} {path}")
    assert response.status_code == status, response.text


@then("readiness reports that no discovery is running")
def ready_without_discovery(runtime_context: RuntimeContext) -> None:
    """The readiness body carries orchestrator state in database mode."""
    response = _response(runtime_context, "GET /ready")
    assert response.json == {"status": "ready", "discovery_running": False}


@then(parsers.parse('the error says "{description}"'))
def error_says(runtime_context: RuntimeContext, description: str) -> None:
    """Assert the JSON error description of the discovery request."""
    response = _response(runtime_context, "POST /api/v1/discovery")
    assert response.json["description"] == description
