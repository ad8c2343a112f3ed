"""Application factory for the Drover Falcon ASGI application.

This module provides ``create_app()`` which builds the Falcon ASGI
application with health endpoints and, when services are supplied, the
discovery, lifecycle, batch and dependency endpoints.

Usage
-----
Create a health-only app::

    app = create_app()

Create a full app::

    from drover.api.app import create_app
    from drover.api.factory import build_dependencies

    app = create_app(build_dependencies(store, providers))

"""

from __future__ import annotations

import dataclasses as dc
import typing as typ

import falcon.asgi

from drover.api.errors import handle_drover_error
from drover.api.health.resources import HealthResource, ReadyResource
from drover.errors import DroverError

if typ.TYPE_CHECKING:
    from drover.batches import BatchLifecycleService
    from drover.dependencies import DependencyGraphEngine
    from drover.api.middleware import LifespanManager
    from drover.discovery import DiscoveryOrchestrator
    from drover.lifecycle import RepositoryLifecycleService

__all__ = ["API_PREFIX", "AppDependencies", "create_app"]

API_PREFIX = "/api/v1"


@dc.dataclass(frozen=True, slots=True)
class AppDependencies:
    """Services exposed by the Falcon ASGI application.

    Each service that is ``None`` leaves its endpoints unregistered.

    Attributes
    ----------
    orchestrator
        Discovery orchestrator.
    lifecycle
        Repository lifecycle service.
    batches
        Batch lifecycle service.
    graph
        Dependency graph engine.
    lifespan
        Middleware run at ASGI start-up and shutdown.

    """

    orchestrator: DiscoveryOrchestrator | None = None
    lifecycle: RepositoryLifecycleService | None = None
    batches: BatchLifecycleService | None = None
    graph: DependencyGraphEngine | None = None
    lifespan: LifespanManager | None = None


def _add_discovery_routes(
    app: falcon.asgi.App, orchestrator: DiscoveryOrchestrator
) -> None:
    from drover.api.discovery.resources import (
        ADODiscoveryResource,
        DiscoveryCancelResource,
        DiscoveryProgressResource,
        DiscoveryResetResource,
        DiscoveryResource,
    )

    app.add_route(f"{API_PREFIX}/discovery", DiscoveryResource(orchestrator))
    app.add_route(f"{API_PREFIX}/ado/discovery", ADODiscoveryResource(orchestrator))
    app.add_route(
        f"{API_PREFIX}/discovery/progress", DiscoveryProgressResource(orchestrator)
    )
    app.add_route(
        f"{API_PREFIX}/discovery/cancel", DiscoveryCancelResource(orchestrator)
    )
    app.add_route(f"{API_PREFIX}/discovery/reset", DiscoveryResetResource(orchestrator))


def _add_lifecycle_routes(
    app: falcon.asgi.App, lifecycle: RepositoryLifecycleService
) -> None:
    from drover.api.repositories.resources import (
        MigrationResource,
        RepositoryStatusResource,
        RollbackResource,
    )

    app.add_route(f"{API_PREFIX}/migrations", MigrationResource(lifecycle))
    app.add_route(
        f"{API_PREFIX}/repositories/status", RepositoryStatusResource(lifecycle)
    )
    app.add_route(f"{API_PREFIX}/repositories/rollback", RollbackResource(lifecycle))


def _add_batch_routes(app: falcon.asgi.App, batches: BatchLifecycleService) -> None:
    from drover.api.batches.resources import (
        BatchCollectionResource,
        BatchDestinationResource,
        BatchMembersResource,
        BatchRemoveMembersResource,
        BatchResource,
        BatchRetryResource,
        BatchStartResource,
    )

    base = f"{API_PREFIX}/batches"
    app.add_route(base, BatchCollectionResource(batches))
    app.add_route(f"{base}/{{batch_id:int}}", BatchResource(batches))
    app.add_route(
        f"{base}/{{batch_id:int}}/repositories", BatchMembersResource(batches)
    )
    app.add_route(
        f"{base}/{{batch_id:int}}/repositories/remove",
        BatchRemoveMembersResource(batches),
    )
    app.add_route(f"{base}/{{batch_id:int}}/start", BatchStartResource(batches))
    app.add_route(f"{base}/{{batch_id:int}}/retry", BatchRetryResource(batches))
    app.add_route(
        f"{base}/{{batch_id:int}}/destination", BatchDestinationResource(batches)
    )


def _add_dependency_routes(app: falcon.asgi.App, graph: DependencyGraphEngine) -> None:
    from drover.api.dependencies.resources import (
        DependencyExportResource,
        DependencyGraphResource,
        RepositoryDependenciesResource,
        RepositoryDependentsResource,
    )

    app.add_route(f"{API_PREFIX}/dependencies/graph", DependencyGraphResource(graph))
    app.add_route(f"{API_PREFIX}/dependencies/export", DependencyExportResource(graph))
    app.add_route(
        f"{API_PREFIX}/dependencies/repositories/{{full_name:path}}",
        RepositoryDependenciesResource(graph),
    )
    app.add_route(
        f"{API_PREFIX}/dependents/{{full_name:path}}",
        RepositoryDependentsResource(graph),
    )


def create_app(
    dependencies: AppDependencies | None = None,
) -> falcon.asgi.App:
    """Create and configure the Falcon ASGI application.

    Parameters
    ----------
    dependencies
        Optional services. When ``None``, only ``/health`` and ``/ready``
        are available.

    Returns
    -------
    falcon.asgi.App
        Configured Falcon ASGI application.

    """
    deps = dependencies or AppDependencies()
    middleware: list[object] = []
    if deps.lifespan is not None:
        middleware.append(deps.lifespan)
    app = falcon.asgi.App(middleware=middleware)  # type: ignore[no-matching-overload]  # Falcon stubs

    # Health endpoints are always available
    app.add_route("/health", HealthResource())
    app.add_route("/ready", ReadyResource(deps.orchestrator))

    if deps.orchestrator is not None:
        _add_discovery_routes(app, deps.orchestrator)
    if deps.lifecycle is not None:
        _add_lifecycle_routes(app, deps.lifecycle)
    if deps.batches is not None:
        _add_batch_routes(app, deps.batches)
    if deps.graph is not None:
        _add_dependency_routes(app, deps.graph)

    app.add_error_handler(DroverError, handle_drover_error)
    return app
